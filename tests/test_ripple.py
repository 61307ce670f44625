"""Tests for ripple-effect and transit analysis."""

import pytest
from ospfgraph.analysis.ripple import (
    calculate_link_impact, analyze_transit_countries, analyze_country_pair,
)
from ospfgraph.graph.paths import PathEngine
from ospfgraph.graph.topology import Topology, Node, Link
from ospfgraph.traffic.simulator import Mutation, apply_mutations


def _triangle():
    nodes = (Node("A", "US"), Node("B", "DE"), Node("C", "FR"))
    links = (
        Link("A", "B", forward_cost=1, reverse_cost=1),
        Link("A", "C", forward_cost=1, reverse_cost=1),
        Link("C", "B", forward_cost=1, reverse_cost=1),
    )
    return Topology(nodes=nodes, links=links)


def _square():
    nodes = (
        Node("A", "US"), Node("B", "DE"), Node("C", "FR"), Node("D", "GB"),
    )
    links = (
        Link("A", "B", forward_cost=1, reverse_cost=1),
        Link("B", "C", forward_cost=1, reverse_cost=1),
        Link("C", "D", forward_cost=1, reverse_cost=1),
        Link("D", "A", forward_cost=1, reverse_cost=1),
        Link("A", "C", forward_cost=5, reverse_cost=5),
    )
    return Topology(nodes=nodes, links=links)


class TestLinkImpact:
    def test_disabled_link_ripple(self):
        before = _triangle()
        after = apply_mutations(before, [Mutation(0, disable=True)])
        report = calculate_link_impact(before, after)

        assert report.total_paths == 6
        assert report.affected_paths == 2
        assert report.impact_percentage == pytest.approx(100 / 3)
        assert [(c.source, c.dest) for c in report.changed_pairs] == [
            ("DE", "US"), ("US", "DE"),
        ]

    def test_only_modified_links_reported(self):
        before = _triangle()
        after = apply_mutations(before, [Mutation(0, disable=True)])
        ripples = calculate_link_impact(before, after).link_ripples
        assert [r.link_index for r in ripples] == [0]
        ripple = ripples[0]
        assert ripple.local_impact == ["A", "B"]
        assert ripple.affected_paths == 2
        assert sorted(ripple.downstream_impact) == ["A", "B"]
        assert ripple.affected_country_pairs == [("DE", "US"), ("US", "DE")]

    def test_no_change(self):
        topo = _triangle()
        report = calculate_link_impact(topo, topo)
        assert report.affected_paths == 0
        assert report.impact_percentage == 0
        assert report.link_ripples == []
        assert report.changed_pairs == []

    def test_country_filter(self):
        before = _triangle()
        after = apply_mutations(before, [Mutation(0, disable=True)])
        report = calculate_link_impact(before, after, ["US"], ["DE"])
        assert report.total_paths == 1
        assert report.affected_paths == 1

    def test_transit_after_change(self):
        before = _triangle()
        after = apply_mutations(before, [Mutation(0, disable=True)])
        transit = calculate_link_impact(before, after).transit_countries
        assert [t.country for t in transit] == ["FR"]
        fr = transit[0]
        assert fr.transit_path_count == 2
        assert fr.node_count == 1
        # 70 for the busiest transit + 2/6 pairs * 20 + 1/3 routers * 10
        assert fr.criticality_score == 80


class TestTransitCountries:
    def test_direct_paths_have_no_transit(self):
        topo = _triangle()
        engine = PathEngine(topo)
        paths = [engine.best_path("A", "B"), engine.best_path("B", "C")]
        assert analyze_transit_countries(topo, paths) == []

    def test_empty(self):
        assert analyze_transit_countries(Topology(), []) == []


class TestCountryPair:
    def test_pair_statistics(self):
        analysis = analyze_country_pair(_square(), "US", "FR")
        assert [p.total_cost for p in analysis.paths] == [2, 2, 5]
        assert analysis.min_cost == 2
        assert analysis.max_cost == 5
        assert analysis.avg_cost == pytest.approx(3)
        assert analysis.node_count == 4
        assert analysis.link_count == 5
        assert {c for c, _, _ in analysis.transit_countries} == {"DE", "GB"}

    def test_unreachable_pair(self):
        topo = Topology(nodes=(Node("A", "US"), Node("B", "DE")))
        analysis = analyze_country_pair(topo, "US", "DE")
        assert analysis.paths == []
        assert analysis.avg_cost == 0
