"""Tests for the pre/post traffic simulator."""

import pytest
from ospfgraph.analysis.health import HealthAnalyzer
from ospfgraph.config import AnalyticsConfig
from ospfgraph.exceptions import MutationError
from ospfgraph.graph.topology import (
    Topology, Node, Link, TrafficObservation, TrafficSnapshot,
)
from ospfgraph.traffic.simulator import (
    Mutation, TrafficSimulator, apply_mutations,
)


def _triangle():
    nodes = (Node("A", "US"), Node("B", "DE"), Node("C", "FR"))
    links = (
        Link("A", "B", forward_cost=1, reverse_cost=1),
        Link("A", "C", forward_cost=1, reverse_cost=1),
        Link("C", "B", forward_cost=1, reverse_cost=1,
             traffic=TrafficObservation(7500, 2000, 75, 20)),
    )
    return Topology(nodes=nodes, links=links)


class TestApplyMutations:
    def test_disable_forces_down(self):
        config = AnalyticsConfig()
        mutated = apply_mutations(_triangle(), [Mutation(0, 3, 3, disable=True)], config)
        link = mutated.links[0]
        assert link.status == "down"
        assert link.forward_cost == config.simulation.disabled_cost
        assert link.reverse_cost == config.simulation.disabled_cost

    def test_cost_change(self):
        mutated = apply_mutations(_triangle(), [Mutation(1, 5, 7)])
        assert mutated.links[1].effective_forward_cost == 5
        assert mutated.links[1].effective_reverse_cost == 7
        assert mutated.links[1].is_up

    def test_other_links_and_nodes_shared(self):
        topo = _triangle()
        mutated = apply_mutations(topo, [Mutation(1, 5, 7)])
        assert mutated.nodes is topo.nodes
        assert mutated.links[0] is topo.links[0]
        assert mutated.links[2] is topo.links[2]
        assert topo.links[1].effective_forward_cost == 1

    def test_last_mutation_wins(self):
        mutated = apply_mutations(_triangle(), [Mutation(1, 5, 5), Mutation(1, 8, 8)])
        assert mutated.links[1].effective_forward_cost == 8

    def test_out_of_range(self):
        with pytest.raises(MutationError):
            apply_mutations(_triangle(), [Mutation(9, 1, 1)])

    def test_empty_is_identity(self):
        topo = _triangle()
        assert apply_mutations(topo, []) is topo

    def test_from_dict(self):
        m = Mutation.from_dict({"linkIndex": 2, "newForwardCost": 4,
                                "newReverseCost": 6, "disable": False})
        assert m == Mutation(2, 4.0, 6.0, False)

    def test_from_dict_malformed(self):
        with pytest.raises(MutationError):
            Mutation.from_dict({"link_index": "x"})

    def test_negative_cost_rejected(self):
        with pytest.raises(MutationError, match="non-negative"):
            apply_mutations(_triangle(), [Mutation(0, -5, -5)])
        with pytest.raises(MutationError):
            apply_mutations(_triangle(), [Mutation(0, 3, -1)])

    def test_negative_cost_rejected_by_simulator(self):
        with pytest.raises(MutationError):
            TrafficSimulator().estimate_impact(_triangle(), [Mutation(0, -5, -5)])

    def test_disable_ignores_cost_fields(self):
        mutated = apply_mutations(_triangle(), [Mutation(0, -5, -5, disable=True)])
        assert mutated.links[0].status == "down"

    def test_from_dict_rejects_fractional_index(self):
        with pytest.raises(MutationError):
            Mutation.from_dict({"link_index": 1.7})
        assert Mutation.from_dict({"link_index": 2.0}).link_index == 2

    def test_from_dict_rejects_bool_index(self):
        with pytest.raises(MutationError):
            Mutation.from_dict({"link_index": True})

    def test_from_dict_rejects_string_disable(self):
        with pytest.raises(MutationError):
            Mutation.from_dict({"link_index": 1, "disable": "false"})

    def test_from_dict_rejects_non_object(self):
        with pytest.raises(MutationError):
            Mutation.from_dict([1, 2])


class TestTrafficSimulator:
    def test_disable_reroutes(self):
        report = TrafficSimulator().estimate_impact(
            _triangle(), [Mutation(0, disable=True)]
        )
        assert report.pairs_evaluated == 6
        rerouted = {(r.source_id, r.target_id) for r in report.reroutes}
        assert rerouted == {("B", "A"), ("A", "B")}

    def test_congestion_flag(self):
        report = TrafficSimulator().estimate_impact(
            _triangle(), [Mutation(0, disable=True)]
        )
        by_link = {i.link_index: i for i in report.impacts}
        hot = by_link[2]
        assert hot.after_forward_util == pytest.approx(85)
        assert hot.after_reverse_util == pytest.approx(30)
        assert hot.change_forward == pytest.approx(10)
        assert hot.will_congest
        assert report.congested == [hot]

    def test_impacts_sorted_and_filtered(self):
        report = TrafficSimulator().estimate_impact(
            _triangle(), [Mutation(0, disable=True)]
        )
        assert [i.link_index for i in report.impacts] == [1, 2]
        # link 0 loses traffic it never had, so nothing changes there
        assert 0 not in {i.link_index for i in report.impacts}

    def test_cost_change_reroutes(self):
        report = TrafficSimulator().estimate_impact(
            _triangle(), [Mutation(1, 5, 5)]
        )
        rerouted = {(r.source_id, r.target_id) for r in report.reroutes}
        assert rerouted == {("A", "C"), ("C", "A")}
        assert report.reroutes[0].after_cost == 2

    def test_configurable_traffic_unit(self):
        config = AnalyticsConfig()
        config.simulation.traffic_unit_mbps = 500
        report = TrafficSimulator(config).estimate_impact(
            _triangle(), [Mutation(0, disable=True)]
        )
        hot = next(i for i in report.impacts if i.link_index == 2)
        assert hot.after_forward_util == pytest.approx(80)
        assert not hot.will_congest

    def test_empty_mutation_set(self):
        topo = _triangle()
        report = TrafficSimulator().estimate_impact(topo, [])
        assert report.impacts == []
        assert report.reroutes == []
        assert report.mutated == topo
        assert HealthAnalyzer().analyze(report.mutated) == HealthAnalyzer().analyze(topo)

    def test_utilization_clamped(self):
        topo = _triangle()
        links = list(topo.links)
        links[2] = Link("C", "B", forward_cost=1, reverse_cost=1, capacity_mbps=100,
                        traffic=TrafficObservation(95, 95, 95, 95))
        report = TrafficSimulator().estimate_impact(
            topo.with_links(links), [Mutation(0, disable=True)]
        )
        hot = next(i for i in report.impacts if i.link_index == 2)
        assert hot.after_forward_util == 100
        assert hot.will_congest

    def test_to_dict(self):
        data = TrafficSimulator().estimate_impact(
            _triangle(), [Mutation(0, disable=True)]
        ).to_dict()
        assert data["congested_links"] == [2]
        assert len(data["reroutes"]) == 2


class TestSnapshotBaseline:
    def _peak(self):
        return TrafficSnapshot(
            snapshot_id="peak",
            link_traffic={
                1: TrafficObservation(7500, 2000, 75, 20),
                2: TrafficObservation(5000, 1000, 50, 10),
            },
        )

    def test_snapshot_overrides_embedded_utilization(self):
        report = TrafficSimulator().estimate_impact(
            _triangle(), [Mutation(0, disable=True)], self._peak()
        )
        by_link = {i.link_index: i for i in report.impacts}
        assert by_link[2].before_forward_util == 50
        assert by_link[2].before_reverse_util == 10
        assert by_link[2].after_forward_util == pytest.approx(60)
        assert not by_link[2].will_congest

    def test_snapshot_moves_congestion(self):
        report = TrafficSimulator().estimate_impact(
            _triangle(), [Mutation(0, disable=True)], self._peak()
        )
        # embedded traffic alone congests link 2; the snapshot loads link 1 instead
        assert [i.link_index for i in report.congested] == [1]
        assert report.congested[0].after_forward_util == pytest.approx(85)

    def test_missing_snapshot_entry_falls_back(self):
        snap = TrafficSnapshot(
            snapshot_id="partial",
            link_traffic={1: TrafficObservation(forward_utilization_pct=5)},
        )
        report = TrafficSimulator().estimate_impact(
            _triangle(), [Mutation(0, disable=True)], snap
        )
        hot = next(i for i in report.impacts if i.link_index == 2)
        assert hot.before_forward_util == 75
        assert hot.will_congest
