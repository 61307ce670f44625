"""Tests for tabular and JSON export."""

import csv
import json

from ospfgraph.analysis.health import analyze
from ospfgraph.export.tabular import (
    HealthExporter, ImpactExporter, MatrixExporter, CapacityExporter, save_json,
    HEALTH_COLUMNS, IMPACT_COLUMNS, CAPACITY_COLUMNS,
)
from ospfgraph.graph.topology import Topology, Node, Link, TrafficObservation
from ospfgraph.traffic.capacity import CapacityPlanner
from ospfgraph.traffic.matrix import build_matrix
from ospfgraph.traffic.simulator import Mutation, TrafficSimulator


def _sample_topology():
    nodes = (Node("A", "US"), Node("B", "DE"), Node("C", "FR"))
    links = (
        Link("A", "B", forward_cost=1, reverse_cost=1),
        Link("A", "C", forward_cost=1, reverse_cost=1),
        Link("C", "B", forward_cost=1, reverse_cost=1,
             traffic=TrafficObservation(7500, 2000, 75, 20)),
    )
    return Topology(nodes=nodes, links=links)


class TestHealthExport:
    def test_metrics_row_first(self):
        rows = HealthExporter.to_rows(analyze(_sample_topology()))
        assert rows[0]["Type"] == "METRICS"
        assert rows[0]["Item"].startswith("Score: ")
        assert set(rows[0]) == set(HEALTH_COLUMNS)

    def test_save_csv(self, tmp_path):
        report = analyze(_sample_topology())
        out = tmp_path / "health.csv"
        HealthExporter.save(str(out), report)
        with open(out, newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        assert len(rows) == 1 + len(report.bottlenecks)
        assert rows[0]["Type"] == "METRICS"


class TestImpactExport:
    def test_status_column(self):
        report = TrafficSimulator().estimate_impact(
            _sample_topology(), [Mutation(0, disable=True)]
        )
        rows = ImpactExporter.to_rows(report, high_impact_pct=20)
        by_link = {r["Link"]: r for r in rows}
        assert by_link["C -> B"]["Status"] == "Will Congest"
        assert by_link["C -> B"]["AfterFwd"] == 85.0
        assert by_link["A -> C"]["Status"] == "OK"
        assert set(rows[0]) == set(IMPACT_COLUMNS)

    def test_high_impact_threshold(self):
        report = TrafficSimulator().estimate_impact(
            _sample_topology(), [Mutation(0, disable=True)]
        )
        rows = ImpactExporter.to_rows(report, high_impact_pct=5)
        assert {r["Link"]: r["Status"] for r in rows}["A -> C"] == "High Impact"


class TestMatrixExport:
    def test_rows_sorted(self):
        rows = MatrixExporter.to_rows(build_matrix(_sample_topology()))
        pairs = [(r["Source"], r["Destination"]) for r in rows]
        assert pairs == sorted(pairs)
        assert len(rows) == 6

    def test_json(self, tmp_path):
        data = MatrixExporter.to_json(build_matrix(_sample_topology()))
        out = tmp_path / "matrix.json"
        save_json(str(out), data)
        with open(out) as f:
            loaded = json.load(f)
        assert loaded["DE"]["FR"]["source_country"] == "DE"


class TestCapacityExport:
    def test_rows(self):
        topo = _sample_topology()
        projection = CapacityPlanner().project(topo, growth_pct=10, failed_links=[0])
        rows = CapacityExporter.to_rows(projection)
        assert len(rows) == 3
        assert set(rows[0]) == set(CAPACITY_COLUMNS)
        assert rows[0]["ProjectedLevel"] == "down"
        assert rows[2]["CurrentUtil"] == 75
        assert rows[2]["ProjectedUtil"] == 82.5
        assert rows[2]["Upgrade"] == "Upgrade to 2x capacity"
        assert rows[1]["Upgrade"] == ""

    def test_save_csv(self, tmp_path):
        out = tmp_path / "capacity.csv"
        CapacityExporter.save(str(out), CapacityPlanner().project(_sample_topology()))
        with open(out, newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        assert [r["Level"] for r in rows] == ["low", "low", "high"]
