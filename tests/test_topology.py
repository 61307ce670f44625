"""Tests for the topology data model."""

import pytest
from ospfgraph.exceptions import TopologyError
from ospfgraph.graph.topology import (
    Topology, Node, Link, TrafficObservation, TrafficSnapshot,
    snapshot_from_dict, DEFAULT_CAPACITY_MBPS,
)


def _sample_document():
    return {
        "nodes": [
            {"id": "R1", "country": "US", "hostname": "nyc-core-1"},
            {"id": "R2", "country": "DE", "name": "fra-core-1"},
            {"id": "R3", "country": "DE"},
        ],
        "links": [
            {"source": "R1", "target": "R2", "cost": 10, "reverse_cost": 20,
             "status": "up",
             "source_capacity": {"total_capacity_mbps": 40000},
             "traffic": {"forward_traffic_mbps": 100, "reverse_traffic_mbps": 50,
                         "forward_utilization_pct": 12.5,
                         "reverse_utilization_pct": 6.0}},
            {"source": {"id": "R2"}, "target": {"id": "R3"}, "forward_cost": 1},
            {"source": "R3", "target": "R9", "cost": 1},
        ],
    }


class TestTopology:
    def test_from_dict(self):
        topo = Topology.from_dict(_sample_document())
        assert len(topo.nodes) == 3
        assert len(topo.links) == 3
        assert topo.node("R2").hostname == "fra-core-1"
        assert topo.links[1].source == "R2"

    def test_cost_fallbacks(self):
        topo = Topology.from_dict(_sample_document())
        assert topo.links[0].effective_forward_cost == 10
        assert topo.links[0].effective_reverse_cost == 20
        assert topo.links[1].effective_reverse_cost == 1

    def test_capacity(self):
        topo = Topology.from_dict(_sample_document())
        assert topo.links[0].capacity == 40000
        assert topo.links[1].capacity == DEFAULT_CAPACITY_MBPS

    def test_embedded_traffic(self):
        topo = Topology.from_dict(_sample_document())
        traffic = topo.links[0].traffic
        assert traffic.total_mbps == 150
        assert traffic.max_utilization_pct == 12.5

    def test_dangling_link_warning(self):
        topo = Topology.from_dict(_sample_document())
        warnings = topo.validate()
        assert len(warnings) == 1
        assert warnings[0].link_index == 2
        assert warnings[0].code == "dangling_endpoint"
        assert 2 not in topo.usable_link_indices

    def test_negative_cost_warning(self):
        topo = Topology(
            nodes=(Node("A"), Node("B")),
            links=(Link("A", "B", forward_cost=-1),),
        )
        assert topo.validate()[0].code == "negative_cost"
        assert topo.usable_link_indices == ()

    def test_duplicate_node_rejected(self):
        with pytest.raises(TopologyError):
            Topology.from_dict({"nodes": [{"id": "A"}, {"id": "A"}], "links": []})

    def test_node_without_id_rejected(self):
        with pytest.raises(TopologyError):
            Topology.from_dict({"nodes": [{"country": "US"}]})

    def test_link_without_endpoint_rejected(self):
        with pytest.raises(TopologyError):
            Topology.from_dict({"nodes": [{"id": "A"}], "links": [{"source": "A"}]})

    def test_countries_sorted(self):
        topo = Topology.from_dict(_sample_document())
        assert topo.countries() == ["DE", "US"]
        assert [n.id for n in topo.nodes_in("DE")] == ["R2", "R3"]

    def test_link_between_either_direction(self):
        topo = Topology.from_dict(_sample_document())
        assert topo.link_between("R2", "R1") == 0
        assert topo.link_between("R1", "R3") is None

    def test_degree_counts_all_links(self):
        topo = Topology.from_dict(_sample_document())
        assert topo.degree("R3") == 2
        assert topo.degree("R1") == 1

    def test_with_link_status_shares_nodes(self):
        topo = Topology.from_dict(_sample_document())
        down = topo.with_link_status(0, "down")
        assert down.nodes is topo.nodes
        assert not down.links[0].is_up
        assert topo.links[0].is_up

    def test_to_networkx(self):
        G = Topology.from_dict(_sample_document()).to_networkx()
        assert G.number_of_nodes() == 3
        assert G.number_of_edges() == 2
        assert G.nodes["R1"]["country"] == "US"

    def test_weighted_digraph_directional(self):
        G = Topology.from_dict(_sample_document()).to_weighted_digraph()
        assert G.edges["R1", "R2"]["weight"] == 10
        assert G.edges["R2", "R1"]["weight"] == 20

    def test_round_trip_dict(self):
        topo = Topology.from_dict(_sample_document())
        data = topo.to_dict()
        assert data["links"][0]["forward_cost"] == 10
        assert data["nodes"][0]["id"] == "R1"


class TestTrafficSnapshot:
    def test_snapshot_from_dict(self):
        snap = snapshot_from_dict({
            "snapshot_name": "peak",
            "link_traffic": {"0": {"forward_utilization_pct": 90}},
        })
        assert snap.snapshot_id == "uploaded"
        assert snap.name == "peak"
        assert snap.get(0).forward_utilization_pct == 90
        assert snap.get(1) is None

    def test_snapshot_requires_link_traffic(self):
        with pytest.raises(TopologyError):
            snapshot_from_dict({"traffic": {}})

    def test_snapshot_preferred_over_embedded(self):
        topo = Topology.from_dict(_sample_document())
        snap = TrafficSnapshot(
            snapshot_id="s1",
            link_traffic={0: TrafficObservation(forward_utilization_pct=99)},
        )
        assert topo.traffic_for(0, snap).forward_utilization_pct == 99
        assert topo.traffic_for(0).forward_utilization_pct == 12.5
        assert topo.traffic_for(1, snap) is None

    def test_snapshot_rejects_non_object_entry(self):
        with pytest.raises(TopologyError):
            snapshot_from_dict({"link_traffic": {"0": 42}})

    def test_snapshot_rejects_scalar_link_traffic(self):
        with pytest.raises(TopologyError):
            snapshot_from_dict({"link_traffic": "busy"})

    def test_non_object_link_traffic_rejected(self):
        doc = _sample_document()
        doc["links"][1]["traffic"] = "hot"
        with pytest.raises(TopologyError):
            Topology.from_dict(doc)

    def test_non_object_source_capacity_rejected(self):
        doc = _sample_document()
        doc["links"][1]["source_capacity"] = 1000
        with pytest.raises(TopologyError):
            Topology.from_dict(doc)

    def test_non_list_sections_rejected(self):
        with pytest.raises(TopologyError):
            Topology.from_dict({"nodes": "R1"})
        with pytest.raises(TopologyError):
            Topology.from_dict({"nodes": [{"id": "A"}], "traffic_snapshots": {"peak": {}}})


def _document_with_snapshots():
    doc = _sample_document()
    doc["traffic_snapshots"] = [
        {
            "snapshot_id": "peak",
            "snapshot_name": "Evening peak",
            "timestamp": "2024-03-01T20:00:00Z",
            "link_traffic": {"0": {"forward_utilization_pct": 95}},
        },
        {"link_traffic": [None, {"reverse_utilization_pct": 5}]},
    ]
    return doc


class TestRecordedSnapshots:
    def test_decoded_in_document_order(self):
        topo = Topology.from_dict(_document_with_snapshots())
        assert [s.snapshot_id for s in topo.snapshots] == ["peak", "snapshot-1"]
        assert topo.snapshots[0].name == "Evening peak"
        assert topo.snapshots[0].timestamp == "2024-03-01T20:00:00Z"

    def test_lookup_by_id(self):
        topo = Topology.from_dict(_document_with_snapshots())
        peak = topo.snapshot("peak")
        assert topo.traffic_for(0, peak).forward_utilization_pct == 95
        generated = topo.snapshot("snapshot-1")
        assert generated.get(0) is None
        assert generated.get(1).reverse_utilization_pct == 5

    def test_unknown_id(self):
        topo = Topology.from_dict(_document_with_snapshots())
        with pytest.raises(TopologyError, match="peak, snapshot-1"):
            topo.snapshot("overnight")

    def test_no_snapshots(self):
        topo = Topology.from_dict(_sample_document())
        assert topo.snapshots == ()
        with pytest.raises(TopologyError):
            topo.snapshot("peak")

    def test_kept_across_derived_topologies(self):
        topo = Topology.from_dict(_document_with_snapshots())
        assert topo.with_link_status(0, "down").snapshots is topo.snapshots

    def test_listed_in_to_dict(self):
        data = Topology.from_dict(_document_with_snapshots()).to_dict()
        assert [s["snapshot_id"] for s in data["traffic_snapshots"]] == ["peak", "snapshot-1"]

    def test_bad_entry_rejected(self):
        doc = _document_with_snapshots()
        doc["traffic_snapshots"][1]["link_traffic"] = {"0": 42}
        with pytest.raises(TopologyError):
            Topology.from_dict(doc)
