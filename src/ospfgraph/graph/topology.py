"""
Topology data model.

Immutable nodes, links and traffic observations forming an undirected
OSPF multigraph. Links are addressed by their index in the topology's
link tuple; every derived structure keys off that index.
"""

import logging
from dataclasses import dataclass, field, replace
from functools import cached_property
from typing import Optional

import networkx as nx

from ..exceptions import TopologyError

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY_MBPS = 10000.0
LINK_UP = "up"
LINK_DOWN = "down"


@dataclass(frozen=True)
class Node:
    """An OSPF router."""
    id: str
    country: str = "Unknown"
    hostname: str = ""
    node_type: str = "router"
    loopback_ip: str = ""
    is_active: bool = True


@dataclass(frozen=True)
class TrafficObservation:
    """Measured traffic on a link in both directions."""
    forward_traffic_mbps: float = 0.0
    reverse_traffic_mbps: float = 0.0
    forward_utilization_pct: float = 0.0
    reverse_utilization_pct: float = 0.0

    @property
    def total_mbps(self) -> float:
        return self.forward_traffic_mbps + self.reverse_traffic_mbps

    @property
    def max_utilization_pct(self) -> float:
        return max(self.forward_utilization_pct, self.reverse_utilization_pct)

    @classmethod
    def from_dict(cls, data: dict) -> "TrafficObservation":
        if not isinstance(data, dict):
            raise TopologyError(f"Traffic observation must be an object, got {data!r}")
        try:
            return cls(
                forward_traffic_mbps=float(data.get("forward_traffic_mbps") or 0.0),
                reverse_traffic_mbps=float(data.get("reverse_traffic_mbps") or 0.0),
                forward_utilization_pct=float(data.get("forward_utilization_pct") or 0.0),
                reverse_utilization_pct=float(data.get("reverse_utilization_pct") or 0.0),
            )
        except (TypeError, ValueError) as e:
            raise TopologyError(f"Malformed traffic observation: {e}") from e


@dataclass(frozen=True)
class Link:
    """
    A link between two routers.

    Costs are directional: `forward_cost` applies when the link is traversed
    source -> target, `reverse_cost` when traversed target -> source. A
    missing direction falls back to the other one, and to 1 when both are
    missing.
    """
    source: str
    target: str
    status: str = LINK_UP
    forward_cost: Optional[float] = None
    reverse_cost: Optional[float] = None
    capacity_mbps: Optional[float] = None
    traffic: Optional[TrafficObservation] = None
    source_interface: str = ""
    target_interface: str = ""

    @property
    def is_up(self) -> bool:
        return self.status == LINK_UP

    @property
    def effective_forward_cost(self) -> float:
        if self.forward_cost is not None:
            return self.forward_cost
        if self.reverse_cost is not None:
            return self.reverse_cost
        return 1

    @property
    def effective_reverse_cost(self) -> float:
        if self.reverse_cost is not None:
            return self.reverse_cost
        if self.forward_cost is not None:
            return self.forward_cost
        return 1

    @property
    def is_asymmetric(self) -> bool:
        return self.effective_forward_cost != self.effective_reverse_cost

    @property
    def capacity(self) -> float:
        return self.capacity_mbps or DEFAULT_CAPACITY_MBPS

    def cost_from(self, node_id: str) -> float:
        """Cost of leaving `node_id` across this link."""
        if node_id == self.source:
            return self.effective_forward_cost
        return self.effective_reverse_cost

    def other_end(self, node_id: str) -> str:
        return self.target if node_id == self.source else self.source

    def connects(self, u: str, v: str) -> bool:
        return (self.source == u and self.target == v) or (
            self.source == v and self.target == u
        )

    @property
    def label(self) -> str:
        return f"{self.source} <-> {self.target}"


@dataclass(frozen=True)
class TrafficSnapshot:
    """A named, timestamped set of per-link traffic observations."""
    snapshot_id: str
    link_traffic: dict = field(default_factory=dict)  # link index -> TrafficObservation
    name: str = ""
    timestamp: str = ""

    def get(self, index: int) -> Optional[TrafficObservation]:
        return self.link_traffic.get(index)


@dataclass(frozen=True)
class StructuralWarning:
    """A data-integrity problem that excludes a link from traversal."""
    link_index: int
    code: str  # dangling_endpoint, negative_cost, unknown_status
    message: str


@dataclass(frozen=True)
class Topology:
    """Nodes and links of an OSPF domain, plus any recorded traffic snapshots."""
    nodes: tuple = ()
    links: tuple = ()
    snapshots: tuple = ()  # TrafficSnapshot, in document order

    # --- lookups -----------------------------------------------------------

    @cached_property
    def _node_map(self) -> dict:
        return {n.id: n for n in self.nodes}

    def node(self, node_id: str) -> Optional[Node]:
        return self._node_map.get(node_id)

    def has_node(self, node_id: str) -> bool:
        return node_id in self._node_map

    @property
    def node_ids(self) -> list[str]:
        return [n.id for n in self.nodes]

    def country_of(self, node_id: str) -> Optional[str]:
        node = self._node_map.get(node_id)
        return node.country if node else None

    @cached_property
    def _countries(self) -> dict:
        grouped: dict[str, list[Node]] = {}
        for n in self.nodes:
            grouped.setdefault(n.country, []).append(n)
        return grouped

    def countries(self) -> list[str]:
        """Distinct country codes, sorted."""
        return sorted(self._countries)

    def nodes_in(self, country: str) -> list[Node]:
        """Nodes of a country in topology order."""
        return list(self._countries.get(country, []))

    def link_between(self, u: str, v: str) -> Optional[int]:
        """Index of the first link joining u and v in either direction."""
        for idx, link in enumerate(self.links):
            if link.connects(u, v):
                return idx
        return None

    def degree(self, node_id: str) -> int:
        """Number of links incident to a node, whatever their status."""
        return sum(
            1 for link in self.links
            if link.source == node_id or link.target == node_id
        )

    def traffic_for(
        self, index: int, snapshot: Optional[TrafficSnapshot] = None
    ) -> Optional[TrafficObservation]:
        """Traffic on a link, preferring the snapshot over embedded data."""
        if snapshot is not None:
            observed = snapshot.get(index)
            if observed is not None:
                return observed
        return self.links[index].traffic

    def snapshot(self, snapshot_id: str) -> TrafficSnapshot:
        """Recorded traffic snapshot by id."""
        for snap in self.snapshots:
            if snap.snapshot_id == snapshot_id:
                return snap
        known = ", ".join(s.snapshot_id for s in self.snapshots) or "none"
        raise TopologyError(f"Unknown traffic snapshot '{snapshot_id}' (known: {known})")

    # --- integrity ---------------------------------------------------------

    def validate(self) -> list[StructuralWarning]:
        """Report links that cannot take part in path computation."""
        warnings = []
        for idx, link in enumerate(self.links):
            missing = [
                end for end in (link.source, link.target)
                if end not in self._node_map
            ]
            if missing:
                warnings.append(StructuralWarning(
                    link_index=idx,
                    code="dangling_endpoint",
                    message=f"Link {idx} ({link.label}) references unknown "
                            f"node(s): {', '.join(missing)}",
                ))
            if link.effective_forward_cost < 0 or link.effective_reverse_cost < 0:
                warnings.append(StructuralWarning(
                    link_index=idx,
                    code="negative_cost",
                    message=f"Link {idx} ({link.label}) has a negative cost",
                ))
            if link.status not in (LINK_UP, LINK_DOWN):
                warnings.append(StructuralWarning(
                    link_index=idx,
                    code="unknown_status",
                    message=f"Link {idx} ({link.label}) has unknown status "
                            f"'{link.status}', treated as down",
                ))
        return warnings

    @cached_property
    def usable_link_indices(self) -> tuple:
        """Indices of links that are up and structurally valid."""
        invalid = {w.link_index for w in self.validate()}
        return tuple(
            idx for idx, link in enumerate(self.links)
            if link.is_up and idx not in invalid
        )

    @property
    def active_link_count(self) -> int:
        return sum(1 for link in self.links if link.is_up)

    # --- derived topologies ------------------------------------------------

    def with_links(self, links) -> "Topology":
        """New topology with replaced links; nodes and snapshots are shared."""
        return Topology(nodes=self.nodes, links=tuple(links), snapshots=self.snapshots)

    def with_link_status(self, index: int, status: str) -> "Topology":
        links = list(self.links)
        links[index] = replace(links[index], status=status)
        return self.with_links(links)

    # --- networkx views ----------------------------------------------------

    def to_networkx(self) -> nx.MultiGraph:
        """Undirected multigraph keyed by link index."""
        G = nx.MultiGraph()
        for n in self.nodes:
            G.add_node(
                n.id, country=n.country, hostname=n.hostname,
                type=n.node_type, is_active=n.is_active,
            )
        for idx, link in enumerate(self.links):
            if link.source not in self._node_map or link.target not in self._node_map:
                continue
            G.add_edge(
                link.source, link.target, key=idx,
                status=link.status,
                forward_cost=link.effective_forward_cost,
                reverse_cost=link.effective_reverse_cost,
                capacity_mbps=link.capacity,
            )
        return G

    def to_weighted_digraph(self) -> nx.DiGraph:
        """
        Directed graph of usable links weighted by directional cost.

        Parallel links collapse to the cheapest one per direction.
        """
        G = nx.DiGraph()
        G.add_nodes_from(self.node_ids)
        for idx in self.usable_link_indices:
            link = self.links[idx]
            for u, v, cost in (
                (link.source, link.target, link.effective_forward_cost),
                (link.target, link.source, link.effective_reverse_cost),
            ):
                if G.has_edge(u, v) and G.edges[u, v]["weight"] <= cost:
                    continue
                G.add_edge(u, v, weight=cost, link_index=idx)
        return G

    # --- serialization -----------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict) -> "Topology":
        """
        Decode a node-link topology document.

        Link endpoints may be plain ids or node objects; `cost` is used as
        the forward cost when `forward_cost` is absent, and capacity may be
        given as `capacity_mbps` or `source_capacity.total_capacity_mbps`.
        """
        if not isinstance(data, dict):
            raise TopologyError("Topology document must be an object")

        nodes = []
        seen = set()
        for i, raw in enumerate(_as_list(data, "nodes")):
            if not isinstance(raw, dict) or not raw.get("id"):
                raise TopologyError(f"Node #{i} has no id")
            node_id = str(raw["id"])
            if node_id in seen:
                raise TopologyError(f"Duplicate node id: {node_id}")
            seen.add(node_id)
            nodes.append(Node(
                id=node_id,
                country=str(raw.get("country") or "Unknown"),
                hostname=str(raw.get("hostname") or raw.get("name") or ""),
                node_type=str(raw.get("node_type") or "router"),
                loopback_ip=str(raw.get("loopback_ip") or ""),
                is_active=bool(raw.get("is_active", True)),
            ))

        links = []
        for i, raw in enumerate(_as_list(data, "links")):
            if not isinstance(raw, dict):
                raise TopologyError(f"Link #{i} is not an object")
            source = _endpoint_id(raw.get("source"))
            target = _endpoint_id(raw.get("target"))
            if source is None or target is None:
                raise TopologyError(f"Link #{i} is missing source or target")

            forward = raw.get("forward_cost", raw.get("cost"))
            reverse = raw.get("reverse_cost")
            capacity = raw.get("capacity_mbps")
            if capacity is None:
                source_capacity = raw.get("source_capacity") or {}
                if not isinstance(source_capacity, dict):
                    raise TopologyError(f"Link #{i} source_capacity must be an object")
                capacity = source_capacity.get("total_capacity_mbps")
            traffic = raw.get("traffic")

            try:
                links.append(Link(
                    source=source,
                    target=target,
                    status=str(raw.get("status") or LINK_UP),
                    forward_cost=float(forward) if forward is not None else None,
                    reverse_cost=float(reverse) if reverse is not None else None,
                    capacity_mbps=float(capacity) if capacity else None,
                    traffic=TrafficObservation.from_dict(traffic) if traffic else None,
                    source_interface=str(raw.get("source_interface") or ""),
                    target_interface=str(raw.get("target_interface") or ""),
                ))
            except (TypeError, ValueError) as e:
                raise TopologyError(f"Link #{i} has a malformed field: {e}") from e

        snapshots = tuple(
            snapshot_from_dict(raw, snapshot_id=f"snapshot-{i}")
            for i, raw in enumerate(_as_list(data, "traffic_snapshots"))
        )

        topology = cls(nodes=tuple(nodes), links=tuple(links), snapshots=snapshots)
        for warning in topology.validate():
            logger.warning(warning.message)
        return topology

    def to_dict(self) -> dict:
        return {
            "nodes": [
                {
                    "id": n.id,
                    "country": n.country,
                    "hostname": n.hostname,
                    "node_type": n.node_type,
                    "loopback_ip": n.loopback_ip,
                    "is_active": n.is_active,
                }
                for n in self.nodes
            ],
            "links": [
                {
                    "index": idx,
                    "source": link.source,
                    "target": link.target,
                    "status": link.status,
                    "forward_cost": link.effective_forward_cost,
                    "reverse_cost": link.effective_reverse_cost,
                    "capacity_mbps": link.capacity,
                }
                for idx, link in enumerate(self.links)
            ],
            "traffic_snapshots": [
                {"snapshot_id": s.snapshot_id, "name": s.name, "timestamp": s.timestamp}
                for s in self.snapshots
            ],
        }


def snapshot_from_dict(data: dict, snapshot_id: str = "uploaded") -> TrafficSnapshot:
    """Decode an uploaded traffic document carrying a `link_traffic` field."""
    if not isinstance(data, dict) or "link_traffic" not in data:
        raise TopologyError("Traffic snapshot must contain 'link_traffic'")

    raw_traffic = data["link_traffic"]
    if isinstance(raw_traffic, list):
        raw_traffic = dict(enumerate(raw_traffic))
    if not isinstance(raw_traffic, dict):
        raise TopologyError("Traffic snapshot 'link_traffic' must be an object or a list")

    link_traffic = {}
    for key, value in raw_traffic.items():
        if not value:
            continue
        try:
            link_traffic[int(key)] = TrafficObservation.from_dict(value)
        except (TypeError, ValueError) as e:
            raise TopologyError(f"Bad traffic entry for link {key}: {e}") from e

    return TrafficSnapshot(
        snapshot_id=str(data.get("snapshot_id") or snapshot_id),
        link_traffic=link_traffic,
        name=str(data.get("snapshot_name") or data.get("name") or ""),
        timestamp=str(data.get("timestamp") or ""),
    )


def _as_list(data: dict, key: str) -> list:
    value = data.get(key) or []
    if not isinstance(value, list):
        raise TopologyError(f"Topology '{key}' must be a list")
    return value


def _endpoint_id(value) -> Optional[str]:
    if isinstance(value, dict):
        value = value.get("id")
    if value is None or value == "":
        return None
    return str(value)
