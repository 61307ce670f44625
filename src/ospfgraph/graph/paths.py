"""
Path engine.

Enumerates simple, cost-ordered paths between two routers over the links
that are up, honouring direction-dependent OSPF costs. All analyses in
ospfgraph are built on this search.
"""

import heapq
import logging
from dataclasses import dataclass
from typing import Optional

import networkx as nx
import numpy as np

from ..config import SearchLimits
from .topology import Topology

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Path:
    """A loop-free route through the topology."""
    nodes: tuple  # node ids, source first
    links: tuple  # traversed link indices
    total_cost: float
    id: str = ""

    @property
    def hop_count(self) -> int:
        return len(self.links)

    @property
    def source(self) -> str:
        return self.nodes[0]

    @property
    def target(self) -> str:
        return self.nodes[-1]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "nodes": list(self.nodes),
            "links": list(self.links),
            "total_cost": self.total_cost,
            "hop_count": self.hop_count,
        }


class PathEngine:
    """
    Bounded depth-first simple-path search over one topology.

    The adjacency is built once per engine, so analyses that issue many
    queries against the same topology should share an engine.

    Neighbors are expanded in ascending (cost, link index) order. Results
    are sorted by total cost with ties kept in discovery order. Two bounds
    guarantee termination: a hop cap (`SearchLimits.max_hops`, default
    node count - 1) and an expansion cap (`SearchLimits.max_expansions`).
    When `max_paths` is finite, a branch is abandoned once its cost plus
    the cheapest remaining cost to the target (a reverse Dijkstra, cached
    per target) is strictly above the current k-th best candidate.
    Branches that cannot reach the target at all are never entered. With
    non-negative costs neither rule changes the returned paths.
    """

    def __init__(self, topology: Topology, limits: Optional[SearchLimits] = None):
        self.topology = topology
        self.limits = limits or SearchLimits()
        self._adjacency = self._build_adjacency()
        self._digraph: Optional[nx.DiGraph] = None
        self._remaining: dict[str, dict] = {}

    def _build_adjacency(self) -> dict:
        adj = {node_id: [] for node_id in self.topology.node_ids}
        for idx in self.topology.usable_link_indices:
            link = self.topology.links[idx]
            adj[link.source].append((link.effective_forward_cost, idx, link.target))
            adj[link.target].append((link.effective_reverse_cost, idx, link.source))
        for edges in adj.values():
            edges.sort(key=lambda e: (e[0], e[1]))
        return adj

    def _remaining_costs(self, target_id: str) -> dict:
        """Cheapest cost from every node to `target_id`; unreachable nodes are absent."""
        remaining = self._remaining.get(target_id)
        if remaining is None:
            if self._digraph is None:
                self._digraph = self.topology.to_weighted_digraph()
            remaining = nx.single_source_dijkstra_path_length(
                self._digraph.reverse(copy=False), target_id, weight="weight"
            )
            self._remaining[target_id] = remaining
        return remaining

    def find_paths(
        self,
        source_id: str,
        target_id: str,
        max_paths: Optional[int] = None,
    ) -> list[Path]:
        """Paths from source to target, cheapest first, at most `max_paths`."""
        adj = self._adjacency
        if source_id == target_id or source_id not in adj or target_id not in adj:
            return []
        if max_paths is not None and max_paths < 1:
            return []

        remaining = self._remaining_costs(target_id)
        if source_id not in remaining:
            return []

        max_hops = self.limits.max_hops
        if max_hops is None:
            max_hops = len(adj) - 1

        found = []
        # Max-heap (negated) of the k cheapest costs seen so far
        best = []

        def cutoff() -> float:
            if max_paths is None or len(best) < max_paths:
                return float("inf")
            return -best[0]

        on_path = {source_id}
        node_stack = [source_id]
        link_stack = []
        cost_stack = [0]
        edge_iters = [iter(adj[source_id])]
        expansions = 0

        while edge_iters:
            edge = next(edge_iters[-1], None)
            if edge is None:
                edge_iters.pop()
                on_path.discard(node_stack.pop())
                cost_stack.pop()
                if link_stack:
                    link_stack.pop()
                continue

            cost, idx, neighbor = edge
            if neighbor in on_path:
                continue
            new_cost = cost_stack[-1] + cost
            if new_cost > cutoff():
                continue
            # Prune branches that cannot reach the target within the cutoff
            floor = remaining.get(neighbor)
            if floor is None or _exceeds(new_cost + floor, cutoff()):
                continue

            expansions += 1
            if expansions > self.limits.max_expansions:
                logger.warning(
                    "Path search %s -> %s stopped after %d expansions; "
                    "returning %d candidate(s)",
                    source_id, target_id, self.limits.max_expansions, len(found),
                )
                break

            hops = len(node_stack)  # hop count once neighbor is appended
            if neighbor == target_id:
                if hops <= max_hops:
                    found.append((new_cost, tuple(node_stack) + (neighbor,),
                                  tuple(link_stack) + (idx,)))
                    if max_paths is not None:
                        if len(best) < max_paths:
                            heapq.heappush(best, -new_cost)
                        elif new_cost < -best[0]:
                            heapq.heapreplace(best, -new_cost)
                continue

            if hops + 1 > max_hops:
                continue

            on_path.add(neighbor)
            node_stack.append(neighbor)
            link_stack.append(idx)
            cost_stack.append(new_cost)
            edge_iters.append(iter(adj[neighbor]))

        found.sort(key=lambda item: item[0])
        if max_paths is not None:
            found = found[:max_paths]

        return [
            Path(nodes=nodes, links=links, total_cost=cost,
                 id=f"{source_id}-{target_id}-{rank}")
            for rank, (cost, nodes, links) in enumerate(found)
        ]

    def best_path(self, source_id: str, target_id: str) -> Optional[Path]:
        paths = self.find_paths(source_id, target_id, max_paths=1)
        return paths[0] if paths else None


def find_paths(
    nodes,
    links,
    source_id: str,
    target_id: str,
    max_paths: Optional[int] = None,
    limits: Optional[SearchLimits] = None,
) -> list[Path]:
    """Stateless entry point: paths over the given node and link collections."""
    topology = Topology(nodes=tuple(nodes), links=tuple(links))
    return PathEngine(topology, limits).find_paths(source_id, target_id, max_paths)


def shortest_path_cost(topology: Topology, source_id: str, target_id: str) -> float:
    """Dijkstra cost between two routers; inf when unreachable."""
    if source_id == target_id:
        return 0.0
    if not topology.has_node(source_id) or not topology.has_node(target_id):
        return float("inf")
    G = topology.to_weighted_digraph()
    try:
        return float(nx.dijkstra_path_length(G, source_id, target_id, weight="weight"))
    except nx.NetworkXNoPath:
        return float("inf")


def cost_matrix(
    topology: Topology, source_country: str, dest_country: str
) -> tuple[list[str], list[str], np.ndarray]:
    """
    Shortest-path cost from every router of one country to every router
    of another.

    Returns (source ids, destination ids, matrix) with ids sorted and
    unreachable pairs set to inf.
    """
    src_ids = sorted(n.id for n in topology.nodes_in(source_country))
    dst_ids = sorted(n.id for n in topology.nodes_in(dest_country))
    matrix = np.full((len(src_ids), len(dst_ids)), np.inf)

    G = topology.to_weighted_digraph()
    for i, s in enumerate(src_ids):
        lengths = nx.single_source_dijkstra_path_length(G, s, weight="weight")
        for j, d in enumerate(dst_ids):
            if d in lengths:
                matrix[i, j] = lengths[d]
    return src_ids, dst_ids, matrix


def _exceeds(cost: float, cutoff: float) -> bool:
    # Tolerate float drift between path sums and Dijkstra sums
    return cost > cutoff + 1e-9 * max(1.0, abs(cutoff))
