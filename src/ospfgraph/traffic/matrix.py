"""
Country-to-country traffic matrix.

Projects observed link traffic onto the best path of every router pair
and summarizes, per ordered country pair, the carried traffic, the peak
link utilization and the link holding that peak.
"""

import logging
from dataclasses import dataclass, field, asdict
from typing import Optional

from ..config import AnalyticsConfig
from ..graph.paths import PathEngine
from ..graph.topology import Topology, TrafficSnapshot

logger = logging.getLogger(__name__)


@dataclass
class RoutePath:
    """Best path of one router pair, resolved to link indices."""
    node_ids: list[str]
    link_indices: list[int]
    total_cost: float


@dataclass
class RouteSummary:
    """Traffic summary for one ordered country pair."""
    source_country: str
    dest_country: str
    paths: list[RoutePath] = field(default_factory=list)
    total_traffic: float = 0.0
    avg_utilization: float = 0.0
    max_link_util: float = 0.0
    bottleneck_link: Optional[int] = None

    @property
    def path_count(self) -> int:
        return len(self.paths)

    def to_dict(self) -> dict:
        return asdict(self)


class TrafficMatrixBuilder:
    """Builds route summaries for every ordered pair of countries."""

    def __init__(self, config: Optional[AnalyticsConfig] = None):
        self.config = config or AnalyticsConfig()

    def build(
        self,
        topology: Topology,
        snapshot: Optional[TrafficSnapshot] = None,
    ) -> dict[str, dict[str, RouteSummary]]:
        """
        Build the matrix using snapshot traffic where present and the
        links' embedded traffic otherwise.
        """
        countries = topology.countries()
        engine = PathEngine(topology, self.config.search)

        matrix: dict[str, dict[str, RouteSummary]] = {
            src: {
                dst: RouteSummary(source_country=src, dest_country=dst)
                for dst in countries if dst != src
            }
            for src in countries
        }

        for src_country in countries:
            for dst_country in countries:
                if src_country == dst_country:
                    continue
                cell = matrix[src_country][dst_country]
                for s in topology.nodes_in(src_country):
                    for d in topology.nodes_in(dst_country):
                        self._add_route(topology, engine, snapshot, cell, s.id, d.id)

        for row in matrix.values():
            for cell in row.values():
                if cell.paths:
                    cell.avg_utilization = cell.max_link_util

        logger.debug(
            "Traffic matrix built for %d countries (snapshot=%s)",
            len(countries), snapshot.snapshot_id if snapshot else "embedded",
        )
        return matrix

    @staticmethod
    def _add_route(
        topology: Topology,
        engine: PathEngine,
        snapshot: Optional[TrafficSnapshot],
        cell: RouteSummary,
        source_id: str,
        target_id: str,
    ):
        best = engine.best_path(source_id, target_id)
        if best is None:
            return

        path_traffic = 0.0
        max_util = 0.0
        bottleneck = None
        link_indices = []

        for u, v in zip(best.nodes, best.nodes[1:]):
            idx = topology.link_between(u, v)
            if idx is None:
                continue
            link_indices.append(idx)
            traffic = topology.traffic_for(idx, snapshot)
            if traffic is None:
                continue
            util = traffic.max_utilization_pct
            if util > max_util:
                max_util = util
                bottleneck = idx
            path_traffic += traffic.total_mbps

        if not link_indices:
            return

        cell.paths.append(RoutePath(
            node_ids=list(best.nodes),
            link_indices=link_indices,
            total_cost=best.total_cost,
        ))
        cell.total_traffic += path_traffic / len(link_indices)
        if max_util > cell.max_link_util:
            cell.max_link_util = max_util
            cell.bottleneck_link = bottleneck


def build_matrix(
    topology: Topology,
    snapshot: Optional[TrafficSnapshot] = None,
    config: Optional[AnalyticsConfig] = None,
) -> dict[str, dict[str, RouteSummary]]:
    """Build a traffic matrix with a fresh builder."""
    return TrafficMatrixBuilder(config).build(topology, snapshot)
