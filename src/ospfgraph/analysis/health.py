"""
Network health analysis.

Scans every country pair with the path engine to derive health metrics,
single points of failure, bottleneck links/nodes/transit countries and a
prioritized list of recommendations, folded into one 0-100 health score.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field, asdict, replace
from typing import Optional

import numpy as np

from ..config import AnalyticsConfig
from ..graph.paths import PathEngine, Path
from ..graph.topology import Topology, StructuralWarning, LINK_DOWN

logger = logging.getLogger(__name__)

SEVERITY_ORDER = {"critical": 0, "high": 1, "medium": 2, "low": 3}


@dataclass
class HealthMetrics:
    """Aggregate topology metrics."""
    node_count: int = 0
    link_count: int = 0
    avg_path_cost: float = 0.0
    redundancy_score: int = 0  # 0-100
    single_points_of_failure: int = 0
    asymmetric_link_count: int = 0
    active_links: int = 0
    down_links: int = 0
    avg_links_per_node: float = 0.0
    country_count: int = 0


@dataclass
class Bottleneck:
    """A link, node or transit country carrying a disproportionate share of paths."""
    type: str  # "link", "node" or "country"
    item: str
    severity: str  # low, medium, high, critical
    description: str
    paths_affected: int = 0
    link_index: Optional[int] = None


@dataclass
class Recommendation:
    """An operator action suggested by the health rules."""
    priority: int
    title: str
    description: str
    impact: str
    effort: str  # low, medium, high


@dataclass
class HealthReport:
    """Complete health analysis output."""
    metrics: HealthMetrics = field(default_factory=HealthMetrics)
    bottlenecks: list[Bottleneck] = field(default_factory=list)
    recommendations: list[Recommendation] = field(default_factory=list)
    health_score: int = 0
    spof_links: list[int] = field(default_factory=list)
    warnings: list[StructuralWarning] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "metrics": asdict(self.metrics),
            "bottlenecks": [asdict(b) for b in self.bottlenecks],
            "recommendations": [asdict(r) for r in self.recommendations],
            "health_score": self.health_score,
            "spof_links": list(self.spof_links),
            "warnings": [asdict(w) for w in self.warnings],
        }


class HealthAnalyzer:
    """
    Topology health engine.

    Provides:
      - Path usage accounting across all country pairs
      - Single point of failure detection by simulated link removal
      - Link, node and transit-country bottleneck detection
      - Rule-based recommendations and an overall health score
    """

    def __init__(self, config: Optional[AnalyticsConfig] = None):
        self.config = config or AnalyticsConfig()
        self.policy = self.config.health

    def analyze(self, topology: Topology) -> HealthReport:
        """Run the full health analysis on a topology."""
        warnings = topology.validate()
        for w in warnings:
            logger.warning(w.message)

        engine = PathEngine(topology, self.config.search)
        scan_engine = engine
        if self.policy.scan_max_hops is not None:
            scan_engine = PathEngine(
                topology, replace(self.config.search, max_hops=self.policy.scan_max_hops)
            )
        countries = topology.countries()

        all_paths: list[Path] = []
        link_usage: Counter = Counter()
        node_usage: Counter = Counter()

        for src_country in countries:
            for dst_country in countries:
                if src_country == dst_country:
                    continue
                for s in topology.nodes_in(src_country):
                    for d in topology.nodes_in(dst_country):
                        paths = scan_engine.find_paths(
                            s.id, d.id, self.policy.max_paths_per_pair
                        )
                        for path in paths:
                            all_paths.append(path)
                            node_usage.update(path.nodes)
                            link_usage.update(path.links)

        logger.debug(
            "Health scan: %d countries, %d paths discovered",
            len(countries), len(all_paths),
        )

        spof_links = self.find_spof_links(topology, engine)
        metrics = self.compute_metrics(topology, all_paths, spof_links)

        transit = self.transit_counts(topology, all_paths)
        bottlenecks = self.find_bottlenecks(topology, link_usage, node_usage, transit)

        critical = sum(1 for b in bottlenecks if b.severity == "critical")
        health_score = self.health_score(metrics, critical)

        return HealthReport(
            metrics=metrics,
            bottlenecks=bottlenecks[: self.policy.max_bottlenecks],
            recommendations=self.recommend(topology, metrics),
            health_score=health_score,
            spof_links=spof_links,
            warnings=warnings,
        )

    def find_spof_links(
        self, topology: Topology, engine: Optional[PathEngine] = None
    ) -> list[int]:
        """
        Links whose loss disconnects a previously connected country pair.

        Each country is represented by its first router. Only pairs whose
        baseline best path crosses a link can lose connectivity when that
        link goes down, so other pairs are not re-queried.
        """
        engine = engine or PathEngine(topology, self.config.search)
        countries = topology.countries()
        reps = {c: topology.nodes_in(c)[0].id for c in countries}

        baseline = []
        for src_country in countries:
            for dst_country in countries:
                if src_country == dst_country:
                    continue
                best = engine.best_path(reps[src_country], reps[dst_country])
                if best is not None:
                    baseline.append(best)

        spof = []
        for idx in topology.usable_link_indices:
            candidates = [p for p in baseline if idx in p.links]
            if not candidates:
                continue
            trial = PathEngine(topology.with_link_status(idx, LINK_DOWN), self.config.search)
            for path in candidates:
                if trial.best_path(path.source, path.target) is None:
                    logger.debug(
                        "Link %d is a SPOF for %s -> %s", idx, path.source, path.target
                    )
                    spof.append(idx)
                    break
        return spof

    def compute_metrics(
        self, topology: Topology, all_paths: list[Path], spof_links: list[int]
    ) -> HealthMetrics:
        node_count = len(topology.nodes)
        link_count = len(topology.links)
        active = topology.active_link_count
        countries = topology.countries()
        pair_count = len(countries) * (len(countries) - 1)

        avg_cost = float(np.mean([p.total_cost for p in all_paths])) if all_paths else 0.0

        return HealthMetrics(
            node_count=node_count,
            link_count=link_count,
            avg_path_cost=round(avg_cost),
            redundancy_score=self.redundancy_score(
                len(all_paths) / max(1, pair_count), active, node_count, len(spof_links)
            ),
            single_points_of_failure=len(spof_links),
            asymmetric_link_count=sum(1 for link in topology.links if link.is_asymmetric),
            active_links=active,
            down_links=link_count - active,
            avg_links_per_node=(link_count * 2) / node_count if node_count else 0.0,
            country_count=len(countries),
        )

    def redundancy_score(
        self, avg_paths_per_pair: float, active_links: int, node_count: int, spof_count: int
    ) -> int:
        """
        Redundancy score (0-100).

        Based on:
          - Average discovered paths per country pair (saturating)
          - Active links relative to node count (capped)
          - A fixed baseline
          - A penalty per single point of failure
        """
        p = self.policy
        if avg_paths_per_pair > p.path_saturation:
            path_term = p.path_term_max
        else:
            path_term = avg_paths_per_pair * p.path_term_per_path

        if node_count == 0:
            link_term = 0.0
        elif active_links > node_count:
            link_term = p.link_term_max
        else:
            link_term = active_links / node_count * p.link_term_max

        raw = path_term + link_term + p.baseline_term - spof_count * p.spof_redundancy_penalty
        return int(_clamp(round(raw)))

    @staticmethod
    def transit_counts(topology: Topology, all_paths: list[Path]) -> Counter:
        """Interior hops per country, excluding the path's own end countries."""
        transit: Counter = Counter()
        for path in all_paths:
            src_country = topology.country_of(path.source)
            dst_country = topology.country_of(path.target)
            for node_id in path.nodes[1:-1]:
                country = topology.country_of(node_id)
                if country not in (src_country, dst_country):
                    transit[country] += 1
        return transit

    def find_bottlenecks(
        self,
        topology: Topology,
        link_usage: Counter,
        node_usage: Counter,
        transit: Counter,
    ) -> list[Bottleneck]:
        """All bottlenecks, most severe first."""
        p = self.policy
        bottlenecks = []

        max_link = max(link_usage.values(), default=0) or 1
        for idx, usage in link_usage.items():
            pct = usage / max_link * 100
            if pct < p.link_bottleneck_pct:
                continue
            if pct >= p.link_critical_pct:
                severity = "critical"
            elif pct >= p.link_high_pct:
                severity = "high"
            else:
                severity = "medium"
            bottlenecks.append(Bottleneck(
                type="link",
                item=topology.links[idx].label,
                severity=severity,
                description=f"High traffic concentration ({usage} paths)",
                paths_affected=usage,
                link_index=idx,
            ))

        max_node = max(node_usage.values(), default=0) or 1
        for node_id, usage in node_usage.items():
            pct = usage / max_node * 100
            if pct < p.node_bottleneck_pct:
                continue
            bottlenecks.append(Bottleneck(
                type="node",
                item=node_id,
                severity="critical" if pct >= p.node_critical_pct else "high",
                description=f"Critical transit node in "
                            f"{topology.country_of(node_id) or 'Unknown'}",
                paths_affected=usage,
            ))

        max_transit = max(transit.values(), default=0) or 1
        for country, count in transit.items():
            pct = count / max_transit * 100
            if pct < p.country_bottleneck_pct:
                continue
            if pct >= p.country_critical_pct:
                severity = "critical"
            elif pct >= p.country_high_pct:
                severity = "high"
            else:
                severity = "medium"
            bottlenecks.append(Bottleneck(
                type="country",
                item=country,
                severity=severity,
                description=f"Heavy transit hub ({count} paths through)",
                paths_affected=count,
            ))

        bottlenecks.sort(key=lambda b: SEVERITY_ORDER[b.severity])
        return bottlenecks

    def recommend(self, topology: Topology, metrics: HealthMetrics) -> list[Recommendation]:
        """Evaluate the recommendation rules in priority order."""
        p = self.policy
        recs = []

        if metrics.single_points_of_failure > 0:
            recs.append(Recommendation(
                priority=1,
                title="Address Single Points of Failure",
                description=f"{metrics.single_points_of_failure} link(s) are single "
                            f"points of failure. Add redundant paths to improve resilience.",
                impact="Critical for network reliability",
                effort="high",
            ))

        if metrics.down_links > 0:
            recs.append(Recommendation(
                priority=2,
                title="Restore Down Links",
                description=f"{metrics.down_links} link(s) are currently down. "
                            f"Restore them to improve connectivity.",
                impact="May be affecting path availability",
                effort="medium",
            ))

        if metrics.asymmetric_link_count > 0:
            recs.append(Recommendation(
                priority=3,
                title="Review Asymmetric Routing",
                description=f"{metrics.asymmetric_link_count} link(s) have asymmetric "
                            f"costs. Verify this is intentional.",
                impact="May cause unexpected traffic patterns",
                effort="low",
            ))

        weak = [
            n.id for n in topology.nodes
            if topology.degree(n.id) < p.min_node_connections
        ]
        if weak:
            recs.append(Recommendation(
                priority=4,
                title="Improve Node Connectivity",
                description=f"{len(weak)} node(s) have fewer than "
                            f"{p.min_node_connections} connections. Consider adding backup links.",
                impact="Single-homed nodes are vulnerable",
                effort="medium",
            ))

        if metrics.redundancy_score < p.low_redundancy_threshold:
            recs.append(Recommendation(
                priority=5,
                title="Increase Network Redundancy",
                description="Overall redundancy score is low. Add more diverse "
                            "paths between major locations.",
                impact="Network is vulnerable to failures",
                effort="high",
            ))

        recs.sort(key=lambda r: r.priority)
        return recs[: p.max_recommendations]

    def health_score(self, metrics: HealthMetrics, critical_bottlenecks: int) -> int:
        p = self.policy
        score = 100.0
        score -= metrics.single_points_of_failure * p.spof_health_penalty
        score -= metrics.down_links * p.down_link_health_penalty
        score -= min(
            p.critical_bottleneck_penalty_cap,
            critical_bottlenecks * p.critical_bottleneck_penalty,
        )
        score += metrics.redundancy_score / p.redundancy_divisor
        return int(_clamp(round(score)))


def analyze(topology: Topology, config: Optional[AnalyticsConfig] = None) -> HealthReport:
    """Run a health analysis with a fresh analyzer."""
    return HealthAnalyzer(config).analyze(topology)


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))
