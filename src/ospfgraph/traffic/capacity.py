"""
Capacity planning.

Classifies every link by its peak directional utilization, projects
utilization under uniform traffic growth with optional simulated link
failures, and sizes upgrades that bring hot links back to a target
utilization.
"""

import logging
import math
from dataclasses import dataclass, field, asdict
from typing import Optional

import numpy as np

from ..config import AnalyticsConfig, CapacityPolicy
from ..exceptions import OspfGraphError
from ..graph.topology import Topology, TrafficSnapshot

logger = logging.getLogger(__name__)

LEVEL_LOW = "low"
LEVEL_MEDIUM = "medium"
LEVEL_HIGH = "high"
LEVEL_CRITICAL = "critical"
LEVELS = (LEVEL_LOW, LEVEL_MEDIUM, LEVEL_HIGH, LEVEL_CRITICAL)

SORT_FIELDS = ("utilization", "capacity", "traffic", "source", "target")


@dataclass
class LinkCapacity:
    """Current load of one link against its capacity."""
    link_index: int
    source_id: str
    target_id: str
    source_country: str
    target_country: str
    capacity: float
    forward_traffic: float
    reverse_traffic: float
    forward_util: float
    reverse_util: float
    level: str
    is_down: bool = False

    @property
    def max_util(self) -> float:
        return max(self.forward_util, self.reverse_util)

    @property
    def total_traffic(self) -> float:
        return self.forward_traffic + self.reverse_traffic

    def to_dict(self) -> dict:
        d = asdict(self)
        d["max_util"] = self.max_util
        d["capacity_display"] = format_capacity(self.capacity)
        return d


@dataclass
class CapacitySummary:
    """Link counts per level (links that are up) and aggregate load."""
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    down: int = 0
    total_capacity: float = 0.0
    total_traffic: float = 0.0
    avg_util: float = 0.0


@dataclass
class ProjectedLink:
    """One link under projected growth."""
    current: LinkCapacity
    forward_traffic: float
    reverse_traffic: float
    forward_util: float
    reverse_util: float
    level: str
    simulated_down: bool
    would_exceed_capacity: bool
    upgrade_needed: bool
    level_change: str  # degraded, improved, unchanged

    @property
    def max_util(self) -> float:
        return max(self.forward_util, self.reverse_util)


@dataclass
class UpgradeRecommendation:
    """Capacity needed to bring a projected hot link back to target."""
    link_index: int
    label: str
    current_capacity: float
    projected_util: float
    needed_capacity: float
    upgrade_amount: float
    multiplier: int
    suggestion: str


@dataclass
class GrowthProjection:
    """Outcome of a growth simulation."""
    growth_pct: float
    failed_links: list[int] = field(default_factory=list)
    links: list[ProjectedLink] = field(default_factory=list)
    recommendations: list[UpgradeRecommendation] = field(default_factory=list)
    baseline_critical: int = 0

    def _live(self) -> list[ProjectedLink]:
        return [p for p in self.links if not p.simulated_down]

    @property
    def critical(self) -> int:
        return sum(1 for p in self._live() if p.level == LEVEL_CRITICAL)

    @property
    def high(self) -> int:
        return sum(1 for p in self._live() if p.level == LEVEL_HIGH)

    @property
    def degraded(self) -> int:
        return sum(1 for p in self.links if p.level_change == "degraded")

    @property
    def exceeded_capacity(self) -> int:
        return sum(1 for p in self._live() if p.would_exceed_capacity)

    @property
    def critical_increase(self) -> int:
        return self.critical - self.baseline_critical

    def to_dict(self) -> dict:
        return {
            "growth_pct": self.growth_pct,
            "failed_links": list(self.failed_links),
            "critical": self.critical,
            "high": self.high,
            "degraded": self.degraded,
            "exceeded_capacity": self.exceeded_capacity,
            "upgrades_needed": len(self.recommendations),
            "baseline_critical": self.baseline_critical,
            "critical_increase": self.critical_increase,
            "links": [
                {
                    "link_index": p.current.link_index,
                    "level": p.level,
                    "previous_level": p.current.level,
                    "forward_util": p.forward_util,
                    "reverse_util": p.reverse_util,
                    "simulated_down": p.simulated_down,
                    "would_exceed_capacity": p.would_exceed_capacity,
                    "level_change": p.level_change,
                }
                for p in self.links
            ],
            "recommendations": [asdict(r) for r in self.recommendations],
        }


class CapacityPlanner:
    """
    Link utilization bands and growth-driven upgrade planning.

    Utilization comes from the observed percentage when one is recorded
    and is otherwise derived from traffic over capacity. Growth scales
    both directions uniformly; a simulated failure drops the link to zero
    load without moving its traffic elsewhere (use `TrafficSimulator` for
    rerouting effects).
    """

    def __init__(self, config: Optional[AnalyticsConfig] = None):
        self.config = config or AnalyticsConfig()
        self.policy: CapacityPolicy = self.config.capacity

    def classify(self, util: float) -> str:
        p = self.policy
        if util >= p.critical_pct:
            return LEVEL_CRITICAL
        if util >= p.high_pct:
            return LEVEL_HIGH
        if util >= p.medium_pct:
            return LEVEL_MEDIUM
        return LEVEL_LOW

    def link_metrics(
        self,
        topology: Topology,
        snapshot: Optional[TrafficSnapshot] = None,
    ) -> list[LinkCapacity]:
        """Per-link load in topology order."""
        metrics = []
        for idx, link in enumerate(topology.links):
            traffic = topology.traffic_for(idx, snapshot)
            capacity = link.capacity
            fwd = traffic.forward_traffic_mbps if traffic else 0.0
            rev = traffic.reverse_traffic_mbps if traffic else 0.0
            fwd_util = (traffic.forward_utilization_pct if traffic else 0.0) or _pct(fwd, capacity)
            rev_util = (traffic.reverse_utilization_pct if traffic else 0.0) or _pct(rev, capacity)
            metrics.append(LinkCapacity(
                link_index=idx,
                source_id=link.source,
                target_id=link.target,
                source_country=topology.country_of(link.source) or "Unknown",
                target_country=topology.country_of(link.target) or "Unknown",
                capacity=capacity,
                forward_traffic=fwd,
                reverse_traffic=rev,
                forward_util=fwd_util,
                reverse_util=rev_util,
                level=self.classify(max(fwd_util, rev_util)),
                is_down=not link.is_up,
            ))
        return metrics

    @staticmethod
    def summarize(metrics: list[LinkCapacity]) -> CapacitySummary:
        summary = CapacitySummary()
        live = [m for m in metrics if not m.is_down]
        for m in live:
            setattr(summary, m.level, getattr(summary, m.level) + 1)
        summary.down = len(metrics) - len(live)
        summary.total_capacity = float(sum(m.capacity for m in live))
        summary.total_traffic = float(sum(m.total_traffic for m in metrics))
        if live:
            summary.avg_util = float(np.mean([m.max_util for m in live]))
        return summary

    @staticmethod
    def filter_and_sort(
        metrics: list[LinkCapacity],
        level: Optional[str] = None,
        sort_by: str = "utilization",
        ascending: bool = False,
    ) -> list[LinkCapacity]:
        """Links of one level (all when None), ordered by a sort field."""
        if level is not None and level not in LEVELS:
            raise OspfGraphError(f"Unknown utilization level '{level}' (use {', '.join(LEVELS)})")
        keys = {
            "utilization": lambda m: m.max_util,
            "capacity": lambda m: m.capacity,
            "traffic": lambda m: m.total_traffic,
            "source": lambda m: m.source_id,
            "target": lambda m: m.target_id,
        }
        if sort_by not in keys:
            raise OspfGraphError(f"Unknown sort field '{sort_by}' (use {', '.join(SORT_FIELDS)})")
        selected = [m for m in metrics if level is None or m.level == level]
        return sorted(selected, key=keys[sort_by], reverse=not ascending)

    def project(
        self,
        topology: Topology,
        growth_pct: Optional[float] = None,
        failed_links=(),
        snapshot: Optional[TrafficSnapshot] = None,
    ) -> GrowthProjection:
        """Project utilization after growth and simulated failures."""
        p = self.policy
        growth = p.default_growth_pct if growth_pct is None else float(growth_pct)
        if growth < -100:
            raise OspfGraphError(f"Traffic growth cannot be below -100%, got {growth:g}")
        failed = sorted(set(failed_links))
        for idx in failed:
            if not 0 <= idx < len(topology.links):
                raise OspfGraphError(
                    f"Link index {idx} out of range (0..{len(topology.links) - 1})"
                )

        metrics = self.link_metrics(topology, snapshot)
        multiplier = 1 + growth / 100
        projection = GrowthProjection(
            growth_pct=growth,
            failed_links=failed,
            baseline_critical=self.summarize(metrics).critical,
        )

        for m in metrics:
            down = m.is_down or m.link_index in failed
            fwd_util = 0.0 if down else m.forward_util * multiplier
            rev_util = 0.0 if down else m.reverse_util * multiplier
            level = self.classify(max(fwd_util, rev_util))
            projected = ProjectedLink(
                current=m,
                forward_traffic=m.forward_traffic * multiplier,
                reverse_traffic=m.reverse_traffic * multiplier,
                forward_util=fwd_util,
                reverse_util=rev_util,
                level=level,
                simulated_down=down,
                would_exceed_capacity=max(fwd_util, rev_util) > p.exceed_pct,
                upgrade_needed=not down and max(fwd_util, rev_util) >= p.upgrade_pct,
                level_change=_level_change(m.level, level),
            )
            projection.links.append(projected)
            if projected.upgrade_needed:
                projection.recommendations.append(self._recommend(projected))

        projection.recommendations.sort(key=lambda r: r.projected_util, reverse=True)
        logger.debug(
            "Capacity projection at %+g%%: %d critical (was %d), %d upgrade(s)",
            growth, projection.critical, projection.baseline_critical,
            len(projection.recommendations),
        )
        return projection

    def _recommend(self, projected: ProjectedLink) -> UpgradeRecommendation:
        m = projected.current
        peak = projected.max_util
        needed = m.capacity * peak / self.policy.target_utilization_pct
        multiplier = math.ceil(needed / m.capacity)
        if multiplier <= self.policy.max_simple_multiplier:
            suggestion = f"Upgrade to {multiplier}x capacity"
        else:
            suggestion = "Major upgrade needed"
        return UpgradeRecommendation(
            link_index=m.link_index,
            label=f"{m.source_id} <-> {m.target_id}",
            current_capacity=m.capacity,
            projected_util=peak,
            needed_capacity=needed,
            upgrade_amount=needed - m.capacity,
            multiplier=multiplier,
            suggestion=suggestion,
        )


def format_capacity(mbps: float) -> str:
    """Short bandwidth label: 400M, 10G, 1T."""
    if mbps >= 1_000_000:
        return f"{mbps / 1_000_000:.0f}T"
    if mbps >= 1000:
        return f"{mbps / 1000:.0f}G"
    return f"{mbps:g}M"


def _pct(traffic: float, capacity: float) -> float:
    return traffic / capacity * 100 if capacity > 0 else 0.0


def _level_change(before: str, after: str) -> str:
    rank_before, rank_after = LEVELS.index(before), LEVELS.index(after)
    if rank_after > rank_before:
        return "degraded"
    if rank_after < rank_before:
        return "improved"
    return "unchanged"
