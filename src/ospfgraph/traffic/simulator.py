"""
Pre/post traffic simulation.

Applies hypothetical link changes (new costs or a disabled link) to a
topology, compares best paths before and after for every router pair
across countries, and predicts how link utilization shifts as rerouted
pairs move traffic between links.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field, replace, asdict
from typing import Optional

from ..config import AnalyticsConfig
from ..exceptions import MutationError
from ..graph.paths import PathEngine
from ..graph.topology import Topology, TrafficSnapshot, LINK_DOWN

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Mutation:
    """A hypothetical edit to one link."""
    link_index: int
    new_forward_cost: Optional[float] = None
    new_reverse_cost: Optional[float] = None
    disable: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "Mutation":
        if not isinstance(data, dict):
            raise MutationError(f"Link change must be an object, got {data!r}")
        index = data.get("link_index", data.get("linkIndex"))
        if isinstance(index, bool) or (isinstance(index, float) and not index.is_integer()):
            raise MutationError(f"Link index must be an integer, got {index!r}")
        disable = data.get("disable", False)
        if not isinstance(disable, bool):
            raise MutationError(f"'disable' must be true or false, got {disable!r}")
        try:
            fwd = data.get("new_forward_cost", data.get("newForwardCost"))
            rev = data.get("new_reverse_cost", data.get("newReverseCost"))
            return cls(
                link_index=int(index),
                new_forward_cost=float(fwd) if fwd is not None else None,
                new_reverse_cost=float(rev) if rev is not None else None,
                disable=disable,
            )
        except (TypeError, ValueError) as e:
            raise MutationError(f"Malformed link change {data!r}: {e}") from e


@dataclass
class TrafficImpact:
    """Predicted utilization change on one link."""
    link_index: int
    source_id: str
    target_id: str
    before_forward_util: float
    before_reverse_util: float
    after_forward_util: float
    after_reverse_util: float
    change_forward: float
    change_reverse: float
    will_congest: bool
    capacity: float

    @property
    def max_change(self) -> float:
        return max(abs(self.change_forward), abs(self.change_reverse))


@dataclass
class Reroute:
    """A router pair whose best path changed."""
    source_id: str
    target_id: str
    before_nodes: list[str]
    after_nodes: list[str]
    before_cost: float
    after_cost: float


@dataclass
class ImpactReport:
    """Complete pre/post simulation output."""
    mutated: Topology
    impacts: list[TrafficImpact] = field(default_factory=list)
    reroutes: list[Reroute] = field(default_factory=list)
    pairs_evaluated: int = 0

    @property
    def congested(self) -> list[TrafficImpact]:
        return [i for i in self.impacts if i.will_congest]

    def to_dict(self) -> dict:
        return {
            "impacts": [asdict(i) for i in self.impacts],
            "reroutes": [asdict(r) for r in self.reroutes],
            "pairs_evaluated": self.pairs_evaluated,
            "congested_links": [i.link_index for i in self.congested],
        }


def apply_mutations(
    topology: Topology,
    mutations,
    config: Optional[AnalyticsConfig] = None,
) -> Topology:
    """
    Topology with the mutations applied; nodes and untouched links are shared.

    A disabling mutation forces the link down at the configured disabled
    cost regardless of its cost fields. When several mutations target the
    same link, the last one wins. Out-of-range indices and negative costs
    raise `MutationError`.
    """
    mutations = list(mutations)
    if not mutations:
        return topology

    disabled_cost = (config or AnalyticsConfig()).simulation.disabled_cost
    links = list(topology.links)
    for m in mutations:
        if not 0 <= m.link_index < len(links):
            raise MutationError(
                f"Link index {m.link_index} out of range (0..{len(links) - 1})"
            )
        if not m.disable:
            for cost in (m.new_forward_cost, m.new_reverse_cost):
                if cost is not None and cost < 0:
                    raise MutationError(
                        f"Link {m.link_index} cost must be non-negative, got {cost:g}"
                    )
        original = topology.links[m.link_index]
        if m.disable:
            links[m.link_index] = replace(
                original,
                forward_cost=disabled_cost,
                reverse_cost=disabled_cost,
                status=LINK_DOWN,
            )
        else:
            links[m.link_index] = replace(
                original,
                forward_cost=(m.new_forward_cost if m.new_forward_cost is not None
                              else original.forward_cost),
                reverse_cost=(m.new_reverse_cost if m.new_reverse_cost is not None
                              else original.reverse_cost),
            )
    return topology.with_links(links)


class TrafficSimulator:
    """
    What-if traffic engine.

    The redistribution model is deliberately coarse: each rerouted pair
    moves `SimulationPolicy.traffic_unit_mbps` from every link of its old
    path to every link of its new path, and the net shift is applied to
    both directions scaled by `SimulationPolicy.direction_factor`.
    """

    def __init__(self, config: Optional[AnalyticsConfig] = None):
        self.config = config or AnalyticsConfig()
        self.policy = self.config.simulation

    def estimate_impact(
        self,
        baseline: Topology,
        mutations,
        snapshot: Optional[TrafficSnapshot] = None,
    ) -> ImpactReport:
        """Simulate the mutations and report links with notable change."""
        mutated = apply_mutations(baseline, mutations, self.config)
        report = ImpactReport(mutated=mutated)
        if mutated is baseline:
            return report

        before_engine = PathEngine(baseline, self.config.search)
        after_engine = PathEngine(mutated, self.config.search)
        usage_delta = defaultdict(float)
        unit = self.policy.traffic_unit_mbps

        countries = baseline.countries()
        for src_country in countries:
            for dst_country in countries:
                if src_country == dst_country:
                    continue
                for s in baseline.nodes_in(src_country):
                    for d in baseline.nodes_in(dst_country):
                        report.pairs_evaluated += 1
                        before = before_engine.best_path(s.id, d.id)
                        after = after_engine.best_path(s.id, d.id)
                        if before is None or after is None:
                            continue
                        if before.nodes == after.nodes:
                            continue
                        for idx in before.links:
                            usage_delta[idx] -= unit
                        for idx in after.links:
                            usage_delta[idx] += unit
                        report.reroutes.append(Reroute(
                            source_id=s.id,
                            target_id=d.id,
                            before_nodes=list(before.nodes),
                            after_nodes=list(after.nodes),
                            before_cost=before.total_cost,
                            after_cost=after.total_cost,
                        ))

        report.impacts = self.link_impacts(baseline, usage_delta, snapshot)
        logger.debug(
            "Simulation: %d pairs, %d reroutes, %d impacted links",
            report.pairs_evaluated, len(report.reroutes), len(report.impacts),
        )
        return report

    def link_impacts(
        self,
        baseline: Topology,
        usage_delta: dict,
        snapshot: Optional[TrafficSnapshot] = None,
    ) -> list[TrafficImpact]:
        """Turn per-link usage deltas into reported utilization changes."""
        p = self.policy
        impacts = []
        for idx, link in enumerate(baseline.links):
            traffic = baseline.traffic_for(idx, snapshot)
            before_fwd = traffic.forward_utilization_pct if traffic else 0.0
            before_rev = traffic.reverse_utilization_pct if traffic else 0.0

            shift = usage_delta.get(idx, 0.0) / link.capacity * 100 * p.direction_factor
            after_fwd = _clamp(before_fwd + shift)
            after_rev = _clamp(before_rev + shift)
            change_fwd = after_fwd - before_fwd
            change_rev = after_rev - before_rev

            will_congest = (
                after_fwd > p.congestion_threshold_pct
                or after_rev > p.congestion_threshold_pct
            )
            significant = (
                abs(change_fwd) > p.change_threshold_pct
                or abs(change_rev) > p.change_threshold_pct
            )
            if not (significant or will_congest):
                continue

            impacts.append(TrafficImpact(
                link_index=idx,
                source_id=link.source,
                target_id=link.target,
                before_forward_util=before_fwd,
                before_reverse_util=before_rev,
                after_forward_util=after_fwd,
                after_reverse_util=after_rev,
                change_forward=change_fwd,
                change_reverse=change_rev,
                will_congest=will_congest,
                capacity=link.capacity,
            ))

        impacts.sort(key=lambda i: i.max_change, reverse=True)
        return impacts


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))
