"""
Ripple-effect and transit analysis.

Compares best paths before and after a set of link changes to find the
router pairs, country pairs and downstream routers a change touches, and
ranks countries by how critical they are as transit for other countries.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from ..config import AnalyticsConfig
from ..graph.paths import PathEngine, Path
from ..graph.topology import Topology

logger = logging.getLogger(__name__)


@dataclass
class CountryPairChange:
    """Best paths of one country pair before and after a change."""
    source: str
    dest: str
    before: list[Path] = field(default_factory=list)
    after: list[Path] = field(default_factory=list)
    changed: bool = False


@dataclass
class LinkRipple:
    """Downstream reach of one modified link."""
    link_index: int
    affected_paths: int = 0
    affected_country_pairs: list[tuple[str, str]] = field(default_factory=list)
    local_impact: list[str] = field(default_factory=list)
    downstream_impact: list[str] = field(default_factory=list)


@dataclass
class TransitCountry:
    """A country carrying paths between two other countries."""
    country: str
    transit_path_count: int
    transit_for_pairs: list[tuple[str, str, int]] = field(default_factory=list)
    criticality_score: int = 0  # 0-100
    node_count: int = 0


@dataclass
class RippleReport:
    """Complete ripple-effect analysis."""
    total_paths: int = 0
    affected_paths: int = 0
    impact_percentage: float = 0.0
    link_ripples: list[LinkRipple] = field(default_factory=list)
    country_pairs: list[CountryPairChange] = field(default_factory=list)
    transit_countries: list[TransitCountry] = field(default_factory=list)

    @property
    def changed_pairs(self) -> list[CountryPairChange]:
        return [c for c in self.country_pairs if c.changed]


@dataclass
class CountryPairAnalysis:
    """Path statistics between two specific countries."""
    paths: list[Path] = field(default_factory=list)
    node_count: int = 0
    link_count: int = 0
    avg_cost: float = 0.0
    min_cost: float = 0.0
    max_cost: float = 0.0
    transit_countries: list[tuple[str, int, int]] = field(default_factory=list)


def calculate_link_impact(
    before: Topology,
    after: Topology,
    source_countries: Optional[list[str]] = None,
    dest_countries: Optional[list[str]] = None,
    config: Optional[AnalyticsConfig] = None,
) -> RippleReport:
    """
    Ripple analysis of the differences between two link sets.

    `before` and `after` must share nodes and link indices, as produced by
    `traffic.simulator.apply_mutations`.
    """
    config = config or AnalyticsConfig()
    before_engine = PathEngine(before, config.search)
    after_engine = PathEngine(after, config.search)

    countries = before.countries()
    sources = source_countries or countries
    dests = dest_countries or countries

    report = RippleReport()
    # (before path, after path or None) per router pair that had a path before
    compared: list[tuple[Path, Optional[Path]]] = []
    after_paths: list[Path] = []

    for src_country in sources:
        for dst_country in dests:
            if src_country == dst_country:
                continue
            pair = CountryPairChange(source=src_country, dest=dst_country)
            for s in before.nodes_in(src_country):
                for d in before.nodes_in(dst_country):
                    b = before_engine.best_path(s.id, d.id)
                    a = after_engine.best_path(s.id, d.id)
                    if b is not None:
                        pair.before.append(b)
                        compared.append((b, a))
                    if a is not None:
                        pair.after.append(a)
                        after_paths.append(a)
                    if _differs(b, a):
                        pair.changed = True
            report.country_pairs.append(pair)

    report.total_paths = len(compared)
    report.affected_paths = sum(1 for b, a in compared if _differs(b, a))
    if report.total_paths:
        report.impact_percentage = report.affected_paths / report.total_paths * 100

    for idx, (old, new) in enumerate(zip(before.links, after.links)):
        if (
            old.forward_cost == new.forward_cost
            and old.reverse_cost == new.reverse_cost
            and old.status == new.status
        ):
            continue
        ripple = LinkRipple(link_index=idx, local_impact=[new.source, new.target])
        downstream = []
        for b, a in compared:
            if idx in b.links and _differs(b, a):
                ripple.affected_paths += 1
                for node_id in b.nodes:
                    if node_id not in downstream:
                        downstream.append(node_id)
        ripple.downstream_impact = downstream
        ripple.affected_country_pairs = [
            (c.source, c.dest) for c in report.country_pairs
            if c.changed and any(idx in p.links for p in c.before + c.after)
        ]
        report.link_ripples.append(ripple)

    report.transit_countries = analyze_transit_countries(after, after_paths)
    logger.debug(
        "Ripple: %d/%d paths affected across %d changed link(s)",
        report.affected_paths, report.total_paths, len(report.link_ripples),
    )
    return report


def analyze_transit_countries(topology: Topology, paths: list[Path]) -> list[TransitCountry]:
    """
    Rank countries by how critical they are as transit.

    Criticality is 70 points for the share of transit paths relative to
    the busiest transit country, plus 20 for the share of ordered country
    pairs served and 10 for the share of routers used as transit. The pair
    and router shares are weighted as plain fractions rather than
    percentages, so the three terms sum to at most 100 and the score does
    not saturate whenever a country carries any transit.
    """
    countries = topology.countries()
    path_counts: Counter = Counter()
    pairs: dict[str, Counter] = {c: Counter() for c in countries}
    transit_nodes: dict[str, set] = {c: set() for c in countries}

    for path in paths:
        if len(path.nodes) < 3:
            continue
        src_country = topology.country_of(path.source)
        dst_country = topology.country_of(path.target)
        if src_country is None or dst_country is None or src_country == dst_country:
            continue
        crossed = set()
        for node_id in path.nodes[1:-1]:
            country = topology.country_of(node_id)
            if country is not None and country not in (src_country, dst_country):
                crossed.add(country)
                transit_nodes[country].add(node_id)
        for country in crossed:
            path_counts[country] += 1
            pairs[country][(src_country, dst_country)] += 1

    max_paths = max(path_counts.values(), default=0) or 1
    pair_space = len(countries) * (len(countries) - 1)
    node_total = len(topology.nodes)

    result = []
    for country in countries:
        count = path_counts.get(country, 0)
        if count == 0:
            continue
        path_score = count / max_paths * 70
        pair_score = len(pairs[country]) / pair_space * 20 if pair_space else 0.0
        node_score = len(transit_nodes[country]) / node_total * 10 if node_total else 0.0
        result.append(TransitCountry(
            country=country,
            transit_path_count=count,
            transit_for_pairs=sorted(
                ((s, d, n) for (s, d), n in pairs[country].items()),
                key=lambda t: t[2], reverse=True,
            ),
            criticality_score=int(round(min(100.0, path_score + pair_score + node_score))),
            node_count=len(transit_nodes[country]),
        ))

    result.sort(key=lambda t: t.criticality_score, reverse=True)
    return result


def analyze_country_pair(
    topology: Topology,
    source_country: str,
    dest_country: str,
    max_paths: int = 3,
    config: Optional[AnalyticsConfig] = None,
) -> CountryPairAnalysis:
    """Path statistics and transit countries between two countries."""
    config = config or AnalyticsConfig()
    engine = PathEngine(topology, config.search)

    paths: list[Path] = []
    for s in topology.nodes_in(source_country):
        for d in topology.nodes_in(dest_country):
            paths.extend(engine.find_paths(s.id, d.id, max_paths))
    paths.sort(key=lambda p: p.total_cost)

    analysis = CountryPairAnalysis(paths=paths)
    if not paths:
        return analysis

    costs = np.array([p.total_cost for p in paths], dtype=float)
    analysis.avg_cost = float(costs.mean())
    analysis.min_cost = float(costs.min())
    analysis.max_cost = float(costs.max())

    used_nodes = set()
    used_links = set()
    transit_paths: Counter = Counter()
    transit_nodes: dict[str, set] = {}
    for path in paths:
        used_nodes.update(path.nodes)
        used_links.update(zip(path.nodes, path.nodes[1:]))
        crossed = set()
        for node_id in path.nodes[1:-1]:
            country = topology.country_of(node_id)
            if country not in (source_country, dest_country):
                crossed.add(country)
                transit_nodes.setdefault(country, set()).add(node_id)
        for country in crossed:
            transit_paths[country] += 1

    analysis.node_count = len(used_nodes)
    analysis.link_count = len(used_links)
    analysis.transit_countries = sorted(
        ((c, n, len(transit_nodes[c])) for c, n in transit_paths.items()),
        key=lambda t: t[1], reverse=True,
    )
    return analysis


def _differs(before: Optional[Path], after: Optional[Path]) -> bool:
    if before is None and after is None:
        return False
    if before is None or after is None:
        return True
    return before.nodes != after.nodes or before.total_cost != after.total_cost
