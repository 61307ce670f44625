"""
Tunable policy for the analytics core.

Every threshold, weight and search bound used by the path engine, the
health analyzer, the traffic simulator and the capacity planner lives
here, so policy can be changed without touching the algorithms.
"""

import json
from dataclasses import dataclass, field, fields, asdict
from typing import Optional


@dataclass
class SearchLimits:
    """Bounds that keep simple-path enumeration finite on dense graphs."""
    max_hops: Optional[int] = None  # None = node count - 1
    max_expansions: int = 250_000


@dataclass
class HealthPolicy:
    """Thresholds and weights for the health analyzer."""
    max_paths_per_pair: int = 3
    # Hop cap for the all-pairs scan only; None uses SearchLimits.max_hops
    scan_max_hops: Optional[int] = None

    # Bottleneck thresholds, as a percentage of the maximum observed usage
    link_bottleneck_pct: float = 70.0
    link_high_pct: float = 80.0
    link_critical_pct: float = 90.0
    node_bottleneck_pct: float = 80.0
    node_critical_pct: float = 95.0
    country_bottleneck_pct: float = 60.0
    country_high_pct: float = 75.0
    country_critical_pct: float = 90.0
    max_bottlenecks: int = 10

    # Redundancy score terms
    path_saturation: float = 3.0
    path_term_max: float = 40.0
    path_term_per_path: float = 13.0
    link_term_max: float = 30.0
    baseline_term: float = 30.0
    spof_redundancy_penalty: float = 10.0

    # Health score terms
    spof_health_penalty: float = 15.0
    down_link_health_penalty: float = 5.0
    critical_bottleneck_penalty: float = 10.0
    critical_bottleneck_penalty_cap: float = 30.0
    redundancy_divisor: float = 5.0

    # Recommendation rules
    min_node_connections: int = 2
    low_redundancy_threshold: float = 50.0
    max_recommendations: int = 5


@dataclass
class SimulationPolicy:
    """
    Traffic redistribution model for the pre/post simulator.

    A rerouted country pair moves a fixed `traffic_unit_mbps` off every
    link of its old path onto every link of its new path. The resulting
    delta is applied to both directions scaled by `direction_factor`.
    """
    traffic_unit_mbps: float = 1000.0
    direction_factor: float = 0.5
    change_threshold_pct: float = 1.0
    congestion_threshold_pct: float = 80.0
    high_impact_pct: float = 10.0
    disabled_cost: float = 10000.0


@dataclass
class CapacityPolicy:
    """Utilization bands and upgrade sizing for the capacity planner."""
    medium_pct: float = 40.0
    high_pct: float = 70.0
    critical_pct: float = 90.0
    upgrade_pct: float = 80.0  # projected peak at which an upgrade is recommended
    exceed_pct: float = 100.0
    target_utilization_pct: float = 60.0
    default_growth_pct: float = 20.0
    max_simple_multiplier: int = 2  # beyond this the upgrade is flagged as major


@dataclass
class AnalyticsConfig:
    """Complete configuration for an analysis pass."""
    search: SearchLimits = field(default_factory=SearchLimits)
    health: HealthPolicy = field(default_factory=HealthPolicy)
    simulation: SimulationPolicy = field(default_factory=SimulationPolicy)
    capacity: CapacityPolicy = field(default_factory=CapacityPolicy)
    workers: int = 4

    _SECTIONS = {
        "search": SearchLimits,
        "health": HealthPolicy,
        "simulation": SimulationPolicy,
        "capacity": CapacityPolicy,
    }

    @classmethod
    def from_dict(cls, data: dict) -> "AnalyticsConfig":
        """Build a config from a (possibly partial) nested dict."""
        config = cls()
        for key, value in data.items():
            if key == "workers":
                config.workers = int(value)
                continue
            section_cls = cls._SECTIONS.get(key)
            if section_cls is None:
                raise ValueError(f"Unknown config section: {key}")
            if not isinstance(value, dict):
                raise ValueError(f"Config section '{key}' must be an object")
            known = {f.name for f in fields(section_cls)}
            unknown = set(value) - known
            if unknown:
                raise ValueError(
                    f"Unknown keys in config section '{key}': {sorted(unknown)}"
                )
            setattr(config, key, section_cls(**value))
        return config

    @classmethod
    def from_file(cls, filepath: str) -> "AnalyticsConfig":
        """Load a config from a JSON file."""
        with open(filepath) as f:
            return cls.from_dict(json.load(f))

    def to_dict(self) -> dict:
        return asdict(self)
