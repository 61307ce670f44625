"""
Background execution of analyses.

Runs analyses on a bounded thread pool. Each submission is tagged with a
key (for example "health" or "simulate"); a newer submission under the
same key cancels the superseded one if it has not started yet.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional

from .analysis.health import HealthAnalyzer, HealthReport
from .config import AnalyticsConfig
from .graph.topology import Topology, TrafficSnapshot
from .traffic.capacity import CapacityPlanner, GrowthProjection
from .traffic.matrix import TrafficMatrixBuilder
from .traffic.simulator import TrafficSimulator, ImpactReport

logger = logging.getLogger(__name__)


class AnalysisRunner:
    """Thread pool front-end for the analytics core."""

    def __init__(self, config: Optional[AnalyticsConfig] = None):
        self.config = config or AnalyticsConfig()
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, self.config.workers),
            thread_name_prefix="ospfgraph",
        )
        self._latest: dict[str, Future] = {}
        self._lock = threading.Lock()

    def submit(self, key: str, fn: Callable, *args, **kwargs) -> Future:
        """Schedule `fn`, superseding any pending task under the same key."""
        future = self._executor.submit(fn, *args, **kwargs)
        with self._lock:
            previous = self._latest.get(key)
            self._latest[key] = future
        if previous is not None and not previous.done():
            if previous.cancel():
                logger.debug("Cancelled superseded '%s' analysis", key)
        return future

    def health(self, topology: Topology) -> "Future[HealthReport]":
        return self.submit("health", HealthAnalyzer(self.config).analyze, topology)

    def traffic_matrix(
        self, topology: Topology, snapshot: Optional[TrafficSnapshot] = None
    ) -> Future:
        return self.submit(
            "matrix", TrafficMatrixBuilder(self.config).build, topology, snapshot
        )

    def simulate(
        self,
        topology: Topology,
        mutations,
        snapshot: Optional[TrafficSnapshot] = None,
    ) -> "Future[ImpactReport]":
        return self.submit(
            "simulate", TrafficSimulator(self.config).estimate_impact,
            topology, list(mutations), snapshot,
        )

    def capacity(
        self, topology: Topology, growth_pct: Optional[float] = None, failed_links=()
    ) -> "Future[GrowthProjection]":
        return self.submit(
            "capacity", CapacityPlanner(self.config).project,
            topology, growth_pct, list(failed_links),
        )

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait, cancel_futures=True)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.shutdown()
