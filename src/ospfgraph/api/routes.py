"""
REST API for ospfgraph.

Provides endpoints for topology query, path search, health analysis,
the traffic matrix, pre/post traffic simulation and capacity planning.
"""

import time
from dataclasses import asdict
from typing import Optional

try:
    from flask import Flask, Blueprint, jsonify, request, abort
except ImportError:
    Flask = None
    Blueprint = None

from ..analysis.health import HealthAnalyzer
from ..config import AnalyticsConfig
from ..exceptions import OspfGraphError
from ..export.tabular import MatrixExporter
from ..graph.paths import PathEngine
from ..graph.topology import Topology, TrafficSnapshot, snapshot_from_dict
from ..traffic.capacity import CapacityPlanner
from ..traffic.matrix import TrafficMatrixBuilder
from ..traffic.simulator import Mutation, TrafficSimulator


class OspfGraphAPI:
    """
    REST API server for ospfgraph topology analytics.

    Endpoints:
      GET  /api/v1/health                - API health check
      GET  /api/v1/topology              - Current topology
      GET  /api/v1/paths?source&target&k - Paths between two routers
      GET  /api/v1/analysis/health       - Network health report
      GET  /api/v1/traffic/matrix        - Country traffic matrix
      POST /api/v1/traffic/snapshot      - Upload a traffic snapshot
      POST /api/v1/traffic/simulate      - Pre/post simulation of link changes
      POST /api/v1/traffic/capacity      - Growth projection and upgrade plan
    """

    def __init__(self, config: Optional[AnalyticsConfig] = None):
        self.config = config or AnalyticsConfig()
        self.topology: Optional[Topology] = None
        self.snapshot: Optional[TrafficSnapshot] = None
        self._last_update: float = 0

    def set_topology(self, topology: Topology):
        """Replace the served topology."""
        self.topology = topology
        self._last_update = time.time()

    def create_app(self) -> "Flask":
        """Create and configure the Flask application."""
        if Flask is None:
            raise ImportError("Flask is required: pip install flask")

        app = Flask(__name__)
        api = Blueprint("api", __name__, url_prefix="/api/v1")

        @api.errorhandler(OspfGraphError)
        def bad_input(err):
            return jsonify({"error": str(err)}), 400

        @api.route("/health")
        def health():
            return jsonify({
                "status": "ok",
                "topology_loaded": self.topology is not None,
                "nodes": len(self.topology.nodes) if self.topology else 0,
                "links": len(self.topology.links) if self.topology else 0,
                "last_update": self._last_update,
            })

        @api.route("/topology")
        def topology():
            return jsonify(self._require_topology().to_dict())

        @api.route("/paths")
        def paths():
            topo = self._require_topology()
            source = request.args.get("source")
            target = request.args.get("target")
            if not source or not target:
                abort(400, "Query must include 'source' and 'target'")
            k = request.args.get("k", type=int)
            engine = PathEngine(topo, self.config.search)
            found = engine.find_paths(source, target, k)
            return jsonify({
                "paths": [p.to_dict() for p in found],
                "count": len(found),
            })

        @api.route("/analysis/health")
        def analysis_health():
            report = HealthAnalyzer(self.config).analyze(self._require_topology())
            return jsonify(report.to_dict())

        @api.route("/traffic/matrix")
        def traffic_matrix():
            topo = self._require_topology()
            snapshot = self._select_snapshot(topo, request.args.get("snapshot_id"))
            matrix = TrafficMatrixBuilder(self.config).build(topo, snapshot)
            return jsonify({
                "snapshot": snapshot.snapshot_id if snapshot else "current",
                "matrix": MatrixExporter.to_json(matrix),
            })

        @api.route("/traffic/snapshot", methods=["POST"])
        def traffic_snapshot():
            data = request.get_json()
            if not data:
                abort(400, "Request must include a JSON body")
            self.snapshot = snapshot_from_dict(data)
            return jsonify({
                "snapshot_id": self.snapshot.snapshot_id,
                "links": len(self.snapshot.link_traffic),
            })

        @api.route("/traffic/simulate", methods=["POST"])
        def traffic_simulate():
            topo = self._require_topology()
            data = request.get_json()
            if not data or "changes" not in data:
                abort(400, "Request must include 'changes' list")
            mutations = [Mutation.from_dict(c) for c in data["changes"]]
            snapshot = self._select_snapshot(topo, data.get("snapshot_id"))
            report = TrafficSimulator(self.config).estimate_impact(
                topo, mutations, snapshot
            )
            return jsonify(report.to_dict())

        @api.route("/traffic/capacity", methods=["POST"])
        def traffic_capacity():
            topo = self._require_topology()
            data = request.get_json(silent=True) or {}
            if not isinstance(data, dict):
                abort(400, "Request body must be a JSON object")
            failed = data.get("failed_links", [])
            if not isinstance(failed, list) or not all(
                isinstance(i, int) and not isinstance(i, bool) for i in failed
            ):
                abort(400, "'failed_links' must be a list of link indices")
            growth = data.get("growth_pct")
            if growth is not None and (
                isinstance(growth, bool) or not isinstance(growth, (int, float))
            ):
                abort(400, "'growth_pct' must be a number")
            snapshot = self._select_snapshot(topo, data.get("snapshot_id"))
            planner = CapacityPlanner(self.config)
            metrics = planner.link_metrics(topo, snapshot)
            projection = planner.project(topo, growth, failed, snapshot)
            return jsonify({
                "summary": asdict(planner.summarize(metrics)),
                "links": [m.to_dict() for m in metrics],
                "projection": projection.to_dict(),
            })

        app.register_blueprint(api)
        return app

    def _require_topology(self) -> Topology:
        if self.topology is None:
            abort(404, "No topology loaded")
        return self.topology

    def _select_snapshot(
        self, topology: Topology, snapshot_id: Optional[str]
    ) -> Optional[TrafficSnapshot]:
        """A recorded snapshot when an id is given, else the last upload."""
        if snapshot_id:
            return topology.snapshot(snapshot_id)
        return self.snapshot
