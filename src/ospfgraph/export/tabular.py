"""
Tabular and JSON export of analysis results.

Produces the row sets consumed by CSV exporters and dashboards: health
rows (Type/Item/Severity/Description/Count), traffic impact rows,
traffic matrix rows and capacity planning rows. Values are copied
verbatim from the reports.
"""

import csv
import json
from typing import Optional

from ..analysis.health import HealthReport
from ..traffic.capacity import GrowthProjection
from ..traffic.matrix import RouteSummary
from ..traffic.simulator import ImpactReport, TrafficImpact

HEALTH_COLUMNS = ["Type", "Item", "Severity", "Description", "Count"]
IMPACT_COLUMNS = [
    "Link", "BeforeFwd", "BeforeRev", "AfterFwd", "AfterRev",
    "ΔFwd", "ΔRev", "Capacity", "Status",
]
MATRIX_COLUMNS = [
    "Source", "Destination", "Paths", "TotalTraffic",
    "MaxLinkUtil", "BottleneckLink",
]
CAPACITY_COLUMNS = [
    "Link", "Capacity", "CurrentUtil", "ProjectedUtil", "Level",
    "ProjectedLevel", "Change", "Upgrade",
]


class HealthExporter:
    """Export a health report as rows, metrics row first."""

    @staticmethod
    def to_rows(report: HealthReport) -> list[dict]:
        m = report.metrics
        rows = [{
            "Type": "METRICS",
            "Item": f"Score: {report.health_score}",
            "Severity": "N/A",
            "Description": f"Nodes: {m.node_count}, Links: {m.link_count}, "
                           f"Asymmetric: {m.asymmetric_link_count}",
            "Count": m.single_points_of_failure,
        }]
        for b in report.bottlenecks:
            rows.append({
                "Type": b.type,
                "Item": b.item,
                "Severity": b.severity,
                "Description": b.description,
                "Count": b.paths_affected,
            })
        return rows

    @staticmethod
    def save(filepath: str, report: HealthReport):
        _write_csv(filepath, HEALTH_COLUMNS, HealthExporter.to_rows(report))


class ImpactExporter:
    """Export pre/post traffic impact rows."""

    @staticmethod
    def status(impact: TrafficImpact, high_impact_pct: float = 10.0) -> str:
        if impact.will_congest:
            return "Will Congest"
        if impact.max_change > high_impact_pct:
            return "High Impact"
        return "OK"

    @staticmethod
    def to_rows(report: ImpactReport, high_impact_pct: float = 10.0) -> list[dict]:
        rows = []
        for i in report.impacts:
            rows.append({
                "Link": f"{i.source_id} -> {i.target_id}",
                "BeforeFwd": round(i.before_forward_util, 1),
                "BeforeRev": round(i.before_reverse_util, 1),
                "AfterFwd": round(i.after_forward_util, 1),
                "AfterRev": round(i.after_reverse_util, 1),
                "ΔFwd": round(i.change_forward, 1),
                "ΔRev": round(i.change_reverse, 1),
                "Capacity": i.capacity,
                "Status": ImpactExporter.status(i, high_impact_pct),
            })
        return rows

    @staticmethod
    def save(filepath: str, report: ImpactReport, high_impact_pct: float = 10.0):
        _write_csv(filepath, IMPACT_COLUMNS, ImpactExporter.to_rows(report, high_impact_pct))


class MatrixExporter:
    """Export a traffic matrix as one row per country pair."""

    @staticmethod
    def to_rows(matrix: dict[str, dict[str, RouteSummary]]) -> list[dict]:
        rows = []
        for src in sorted(matrix):
            for dst in sorted(matrix[src]):
                cell = matrix[src][dst]
                rows.append({
                    "Source": src,
                    "Destination": dst,
                    "Paths": cell.path_count,
                    "TotalTraffic": round(cell.total_traffic, 2),
                    "MaxLinkUtil": round(cell.max_link_util, 1),
                    "BottleneckLink": "" if cell.bottleneck_link is None else cell.bottleneck_link,
                })
        return rows

    @staticmethod
    def to_json(matrix: dict[str, dict[str, RouteSummary]]) -> dict:
        return {
            src: {dst: cell.to_dict() for dst, cell in row.items()}
            for src, row in matrix.items()
        }

    @staticmethod
    def save(filepath: str, matrix: dict[str, dict[str, RouteSummary]]):
        _write_csv(filepath, MATRIX_COLUMNS, MatrixExporter.to_rows(matrix))


class CapacityExporter:
    """Export a growth projection as one row per link."""

    @staticmethod
    def to_rows(projection: GrowthProjection) -> list[dict]:
        upgrades = {r.link_index: r.suggestion for r in projection.recommendations}
        rows = []
        for p in projection.links:
            m = p.current
            rows.append({
                "Link": f"{m.source_id} -> {m.target_id}",
                "Capacity": m.capacity,
                "CurrentUtil": round(m.max_util, 1),
                "ProjectedUtil": round(p.max_util, 1),
                "Level": "down" if m.is_down else m.level,
                "ProjectedLevel": "down" if p.simulated_down else p.level,
                "Change": p.level_change,
                "Upgrade": upgrades.get(m.link_index, ""),
            })
        return rows

    @staticmethod
    def save(filepath: str, projection: GrowthProjection):
        _write_csv(filepath, CAPACITY_COLUMNS, CapacityExporter.to_rows(projection))


def save_json(filepath: str, data: dict, indent: Optional[int] = 2):
    """Save a report dict to JSON."""
    with open(filepath, "w") as f:
        json.dump(data, f, indent=indent, default=str)


def _write_csv(filepath: str, columns: list[str], rows: list[dict]):
    with open(filepath, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=columns)
        writer.writeheader()
        writer.writerows(rows)
