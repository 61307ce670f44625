"""
ospfgraph CLI - Command-line interface for OSPF topology analytics.

Commands:
  paths        - List paths between two routers
  health       - Run the network health analysis
  matrix       - Build the country-to-country traffic matrix
  simulate     - Predict traffic impact of link cost changes
  capacity     - Utilization levels, growth projection and upgrade plan
  ripple       - Show which paths and country pairs a change ripples into
  cost-matrix  - Shortest-path costs between two countries' routers
  serve        - Start the REST API
  demo         - Run a demo with a sample topology
"""

import json
import logging
import sys

try:
    import click
except ImportError:
    print("Click is required: pip install click")
    sys.exit(1)

from .config import AnalyticsConfig
from .exceptions import OspfGraphError
from .graph.topology import (
    Topology, Node, Link, TrafficObservation, snapshot_from_dict,
)


def _load_topology(path: str) -> Topology:
    with open(path) as f:
        return Topology.from_dict(json.load(f))


def _parse_changes(changes, disables) -> list:
    from .traffic.simulator import Mutation

    mutations = []
    for item in changes:
        parts = item.split(":")
        if len(parts) != 3:
            raise click.BadParameter(
                f"'{item}' is not IDX:FWD:REV", param_hint="--change"
            )
        try:
            mutations.append(Mutation(
                link_index=int(parts[0]),
                new_forward_cost=float(parts[1]),
                new_reverse_cost=float(parts[2]),
            ))
        except ValueError:
            raise click.BadParameter(
                f"'{item}' is not IDX:FWD:REV", param_hint="--change"
            )
    for idx in disables:
        mutations.append(Mutation(link_index=idx, disable=True))
    return mutations


@click.group()
@click.version_option(version="0.1.0", prog_name="ospfgraph")
@click.option("--config", "-c", "config_file", type=click.Path(exists=True),
              default=None, help="JSON policy overrides")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, config_file, verbose):
    """ospfgraph - OSPF Topology Analytics."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        ctx.obj = AnalyticsConfig.from_file(config_file) if config_file else AnalyticsConfig()
    except ValueError as e:
        raise click.ClickException(f"Invalid config: {e}")


@cli.command()
@click.argument("topology_file", type=click.Path(exists=True))
@click.argument("source")
@click.argument("target")
@click.option("--max-paths", "-k", default=None, type=int, help="Maximum paths to list")
@click.pass_obj
def paths(config, topology_file, source, target, max_paths):
    """List paths between two routers, cheapest first."""
    from .graph.paths import PathEngine

    topology = _load_or_fail(topology_file)
    found = PathEngine(topology, config.search).find_paths(source, target, max_paths)

    if not found:
        click.echo(f"No path from {source} to {target}")
        return

    click.echo(f"\n--- Paths {source} -> {target} ---")
    for p in found:
        click.echo(f"  cost={p.total_cost:g} hops={p.hop_count}: {' -> '.join(p.nodes)}")


@cli.command()
@click.argument("topology_file", type=click.Path(exists=True))
@click.option("--output", "-o", default=None, help="Save bottlenecks to CSV")
@click.option("--json-output", default=None, help="Save full report to JSON")
@click.pass_obj
def health(config, topology_file, output, json_output):
    """Run the network health analysis."""
    from .analysis.health import HealthAnalyzer
    from .export.tabular import HealthExporter, save_json

    topology = _load_or_fail(topology_file)
    click.echo(f"Analyzing {len(topology.nodes)} nodes, {len(topology.links)} links...")
    report = HealthAnalyzer(config).analyze(topology)
    m = report.metrics

    click.echo(f"\n--- Network Health Report ---")
    click.echo(f"Health Score: {report.health_score}")
    click.echo(f"Redundancy Score: {m.redundancy_score}")
    click.echo(f"Countries: {m.country_count}  Active/Down Links: {m.active_links}/{m.down_links}")
    click.echo(f"Asymmetric Links: {m.asymmetric_link_count}")
    click.echo(f"Average Path Cost: {m.avg_path_cost}")
    click.echo(f"Single Points of Failure: {report.spof_links}")

    if report.bottlenecks:
        click.echo(f"\nBottlenecks:")
        for b in report.bottlenecks:
            click.echo(f"  [{b.severity}] {b.type} {b.item}: {b.description}")

    if report.recommendations:
        click.echo(f"\nRecommendations:")
        for r in report.recommendations:
            click.echo(f"  {r.priority}. {r.title} ({r.effort} effort) - {r.description}")

    for w in report.warnings:
        click.echo(f"Warning: {w.message}", err=True)

    if output:
        HealthExporter.save(output, report)
        click.echo(f"\nBottlenecks saved to {output}")
    if json_output:
        save_json(json_output, report.to_dict())
        click.echo(f"Report saved to {json_output}")


@cli.command()
@click.argument("topology_file", type=click.Path(exists=True))
@click.option("--snapshot", "-s", type=click.Path(exists=True), default=None,
              help="Traffic snapshot JSON with a 'link_traffic' field")
@click.option("--snapshot-id", default=None,
              help="Use a snapshot recorded in the topology's 'traffic_snapshots'")
@click.option("--output", "-o", default=None, help="Save matrix to CSV")
@click.pass_obj
def matrix(config, topology_file, snapshot, snapshot_id, output):
    """Build the country-to-country traffic matrix."""
    from .traffic.matrix import TrafficMatrixBuilder
    from .export.tabular import MatrixExporter

    if snapshot and snapshot_id:
        raise click.UsageError("Give either --snapshot or --snapshot-id, not both")

    topology = _load_or_fail(topology_file)
    snap = None
    try:
        if snapshot:
            with open(snapshot) as f:
                snap = snapshot_from_dict(json.load(f), snapshot_id=snapshot)
        elif snapshot_id:
            snap = topology.snapshot(snapshot_id)
    except OspfGraphError as e:
        raise click.ClickException(str(e))

    result = TrafficMatrixBuilder(config).build(topology, snap)
    rows = MatrixExporter.to_rows(result)

    click.echo(f"\n--- Traffic Matrix ({snap.snapshot_id if snap else 'current'}) ---")
    for row in rows:
        if not row["Paths"]:
            continue
        bottleneck = row["BottleneckLink"]
        click.echo(
            f"  {row['Source']} -> {row['Destination']}: "
            f"{row['TotalTraffic']} Mbps, peak {row['MaxLinkUtil']}%"
            + (f" (link {bottleneck})" if bottleneck != "" else "")
        )

    if output:
        MatrixExporter.save(output, result)
        click.echo(f"\nMatrix saved to {output}")


@cli.command()
@click.argument("topology_file", type=click.Path(exists=True))
@click.option("--change", "changes", multiple=True, help="Cost change IDX:FWD:REV")
@click.option("--disable", "disables", multiple=True, type=int, help="Link index to disable")
@click.option("--output", "-o", default=None, help="Save impact rows to CSV")
@click.option("--snapshot-id", default=None,
              help="Baseline utilization from a recorded traffic snapshot")
@click.pass_obj
def simulate(config, topology_file, changes, disables, snapshot_id, output):
    """Predict traffic impact of link changes."""
    from .traffic.simulator import TrafficSimulator
    from .export.tabular import ImpactExporter

    topology = _load_or_fail(topology_file)
    mutations = _parse_changes(changes, disables)
    if not mutations:
        raise click.UsageError("Give at least one --change or --disable")

    try:
        snap = topology.snapshot(snapshot_id) if snapshot_id else None
        report = TrafficSimulator(config).estimate_impact(topology, mutations, snap)
    except OspfGraphError as e:
        raise click.ClickException(str(e))

    click.echo(f"\n--- Pre/Post Traffic Impact ---")
    click.echo(f"Pairs evaluated: {report.pairs_evaluated}")
    click.echo(f"Rerouted pairs: {len(report.reroutes)}")
    click.echo(f"Congested links: {[i.link_index for i in report.congested]}")

    high = config.simulation.high_impact_pct
    for row in ImpactExporter.to_rows(report, high):
        click.echo(
            f"  {row['Link']}: fwd {row['BeforeFwd']}% -> {row['AfterFwd']}%, "
            f"rev {row['BeforeRev']}% -> {row['AfterRev']}% [{row['Status']}]"
        )

    if output:
        ImpactExporter.save(output, report, high)
        click.echo(f"\nImpact saved to {output}")


@cli.command()
@click.argument("topology_file", type=click.Path(exists=True))
@click.option("--growth", "-g", default=None, type=float,
              help="Traffic growth in percent (default from config)")
@click.option("--fail", "failed", multiple=True, type=int,
              help="Link index to treat as failed in the projection")
@click.option("--level", type=click.Choice(["critical", "high", "medium", "low"]),
              default=None, help="Only list links at this utilization level")
@click.option("--sort", "sort_by", default="utilization",
              type=click.Choice(["utilization", "capacity", "traffic", "source", "target"]))
@click.option("--snapshot-id", default=None,
              help="Utilization from a recorded traffic snapshot")
@click.option("--output", "-o", default=None, help="Save projection rows to CSV")
@click.pass_obj
def capacity(config, topology_file, growth, failed, level, sort_by, snapshot_id, output):
    """Link utilization levels, growth projection and upgrade plan."""
    from .traffic.capacity import CapacityPlanner, format_capacity
    from .export.tabular import CapacityExporter

    topology = _load_or_fail(topology_file)
    planner = CapacityPlanner(config)
    try:
        snap = topology.snapshot(snapshot_id) if snapshot_id else None
        metrics = planner.link_metrics(topology, snap)
        projection = planner.project(topology, growth, failed, snap)
    except OspfGraphError as e:
        raise click.ClickException(str(e))
    summary = planner.summarize(metrics)

    click.echo(f"\n--- Capacity Planning ---")
    click.echo(f"Critical: {summary.critical}  High: {summary.high}  "
               f"Medium: {summary.medium}  Low: {summary.low}  Down: {summary.down}")
    click.echo(f"Average utilization: {summary.avg_util:.1f}%  "
               f"Capacity: {format_capacity(summary.total_capacity)}")
    for m in planner.filter_and_sort(metrics, level, sort_by):
        state = "down" if m.is_down else m.level
        click.echo(f"  [{state}] link {m.link_index} {m.source_id} <-> {m.target_id} "
                   f"{format_capacity(m.capacity)}: {m.max_util:.1f}%")

    click.echo(f"\n--- Projection at {projection.growth_pct:+g}% growth ---")
    if projection.failed_links:
        click.echo(f"Failed links: {projection.failed_links}")
    click.echo(f"Critical links: {projection.critical} "
               f"(change {projection.critical_increase:+d})")
    click.echo(f"Over capacity: {projection.exceeded_capacity}")
    if projection.recommendations:
        click.echo(f"\nUpgrade Recommendations:")
        for r in projection.recommendations:
            click.echo(f"  link {r.link_index} {r.label}: {r.projected_util:.1f}% -> "
                       f"{r.suggestion} ({format_capacity(r.needed_capacity)} needed)")

    if output:
        CapacityExporter.save(output, projection)
        click.echo(f"\nProjection saved to {output}")


@cli.command()
@click.argument("topology_file", type=click.Path(exists=True))
@click.option("--change", "changes", multiple=True, help="Cost change IDX:FWD:REV")
@click.option("--disable", "disables", multiple=True, type=int, help="Link index to disable")
@click.pass_obj
def ripple(config, topology_file, changes, disables):
    """Show which paths, country pairs and transit countries a change touches."""
    from .analysis.ripple import calculate_link_impact
    from .traffic.simulator import apply_mutations

    topology = _load_or_fail(topology_file)
    mutations = _parse_changes(changes, disables)
    try:
        after = apply_mutations(topology, mutations, config)
    except OspfGraphError as e:
        raise click.ClickException(str(e))

    report = calculate_link_impact(topology, after, config=config)
    click.echo(f"\n--- Ripple Effect ---")
    click.echo(f"Affected paths: {report.affected_paths}/{report.total_paths} "
               f"({report.impact_percentage:.1f}%)")
    for pair in report.changed_pairs:
        click.echo(f"  {pair.source} -> {pair.dest} changed")
    for lr in report.link_ripples:
        click.echo(f"  link {lr.link_index}: {lr.affected_paths} path(s), "
                   f"downstream {lr.downstream_impact}")
    if report.transit_countries:
        click.echo(f"\nTransit Countries:")
        for t in report.transit_countries:
            click.echo(f"  {t.country}: criticality {t.criticality_score}, "
                       f"{t.transit_path_count} path(s)")


@cli.command("cost-matrix")
@click.argument("topology_file", type=click.Path(exists=True))
@click.argument("source_country")
@click.argument("dest_country")
def cost_matrix_cmd(topology_file, source_country, dest_country):
    """Shortest-path costs between the routers of two countries."""
    from .graph.paths import cost_matrix

    topology = _load_or_fail(topology_file)
    src_ids, dst_ids, costs = cost_matrix(topology, source_country, dest_country)
    if not src_ids or not dst_ids:
        click.echo("No routers in one of the countries")
        return

    click.echo(",".join(["Source Node"] + dst_ids))
    for i, s in enumerate(src_ids):
        cells = ["Inf" if c == float("inf") else f"{c:g}" for c in costs[i]]
        click.echo(",".join([s] + cells))


@cli.command()
@click.argument("topology_file", type=click.Path(exists=True))
@click.option("--host", default="127.0.0.1", help="API host")
@click.option("--port", "-p", default=5000, help="API port")
@click.pass_obj
def serve(config, topology_file, host, port):
    """Start the REST API."""
    from .api.routes import OspfGraphAPI

    api = OspfGraphAPI(config)
    api.set_topology(_load_or_fail(topology_file))
    click.echo(f"Starting ospfgraph API on {host}:{port}")
    api.create_app().run(host=host, port=port)


@cli.command()
@click.pass_obj
def demo(config):
    """Run a demo with a sample multi-country topology."""
    from .analysis.health import HealthAnalyzer
    from .traffic.matrix import TrafficMatrixBuilder
    from .traffic.simulator import TrafficSimulator, Mutation

    click.echo("=" * 60)
    click.echo("  ospfgraph Demo - OSPF Topology Analytics")
    click.echo("=" * 60)

    click.echo("\n[1/3] Building sample topology...")
    topology = _build_demo_topology()
    click.echo(f"  Nodes: {len(topology.nodes)}, Links: {len(topology.links)}, "
               f"Countries: {len(topology.countries())}")

    click.echo("\n[2/3] Running health analysis...")
    report = HealthAnalyzer(config).analyze(topology)
    click.echo(f"  Health score: {report.health_score}")
    click.echo(f"  Redundancy: {report.metrics.redundancy_score}")
    click.echo(f"  SPOF links: {report.spof_links}")

    matrix_result = TrafficMatrixBuilder(config).build(topology)
    hottest = max(
        (cell for row in matrix_result.values() for cell in row.values()),
        key=lambda c: c.max_link_util,
        default=None,
    )
    if hottest is not None and hottest.paths:
        click.echo(f"  Hottest route: {hottest.source_country} -> "
                   f"{hottest.dest_country} ({hottest.max_link_util:.0f}% peak)")

    click.echo("\n[3/3] Simulating loss of the GB-FR link...")
    gb_fr = topology.link_between("gb-lon-r1", "fr-par-r1")
    impact = TrafficSimulator(config).estimate_impact(
        topology, [Mutation(link_index=gb_fr, disable=True)]
    )
    click.echo(f"  Rerouted pairs: {len(impact.reroutes)}")
    for i in impact.impacts[:5]:
        flag = " CONGESTED" if i.will_congest else ""
        click.echo(f"  {i.source_id} -> {i.target_id}: "
                   f"{i.before_forward_util:.0f}% -> {i.after_forward_util:.0f}%{flag}")

    click.echo("\n" + "=" * 60)
    click.echo("  Demo complete!")
    click.echo("=" * 60)


def _load_or_fail(path: str) -> Topology:
    try:
        return _load_topology(path)
    except (OspfGraphError, json.JSONDecodeError) as e:
        raise click.ClickException(f"Cannot load topology {path}: {e}")


def _build_demo_topology() -> Topology:
    """Build a small European OSPF backbone for demos."""
    nodes = (
        Node("gb-lon-r1", "GB", hostname="lon-core-1"),
        Node("gb-lon-r2", "GB", hostname="lon-core-2"),
        Node("fr-par-r1", "FR", hostname="par-core-1"),
        Node("de-fra-r1", "DE", hostname="fra-core-1"),
        Node("de-fra-r2", "DE", hostname="fra-core-2"),
        Node("nl-ams-r1", "NL", hostname="ams-core-1"),
        Node("es-mad-r1", "ES", hostname="mad-edge-1"),
    )

    def traffic(fwd_pct, rev_pct, capacity=10000.0):
        return TrafficObservation(
            forward_traffic_mbps=capacity * fwd_pct / 100,
            reverse_traffic_mbps=capacity * rev_pct / 100,
            forward_utilization_pct=fwd_pct,
            reverse_utilization_pct=rev_pct,
        )

    links = (
        Link("gb-lon-r1", "gb-lon-r2", forward_cost=1, reverse_cost=1,
             traffic=traffic(20, 18)),
        Link("gb-lon-r1", "fr-par-r1", forward_cost=10, reverse_cost=10,
             traffic=traffic(55, 48)),
        Link("gb-lon-r2", "nl-ams-r1", forward_cost=15, reverse_cost=20,
             traffic=traffic(35, 30)),
        Link("fr-par-r1", "de-fra-r1", forward_cost=10, reverse_cost=10,
             traffic=traffic(62, 58)),
        Link("nl-ams-r1", "de-fra-r2", forward_cost=5, reverse_cost=5,
             traffic=traffic(40, 44)),
        Link("de-fra-r1", "de-fra-r2", forward_cost=1, reverse_cost=1,
             traffic=traffic(25, 25)),
        Link("fr-par-r1", "es-mad-r1", forward_cost=20, reverse_cost=20,
             capacity_mbps=1000.0, traffic=traffic(72, 65, 1000.0)),
        Link("gb-lon-r2", "fr-par-r1", status="down", forward_cost=30, reverse_cost=30),
    )
    return Topology(nodes=nodes, links=links)


if __name__ == "__main__":
    cli()
