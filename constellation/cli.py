#!/usr/bin/env python3
"""
Constellation export command.

Reads a link graph dump, clusters it and writes the constellation snapshot.
"""
import click

from .config import ExportConfig, ResolutionConfig
from .core_utilities import perf_monitor
from .exporter import export_constellation, load_link_graph
from .models import parse_timestamp

_RESOLUTION_DEFAULTS = ResolutionConfig()
_EXPORT_DEFAULTS = ExportConfig()


def _ladder_text(ladder):
    return ','.join(str(r) for r in ladder)


def _parse_ladder(ctx, param, value):
    if value is None:
        return None
    try:
        ladder = tuple(float(r) for r in value.split(',') if r.strip())
    except ValueError:
        raise click.BadParameter(f"expected comma-separated numbers, got {value!r}")
    if not ladder:
        raise click.BadParameter("at least one resolution is required")
    return ladder


@click.command()
@click.option('--input', 'input_path', type=click.Path(exists=True, dir_okay=False), required=True,
              help="Link graph JSON (nodes and edges).")
@click.option('--out', 'out_path', type=click.Path(dir_okay=False), default='static/constellation.json',
              show_default=True, help="Path to write the constellation JSON.")
@click.option('--target-clusters', type=int, default=_RESOLUTION_DEFAULTS.target_clusters, show_default=True,
              help="Cluster count to aim for on large graphs.")
@click.option('--small-graph-divisor', type=int, default=_RESOLUTION_DEFAULTS.small_graph_divisor, show_default=True,
              help="Small graphs aim for node_count // divisor clusters.")
@click.option('--min-target-clusters', type=int, default=_RESOLUTION_DEFAULTS.min_target_clusters, show_default=True,
              help="Lower bound of the small-graph target.")
@click.option('--small-graph-threshold', type=int, default=_RESOLUTION_DEFAULTS.small_graph_threshold, show_default=True,
              help="Graphs with fewer nodes use the small resolution ladder.")
@click.option('--large-resolutions', callback=_parse_ladder, default=_ladder_text(_RESOLUTION_DEFAULTS.large_graph_resolutions),
              show_default=True, help="Comma-separated resolution ladder for large graphs.")
@click.option('--small-resolutions', callback=_parse_ladder, default=_ladder_text(_RESOLUTION_DEFAULTS.small_graph_resolutions),
              show_default=True, help="Comma-separated resolution ladder for small graphs.")
@click.option('--escalation-factor', type=float, default=_RESOLUTION_DEFAULTS.escalation_factor, show_default=True,
              help="Resolution multiplier applied past the end of the ladder.")
@click.option('--max-escalations', type=int, default=_RESOLUTION_DEFAULTS.max_escalations, show_default=True,
              help="How many times to escalate before falling back.")
@click.option('--nodes-per-bucket', type=int, default=_RESOLUTION_DEFAULTS.nodes_per_bucket, show_default=True,
              help="Fallback partition: nodes per hash bucket.")
@click.option('--min-buckets', type=int, default=_RESOLUTION_DEFAULTS.min_buckets, show_default=True,
              help="Fallback partition: minimum bucket count.")
@click.option('--max-buckets', type=int, default=_RESOLUTION_DEFAULTS.max_buckets, show_default=True,
              help="Fallback partition: maximum bucket count.")
@click.option('--seed', type=int, default=_RESOLUTION_DEFAULTS.random_seed, show_default=True,
              help="Seed for the node visiting order.")
@click.option('--max-sweeps', type=int, default=_RESOLUTION_DEFAULTS.max_sweeps, show_default=True,
              help="Local-moving sweeps per level before giving up on convergence.")
@click.option('--sample-size', type=int, default=_EXPORT_DEFAULTS.sample_size, show_default=True,
              help="Members listed per cluster.")
@click.option('--indent', type=int, default=_EXPORT_DEFAULTS.indent, show_default=True,
              help="JSON indentation.")
@click.option('--generated-at', type=str, default=None,
              help="Pin the snapshot timestamp (ISO-8601) instead of using the current time.")
@click.option('--verbose/--quiet', default=False,
              help="Print progress while clustering.")
@click.option('--timing/--no-timing', default=False,
              help="Print timing statistics at the end.")
def main(input_path, out_path, target_clusters, small_graph_divisor, min_target_clusters,
         small_graph_threshold, large_resolutions, small_resolutions, escalation_factor,
         max_escalations, nodes_per_bucket, min_buckets, max_buckets, seed, max_sweeps,
         sample_size, indent, generated_at, verbose, timing):
    """Cluster a page link graph and write the constellation snapshot."""
    perf_monitor.enabled = timing
    perf_monitor.reset()

    try:
        config = ExportConfig(
            sample_size=sample_size,
            indent=indent,
            resolution=ResolutionConfig(
                target_clusters=target_clusters,
                small_graph_divisor=small_graph_divisor,
                min_target_clusters=min_target_clusters,
                small_graph_threshold=small_graph_threshold,
                large_graph_resolutions=large_resolutions,
                small_graph_resolutions=small_resolutions,
                escalation_factor=escalation_factor,
                max_escalations=max_escalations,
                nodes_per_bucket=nodes_per_bucket,
                min_buckets=min_buckets,
                max_buckets=max_buckets,
                random_seed=seed,
                max_sweeps=max_sweeps,
            ),
        )
    except ValueError as e:
        raise click.UsageError(str(e))

    pinned = None
    if generated_at is not None:
        pinned = parse_timestamp(generated_at)
        if pinned is None:
            raise click.BadParameter(f"cannot parse timestamp {generated_at!r}",
                                     param_hint="--generated-at")

    if verbose:
        print(f"Loading link graph from {input_path}...")
    with perf_monitor.timed_operation("Load link graph", verbose=verbose):
        try:
            pages, edges = load_link_graph(input_path)
        except ValueError as e:
            raise click.ClickException(str(e))
    if verbose:
        print(f"  Pages: {len(pages):,}")
        print(f"  Links: {len(edges):,}")

    try:
        snapshot = export_constellation(pages, edges, out_path, config=config,
                                        generated_at=pinned, verbose=verbose)
    except ValueError as e:
        raise click.ClickException(str(e))

    click.echo(f"Wrote constellation to {out_path} ({snapshot.totals.clusters} clusters, "
               f"{snapshot.totals.pages} pages, {snapshot.totals.links} links)")

    if timing:
        perf_monitor.print_timing_summary()


if __name__ == '__main__':
    main()
