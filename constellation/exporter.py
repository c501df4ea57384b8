"""
Cluster aggregation and snapshot export.

Takes pages, links and a page -> cluster assignment, computes per-cluster
statistics and weighted inter-cluster links, and writes the ordered snapshot
consumed by the visualization layer.
"""
import json
import os
import tempfile
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numba as nb
import numpy as np
import pandas as pd

from .config import ExportConfig
from .core_utilities import perf_monitor
from .models import (Cluster, ClusterLink, ClusterMember, Edge, PageNode, Snapshot, Totals,
                     parse_timestamp)
from .resolution_search import compute_clusters


# ============================================================================
# INPUT
# ============================================================================

def prepare_links(slugs: Sequence[str], links_by_page: Mapping[str, Iterable[str]]
                  ) -> Tuple[List[Edge], Dict[str, int]]:
    """
    Turn raw per-page link lists into a filtered edge list.

    Drops self-references and links to unknown pages, and keeps each target
    once per source page.

    Returns
    -------
    edges : list of Edge
    outbound : dict
        slug -> number of distinct kept targets
    """
    known = set(slugs)
    edges = []
    outbound = {}
    for slug in slugs:
        seen = set()
        for target in links_by_page.get(slug, ()):
            if target == slug or target not in known or target in seen:
                continue
            seen.add(target)
            edges.append(Edge(slug, target))
        outbound[slug] = len(seen)
    return edges, outbound


def load_link_graph(path) -> Tuple[List[PageNode], List[Edge]]:
    """
    Load a link graph dump.

    Expected shape::

        {"generated_at": ..., "nodes": [{"slug", "created_at", "outbound"}, ...],
         "edges": [{"source", "target"}, ...]}

    Nodes may instead carry a raw ``links`` list, in which case edges and
    outbound counts are derived with :func:`prepare_links`.
    """
    with open(path, 'r') as f:
        data = json.load(f)

    nodes_raw = data.get('nodes') if isinstance(data, dict) else None
    if not isinstance(nodes_raw, list):
        raise ValueError(f"{path}: expected a 'nodes' array")

    slugs = []
    created = {}
    outbound = {}
    raw_links = {}
    for i, node in enumerate(nodes_raw):
        if not isinstance(node, dict) or 'slug' not in node:
            raise ValueError(f"{path}: node {i} has no 'slug'")
        slug = node['slug']
        if slug in created:
            raise ValueError(f"{path}: node {i} repeats slug {slug!r}")
        slugs.append(slug)
        created[slug] = parse_timestamp(node.get('created_at'))
        outbound[slug] = int(node.get('outbound') or 0)
        if 'links' in node:
            raw_links[slug] = node['links'] or []

    if data.get('edges') is not None:
        edges = []
        for i, edge in enumerate(data['edges']):
            try:
                edges.append(Edge(edge['source'], edge['target']))
            except (KeyError, TypeError):
                raise ValueError(f"{path}: edge {i} needs 'source' and 'target'")
    elif raw_links:
        edges, outbound = prepare_links(slugs, raw_links)
    else:
        edges = []

    pages = [PageNode(slug=s, created_at=created[s], outbound=outbound.get(s, 0)) for s in slugs]
    return pages, edges


# ============================================================================
# AGGREGATION
# ============================================================================

@nb.njit(cache=True)
def _accumulate_link_counts(src_cluster, dst_cluster, n_clusters):
    internal = np.zeros(n_clusters, dtype=np.int64)
    external = np.zeros(n_clusters, dtype=np.int64)
    for e in range(src_cluster.shape[0]):
        a = src_cluster[e]
        b = dst_cluster[e]
        if a == b:
            internal[a] += 1
        else:
            external[a] += 1
            external[b] += 1
    return internal, external


def _cluster_links(src_cluster, dst_cluster, n_clusters) -> List[ClusterLink]:
    """Weighted unordered cluster pairs, heaviest first, then by (source, target)."""
    cross = src_cluster != dst_cluster
    if not np.any(cross):
        return []
    lo = np.minimum(src_cluster[cross], dst_cluster[cross])
    hi = np.maximum(src_cluster[cross], dst_cluster[cross])
    pair_keys, weights = np.unique(lo * n_clusters + hi, return_counts=True)
    lo = pair_keys // n_clusters
    hi = pair_keys % n_clusters
    order = np.lexsort((hi, lo, -weights))
    return [ClusterLink(source=int(lo[i]), target=int(hi[i]), weight=int(weights[i]))
            for i in order]


def _as_datetime(value) -> Optional[datetime]:
    if pd.isna(value):
        return None
    return value.to_pydatetime()


def aggregate_clusters(pages: Sequence[PageNode], edges: Iterable, assignments: Mapping[str, int],
                       sample_size=40) -> Tuple[List[Cluster], List[ClusterLink], int]:
    """
    Build ordered cluster records and inter-cluster links.

    Clusters are ordered by size (largest first, then id); each sample holds
    up to ``sample_size`` members by outbound count (highest first, then
    slug). Self-links and links touching unassigned pages are not counted.

    Returns
    -------
    clusters : list of Cluster
    links : list of ClusterLink
    n_links : int
        Number of links that were counted.
    """
    pages = [p for p in pages if p.slug in assignments]
    if not pages:
        return [], [], 0

    with perf_monitor.timed_operation("Aggregate clusters"):
        node_df = pd.DataFrame({
            'slug': [p.slug for p in pages],
            'outbound': np.array([p.outbound for p in pages], dtype=np.int64),
            'created_at': pd.to_datetime(pd.Series([p.created_at for p in pages], dtype=object),
                                         utc=True, errors='coerce'),
            'cluster': np.array([assignments[p.slug] for p in pages], dtype=np.int64),
        })
        n_clusters = int(node_df['cluster'].max()) + 1

        edge_df = pd.DataFrame([tuple(e) for e in edges], columns=['source', 'target'])
        edge_df = edge_df[edge_df['source'] != edge_df['target']]
        src = edge_df['source'].map(assignments)
        dst = edge_df['target'].map(assignments)
        resolved = src.notna() & dst.notna()
        src_cluster = src[resolved].to_numpy(dtype=np.int64)
        dst_cluster = dst[resolved].to_numpy(dtype=np.int64)

        internal, external = _accumulate_link_counts(src_cluster, dst_cluster, n_clusters)
        links = _cluster_links(src_cluster, dst_cluster, n_clusters)

        grouped = node_df.groupby('cluster')
        sizes = grouped.size()
        oldest = grouped['created_at'].min()
        newest = grouped['created_at'].max()

        ranked = node_df.sort_values(['outbound', 'slug'], ascending=[False, True], kind='mergesort')
        samples = {cid: grp['slug'].tolist()
                   for cid, grp in ranked.groupby('cluster').head(sample_size).groupby('cluster')}

        page_by_slug = {p.slug: p for p in pages}
        cluster_ids = sorted(sizes.index, key=lambda cid: (-int(sizes[cid]), int(cid)))

        clusters = []
        for cid in cluster_ids:
            sample = [
                ClusterMember(slug=slug, outbound=page_by_slug[slug].outbound,
                              created_at=page_by_slug[slug].created_at)
                for slug in samples.get(cid, [])
            ]
            clusters.append(Cluster(
                id=int(cid),
                size=int(sizes[cid]),
                sample=sample,
                internal_links=int(internal[cid]),
                external_links=int(external[cid]),
                oldest_created_at=_as_datetime(oldest[cid]),
                newest_created_at=_as_datetime(newest[cid]),
            ))

    return clusters, links, int(src_cluster.size)


# ============================================================================
# SNAPSHOT
# ============================================================================

def build_snapshot(pages: Sequence[PageNode], edges: Iterable, config: ExportConfig = None,
                   generated_at: Optional[datetime] = None, verbose=False) -> Snapshot:
    """
    Cluster the link graph and assemble its snapshot.

    ``generated_at`` defaults to the current UTC time; pass a fixed value to
    get identical output for identical input.
    """
    if config is None:
        config = ExportConfig()
    if generated_at is None:
        generated_at = datetime.now(timezone.utc)

    pages = list(pages)
    edges = [Edge(*e) for e in edges]
    if not pages:
        if verbose:
            print("No pages; writing empty snapshot")
        return Snapshot(generated_at=generated_at)

    assignments, result = compute_clusters([p.slug for p in pages], edges,
                                           config.resolution, verbose=verbose)
    if verbose:
        print(f"Partitioned {len(pages):,} pages into {result.n_clusters} clusters "
              f"via {result.method}")

    clusters, links, n_links = aggregate_clusters(pages, edges, assignments,
                                                  sample_size=config.sample_size)

    return Snapshot(
        generated_at=generated_at,
        totals=Totals(pages=len(pages), links=n_links, clusters=len(clusters)),
        clusters=clusters,
        links=links,
    )


def write_snapshot(snapshot: Snapshot, out_path, indent=2):
    """
    Write ``snapshot`` as JSON, creating the parent directory if needed.

    The file is written next to its destination and moved into place, so
    readers see either the old or the new snapshot.
    """
    out_dir = os.path.dirname(os.path.abspath(out_path))
    with perf_monitor.timed_operation("Write snapshot"):
        os.makedirs(out_dir, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix='.constellation-', suffix='.tmp', dir=out_dir)
        try:
            with os.fdopen(fd, 'w') as f:
                json.dump(snapshot.to_dict(), f, indent=indent)
            os.chmod(tmp_path, 0o644)
            os.replace(tmp_path, out_path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise


def load_snapshot(path) -> Snapshot:
    with open(path, 'r') as f:
        return Snapshot.from_dict(json.load(f))


def export_constellation(pages: Sequence[PageNode], edges: Iterable, out_path=None,
                         config: ExportConfig = None, generated_at: Optional[datetime] = None,
                         verbose=False) -> Snapshot:
    """Build the snapshot and, if ``out_path`` is given, write it there."""
    if config is None:
        config = ExportConfig()
    snapshot = build_snapshot(pages, edges, config, generated_at=generated_at, verbose=verbose)
    if out_path:
        write_snapshot(snapshot, out_path, indent=config.indent)
        if verbose:
            print(f"Snapshot written to {out_path}")
    return snapshot
