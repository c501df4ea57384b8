"""
Resolution search with a deterministic fallback partitioner.

Louvain is retried along a resolution ladder until it produces at least the
desired number of communities for the graph size; past the end of the ladder
the resolution is escalated a bounded number of times. If that still falls
short, nodes are bucketed by a stable hash of their key instead.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from sklearn.metrics import normalized_mutual_info_score

from .config import ResolutionConfig
from .core_utilities import perf_monitor, renumber_labels, count_unique, fnv1a_32
from .link_graph import WeightedGraph, build_weighted_graph
from .louvain import optimize, modularity


@dataclass
class ResolutionAttempt:
    resolution: float
    n_communities: int
    modularity: float
    nmi_with_previous: Optional[float] = None

    def to_dict(self):
        return {
            "resolution": self.resolution,
            "n_communities": self.n_communities,
            "modularity": self.modularity,
            "nmi_with_previous": self.nmi_with_previous,
        }


@dataclass
class SearchResult:
    labels: np.ndarray                 # cluster id per node, dense from 0
    method: str                        # 'louvain', 'fallback' or 'empty'
    desired_clusters: int
    resolution: Optional[float] = None  # resolution of the accepted Louvain run
    attempts: List[ResolutionAttempt] = field(default_factory=list)

    @property
    def n_clusters(self):
        return count_unique(self.labels)


def desired_cluster_count(n_nodes, config: ResolutionConfig):
    """Fixed target for large graphs, n // divisor (at least the floor) for small ones."""
    desired = config.target_clusters
    if n_nodes < desired:
        desired = max(config.min_target_clusters, n_nodes // config.small_graph_divisor)
        desired = min(desired, n_nodes)
    return desired


def resolution_ladder(n_nodes, config: ResolutionConfig) -> Tuple[float, ...]:
    if n_nodes < config.small_graph_threshold:
        return config.small_graph_resolutions
    return config.large_graph_resolutions


def fallback_bucket_count(n_nodes, desired, config: ResolutionConfig):
    count = n_nodes // config.nodes_per_bucket
    count = max(count, desired)
    count = min(count, config.max_buckets)
    count = min(count, n_nodes)
    count = max(count, config.min_buckets)
    return count


def fallback_partition(keys: Sequence[str], desired, config: ResolutionConfig = None):
    """
    Bucket nodes by FNV-1a hash of their key.

    Keys are visited in sorted order and bucket ids are renumbered densely in
    that order, so the result depends only on the key set. When there are at
    least as many buckets as keys every key gets its own cluster. If hashing
    fills fewer than ``min_buckets`` buckets, sorted keys are dealt
    round-robin instead.

    Returns labels aligned with ``keys``.
    """
    if config is None:
        config = ResolutionConfig()
    n = len(keys)
    if n == 0:
        return np.empty(0, dtype=np.int64)

    with perf_monitor.timed_operation("Fallback partition"):
        bucket_count = fallback_bucket_count(n, desired, config)
        order = sorted(range(n), key=lambda i: keys[i])
        labels = np.empty(n, dtype=np.int64)

        if bucket_count >= n:
            for rank, i in enumerate(order):
                labels[i] = rank
            return labels

        sorted_buckets = np.array([fnv1a_32(keys[i]) % bucket_count for i in order],
                                  dtype=np.int64)
        if count_unique(sorted_buckets) < min(config.min_buckets, n):
            # hash collisions left too few buckets; deal sorted keys round-robin
            sorted_buckets = np.arange(n, dtype=np.int64) % bucket_count
        labels[np.asarray(order, dtype=np.int64)] = renumber_labels(sorted_buckets)
    return labels


def search_partition(graph: WeightedGraph, keys: Sequence[str],
                     config: ResolutionConfig = None, verbose=False) -> SearchResult:
    """
    Find a partition of ``graph`` with at least the desired number of clusters.

    ``keys`` are the node keys in graph order, used only by the fallback.
    """
    if config is None:
        config = ResolutionConfig()
    n = graph.n_nodes
    desired = desired_cluster_count(n, config)
    if n == 0:
        return SearchResult(labels=np.empty(0, dtype=np.int64), method="empty",
                            desired_clusters=desired)

    attempts = []
    previous = [None]

    def run(resolution):
        labels = optimize(graph, resolution, seed=config.random_seed,
                          max_sweeps=config.max_sweeps)
        if labels.size == 0:
            return labels, 0
        unique = count_unique(labels)
        nmi = None
        if attempts:
            nmi = float(normalized_mutual_info_score(previous[0], labels))
        attempts.append(ResolutionAttempt(
            resolution=float(resolution),
            n_communities=unique,
            modularity=modularity(graph, labels, resolution),
            nmi_with_previous=nmi,
        ))
        previous[0] = labels
        if verbose:
            nmi_str = f", NMI vs previous {nmi:.3f}" if nmi is not None else ""
            print(f"  res={resolution:.3f}: {unique} communities "
                  f"(Q={attempts[-1].modularity:.4f}{nmi_str})")
        return labels, unique

    ladder = resolution_ladder(n, config)
    if verbose:
        print(f"Searching resolutions {list(ladder)} for >= {desired} clusters on {n:,} nodes")

    labels = np.empty(0, dtype=np.int64)
    unique = 0
    resolution = None
    for resolution in ladder:
        labels, unique = run(resolution)
        if labels.size == 0 or unique >= desired:
            break

    if labels.size > 0 and unique < desired:
        resolution = ladder[-1]
        for _ in range(config.max_escalations):
            if unique >= desired:
                break
            resolution *= config.escalation_factor
            labels, unique = run(resolution)
            if labels.size == 0:
                break

    if labels.size == 0 or unique < desired:
        if verbose:
            print(f"Louvain reached {unique} < {desired} clusters; using hash fallback")
        labels = fallback_partition(keys, desired, config)
        return SearchResult(labels=labels, method="fallback", desired_clusters=desired,
                            attempts=attempts)

    if verbose:
        print(f"Found {unique} communities at resolution {resolution:.3f}")
    return SearchResult(labels=labels, method="louvain", desired_clusters=desired,
                        resolution=float(resolution), attempts=attempts)


def compute_clusters(keys: Sequence[str], edges, config: ResolutionConfig = None,
                     verbose=False) -> Tuple[Dict[str, int], SearchResult]:
    """
    Cluster the link graph given by ``keys`` and (source, target) ``edges``.

    Returns
    -------
    assignments : dict
        key -> cluster id
    result : SearchResult
    """
    keys = list(keys)
    graph, _ = build_weighted_graph(keys, edges, verbose=verbose)
    result = search_partition(graph, keys, config, verbose=verbose)
    assignments = {key: int(label) for key, label in zip(keys, result.labels)}
    return assignments, result
