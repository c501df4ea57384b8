"""
Multi-level Louvain modularity optimization.

The local-moving sweep is a numba kernel over the CSR arrays of a
WeightedGraph; aggregation and dendrogram bookkeeping stay in numpy/scipy.
Visit order comes from a numpy Generator created per ``optimize`` call, so
identical inputs give identical partitions.
"""
from dataclasses import dataclass

import numba as nb
import numpy as np

from .core_utilities import perf_monitor, renumber_labels, compose_levels
from .link_graph import WeightedGraph, induced_graph

DEFAULT_SEED = 42
DEFAULT_MAX_SWEEPS = 1000


@dataclass
class CommunityStatus:
    """Per-level optimization state, indexed by node / community id."""
    node_community: np.ndarray       # int64, node -> community
    community_degree: np.ndarray     # float64, sum of member degrees
    community_internal: np.ndarray   # float64, weight inside the community

    @classmethod
    def from_graph(cls, graph: WeightedGraph) -> "CommunityStatus":
        """Every node starts alone in its own community."""
        n = graph.n_nodes
        return cls(
            node_community=np.arange(n, dtype=np.int64),
            community_degree=graph.degree.astype(np.float64).copy(),
            community_internal=graph.loops.astype(np.float64).copy(),
        )


# ------------------------------------------------------------------------
# NUMBA KERNEL
# ------------------------------------------------------------------------
@nb.njit(cache=True)
def _local_moving(indptr, indices, weights, node_degree, loops, total_weight,
                  order, resolution, max_sweeps,
                  node_community, community_degree, community_internal):
    """
    Sweep ``order`` until no node moves (or ``max_sweeps`` is reached).

    Updates the three status arrays in place. Returns (moved_any, sweeps).
    """
    n = node_degree.shape[0]
    # weight from the current node to each neighboring community; -1 = not seen
    neigh_weight = np.full(n, -1.0)
    neigh_comm = np.empty(n, dtype=np.int64)
    m2 = 2.0 * total_weight

    moved_any = False
    sweeps = 0
    improved = True
    while improved and sweeps < max_sweeps:
        improved = False
        sweeps += 1
        for node in order:
            current = node_community[node]
            deg = node_degree[node]

            n_neigh = 0
            for p in range(indptr[node], indptr[node + 1]):
                other = indices[p]
                if other == node:
                    continue
                com = node_community[other]
                if neigh_weight[com] < 0.0:
                    neigh_weight[com] = 0.0
                    neigh_comm[n_neigh] = com
                    n_neigh += 1
                neigh_weight[com] += weights[p]

            w_current = neigh_weight[current] if neigh_weight[current] > 0.0 else 0.0
            community_degree[current] -= deg
            community_internal[current] -= w_current + loops[node]

            best = current
            if deg > 0.0 and m2 > 0.0:
                best_gain = 0.0
                for i in range(n_neigh):
                    com = neigh_comm[i]
                    gain = neigh_weight[com] - resolution * community_degree[com] * deg / m2
                    if gain > best_gain:
                        best_gain = gain
                if best_gain > 0.0:
                    # stay if the current community ties for best, else lowest id
                    best = -1
                    for i in range(n_neigh):
                        com = neigh_comm[i]
                        gain = neigh_weight[com] - resolution * community_degree[com] * deg / m2
                        if gain == best_gain:
                            if com == current:
                                best = current
                                break
                            if best == -1 or com < best:
                                best = com
                    if best == -1:
                        best = current

            w_best = neigh_weight[best] if neigh_weight[best] > 0.0 else 0.0
            node_community[node] = best
            community_degree[best] += deg
            community_internal[best] += w_best + loops[node]

            for i in range(n_neigh):
                neigh_weight[neigh_comm[i]] = -1.0

            if best != current:
                improved = True
                moved_any = True

    return moved_any, sweeps


def one_level(graph: WeightedGraph, status: CommunityStatus, resolution, rng,
              max_sweeps=DEFAULT_MAX_SWEEPS):
    """
    Run the local-moving phase on one level. Mutates ``status``.

    Returns True if any node changed community.
    """
    n = graph.n_nodes
    if n == 0:
        return False
    order = rng.permutation(n).astype(np.int64)
    indptr, indices, weights = graph.csr_arrays()
    moved, _ = _local_moving(
        indptr, indices, weights,
        graph.degree.astype(np.float64, copy=False),
        graph.loops.astype(np.float64, copy=False),
        float(graph.total_weight),
        order, float(resolution), int(max_sweeps),
        status.node_community, status.community_degree, status.community_internal,
    )
    return bool(moved)


def partition_at_level(dendrogram, level):
    """Partition of the original nodes after ``level`` aggregation steps."""
    return compose_levels(dendrogram, level)


def generate_dendrogram(graph: WeightedGraph, resolution=1.0, seed=DEFAULT_SEED,
                        max_sweeps=DEFAULT_MAX_SWEEPS):
    """
    Build the list of per-level partitions.

    Level 0 maps original nodes to first-level communities, each later level
    maps the previous level's communities to coarser ones.
    """
    if resolution <= 0:
        raise ValueError(f"Resolution must be positive, got {resolution}")
    if graph.n_nodes == 0:
        return []

    rng = np.random.default_rng(seed)
    dendrogram = []
    current = graph
    while True:
        status = CommunityStatus.from_graph(current)
        moved = one_level(current, status, resolution, rng, max_sweeps=max_sweeps)
        partition = renumber_labels(status.node_community)
        dendrogram.append(partition)
        if not moved:
            break
        current = induced_graph(partition, current)
    return dendrogram


def optimize(graph: WeightedGraph, resolution=1.0, seed=DEFAULT_SEED,
             max_sweeps=DEFAULT_MAX_SWEEPS, verbose=False):
    """
    Louvain community detection.

    Parameters
    ----------
    graph : WeightedGraph
    resolution : float
        > 1 favors more, smaller communities; < 1 fewer, larger ones.
    seed : int
        Seed of the node visiting order.

    Returns
    -------
    labels : np.ndarray
        int64 community id per node, dense from 0 in order of first appearance.
        Empty for an empty graph.
    """
    with perf_monitor.timed_operation(f"Louvain (res={resolution:.3f})"):
        dendrogram = generate_dendrogram(graph, resolution, seed=seed, max_sweeps=max_sweeps)
        if not dendrogram:
            return np.empty(0, dtype=np.int64)
        labels = renumber_labels(partition_at_level(dendrogram, len(dendrogram) - 1))

    if verbose:
        print(f"Louvain res={resolution:.3f}: {len(dendrogram)} levels, "
              f"{int(labels.max()) + 1} communities")
    return labels


def modularity(graph: WeightedGraph, labels, resolution=1.0):
    """
    Q = sum_c [ internal_c / m - resolution * (degree_c / 2m)^2 ]

    Returns 0.0 for a graph without weight.
    """
    labels = np.asarray(labels, dtype=np.int64)
    m = graph.total_weight
    if graph.n_nodes == 0 or m <= 0:
        return 0.0

    n_comm = int(labels.max()) + 1
    A = graph.adjacency.tocoo()
    same = labels[A.row] == labels[A.col]
    # each internal neighbor pair appears twice in the symmetric adjacency
    internal = np.bincount(labels[A.row[same]], weights=A.data[same], minlength=n_comm) / 2.0
    internal += np.bincount(labels, weights=graph.loops, minlength=n_comm)
    degree = np.bincount(labels, weights=graph.degree, minlength=n_comm)

    return float(np.sum(internal / m - resolution * (degree / (2.0 * m)) ** 2))
