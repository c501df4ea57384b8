"""
WeightedGraph - the undirected working structure the optimizer runs on.

Nodes are dense integer ids 0..N-1 assigned in input order. Directed links
are folded into a symmetric CSR adjacency (parallel links add up), self-links
are kept apart as per-node loop weight.
"""
from dataclasses import dataclass

import numpy as np
import scipy.sparse as sp

from .core_utilities import perf_monitor


@dataclass
class WeightedGraph:
    adjacency: sp.csr_matrix     # symmetric, zero diagonal
    degree: np.ndarray           # incident weight per node, loops counted twice
    loops: np.ndarray            # self-loop weight per node
    total_weight: float          # every edge once, loops once

    @property
    def n_nodes(self):
        return self.adjacency.shape[0]

    @property
    def n_edges(self):
        """Number of distinct undirected neighbor pairs."""
        return self.adjacency.nnz // 2

    def csr_arrays(self):
        """(indptr, indices, weights) as int64/int64/float64 for the numba kernels."""
        A = self.adjacency
        return (A.indptr.astype(np.int64, copy=False),
                A.indices.astype(np.int64, copy=False),
                A.data.astype(np.float64, copy=False))

    def get_neighbors(self, node_idx):
        """
        Get neighbors of a node.

        Returns
        -------
        neighbors : np.ndarray
            Neighbor indices, ascending.
        weights : np.ndarray
            Corresponding accumulated weights.
        """
        if node_idx < 0 or node_idx >= self.n_nodes:
            raise ValueError(f"Node index {node_idx} out of range [0, {self.n_nodes-1}]")
        start, end = self.adjacency.indptr[node_idx], self.adjacency.indptr[node_idx + 1]
        return self.adjacency.indices[start:end], self.adjacency.data[start:end]

    def get_edge_weight(self, i, j):
        if i == j:
            return float(self.loops[i])
        return float(self.adjacency[i, j])

    @classmethod
    def from_edge_arrays(cls, n_nodes, sources, targets, weights=None, loops=None):
        """
        Build from (sources, targets[, weights]) with sources != targets.

        Each pair contributes its weight symmetrically to both directions.
        """
        n = int(n_nodes)
        sources = np.asarray(sources, dtype=np.int64)
        targets = np.asarray(targets, dtype=np.int64)
        if weights is None:
            weights = np.ones(sources.size, dtype=np.float64)
        else:
            weights = np.asarray(weights, dtype=np.float64)
        if loops is None:
            loops = np.zeros(n, dtype=np.float64)
        else:
            loops = np.asarray(loops, dtype=np.float64)

        half = sp.coo_matrix((weights, (sources, targets)), shape=(n, n))
        adjacency = (half + half.T).tocsr()
        adjacency.sum_duplicates()
        adjacency.sort_indices()

        degree = np.asarray(adjacency.sum(axis=1), dtype=np.float64).ravel() + 2.0 * loops
        total_weight = float(weights.sum() + loops.sum())

        return cls(adjacency=adjacency, degree=degree, loops=loops, total_weight=total_weight)

    def __str__(self):
        return (f"WeightedGraph with {self.n_nodes} nodes, {self.n_edges} neighbor pairs, "
                f"total weight {self.total_weight:g}")

    def __repr__(self):
        return self.__str__()


def build_weighted_graph(keys, edges, verbose=False):
    """
    Turn an ordered key list and a (source, target) edge list into a WeightedGraph.

    Node ids follow the order of ``keys``. Edges naming a key that is not in
    ``keys`` are skipped; an edge from a key to itself only adds loop weight.

    Returns
    -------
    graph : WeightedGraph
    index_by_key : dict
        key -> dense node id
    """
    index_by_key = {}
    for i, key in enumerate(keys):
        if key in index_by_key:
            raise ValueError(f"Duplicate node key: {key!r}")
        index_by_key[key] = i

    n = len(index_by_key)

    with perf_monitor.timed_operation("Build link graph"):
        sources, targets = [], []
        loops = np.zeros(n, dtype=np.float64)
        dropped = 0
        for source, target in edges:
            u = index_by_key.get(source)
            v = index_by_key.get(target)
            if u is None or v is None:
                dropped += 1
                continue
            if u == v:
                loops[u] += 1.0
                continue
            sources.append(u)
            targets.append(v)

        graph = WeightedGraph.from_edge_arrays(n, sources, targets, loops=loops)

    if verbose:
        print(f"Built link graph: {n:,} nodes, {len(sources):,} links, "
              f"{int(loops.sum()):,} self-links, {dropped:,} unresolved links skipped")

    return graph, index_by_key


def induced_graph(partition, graph):
    """
    Collapse every community of ``partition`` into a single super-node.

    Weight between two communities is the sum of member-to-member weight;
    weight inside a community (including members' loops) becomes the
    super-node's loop weight. Total weight is unchanged.
    """
    partition = np.asarray(partition, dtype=np.int64)
    n = graph.n_nodes
    if n == 0:
        return WeightedGraph.from_edge_arrays(0, [], [])

    n_comm = int(partition.max()) + 1
    membership = sp.csr_matrix(
        (np.ones(n, dtype=np.float64), (np.arange(n), partition)),
        shape=(n, n_comm),
    )
    collapsed = (membership.T @ graph.adjacency @ membership).tocoo()

    off_diag = collapsed.row != collapsed.col
    # the diagonal sees each internal edge from both endpoints
    within = np.bincount(collapsed.row[~off_diag], weights=collapsed.data[~off_diag],
                         minlength=n_comm)

    adjacency = sp.csr_matrix(
        (collapsed.data[off_diag], (collapsed.row[off_diag], collapsed.col[off_diag])),
        shape=(n_comm, n_comm),
    )
    adjacency.sum_duplicates()
    adjacency.sort_indices()

    loops = np.bincount(partition, weights=graph.loops, minlength=n_comm) + within / 2.0
    degree = np.bincount(partition, weights=graph.degree, minlength=n_comm)

    return WeightedGraph(adjacency=adjacency, degree=degree, loops=loops,
                         total_weight=graph.total_weight)
