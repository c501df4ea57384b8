"""Tests for the Louvain optimizer."""

import numpy as np
import pytest

from constellation.link_graph import build_weighted_graph
from constellation.louvain import (
    CommunityStatus,
    _local_moving,
    generate_dendrogram,
    modularity,
    one_level,
    optimize,
    partition_at_level,
)
from constellation.models import Edge


def _labels_by_key(keys, labels):
    return dict(zip(keys, labels.tolist()))


class TestOptimize:
    """Test community detection on small known graphs."""

    def test_disjoint_triangles_split(self, two_triangles) -> None:
        """Each triangle forms its own community."""
        keys, edges = two_triangles
        graph, _ = build_weighted_graph(keys, edges)
        clusters = _labels_by_key(keys, optimize(graph, 1.0))

        assert clusters["a"] == clusters["b"] == clusters["c"]
        assert clusters["d"] == clusters["e"] == clusters["f"]
        assert clusters["a"] != clusters["d"]

    def test_labels_dense_in_first_appearance_order(self, two_triangles) -> None:
        keys, edges = two_triangles
        graph, _ = build_weighted_graph(keys, edges)
        labels = optimize(graph, 1.0)
        assert labels.tolist() == [0, 0, 0, 1, 1, 1]

    def test_ring_of_cliques(self, ring_of_cliques) -> None:
        """Every clique is recovered as one community."""
        keys, edges, groups = ring_of_cliques
        graph, _ = build_weighted_graph(keys, edges)
        clusters = _labels_by_key(keys, optimize(graph, 1.0))

        group_labels = []
        for group in groups:
            labels = {clusters[k] for k in group}
            assert len(labels) == 1
            group_labels.append(labels.pop())
        assert len(set(group_labels)) == len(groups)

    def test_deterministic(self, ring_of_cliques) -> None:
        """Identical input and seed give identical labels."""
        keys, edges, _ = ring_of_cliques
        graph, _ = build_weighted_graph(keys, edges)
        first = optimize(graph, 1.3)
        second = optimize(graph, 1.3)
        np.testing.assert_array_equal(first, second)

    def test_lower_resolution_gives_no_more_communities(self, ring_of_cliques) -> None:
        keys, edges, _ = ring_of_cliques
        graph, _ = build_weighted_graph(keys, edges)
        coarse = optimize(graph, 0.1)
        fine = optimize(graph, 1.0)
        assert len(set(coarse.tolist())) <= len(set(fine.tolist()))

    def test_isolated_nodes_stay_apart(self) -> None:
        """Nodes without links keep their own communities."""
        graph, _ = build_weighted_graph(["x", "y", "z"], [])
        assert optimize(graph, 1.0).tolist() == [0, 1, 2]

    def test_self_link_only(self) -> None:
        graph, _ = build_weighted_graph(["a"], [Edge("a", "a")])
        assert optimize(graph, 1.0).tolist() == [0]

    def test_empty_graph(self) -> None:
        graph, _ = build_weighted_graph([], [])
        labels = optimize(graph, 1.0)
        assert labels.size == 0

    def test_non_positive_resolution_rejected(self, two_triangles) -> None:
        keys, edges = two_triangles
        graph, _ = build_weighted_graph(keys, edges)
        with pytest.raises(ValueError, match="Resolution must be positive"):
            optimize(graph, 0.0)


class TestLevels:
    """Test one-level moves and dendrogram composition."""

    def test_status_starts_as_singletons(self, two_triangles) -> None:
        keys, edges = two_triangles
        graph, _ = build_weighted_graph(keys, edges)
        status = CommunityStatus.from_graph(graph)
        assert status.node_community.tolist() == list(range(6))
        np.testing.assert_allclose(status.community_degree, graph.degree)
        np.testing.assert_allclose(status.community_internal, graph.loops)

    def test_one_level_tracks_community_weights(self, two_triangles) -> None:
        """After a level, community aggregates match the assignment."""
        keys, edges = two_triangles
        graph, _ = build_weighted_graph(keys, edges)
        status = CommunityStatus.from_graph(graph)
        moved = one_level(graph, status, 1.0, np.random.default_rng(0))

        assert moved
        for community in set(status.node_community.tolist()):
            members = status.node_community == community
            assert status.community_degree[community] == pytest.approx(graph.degree[members].sum())
            assert status.community_internal[community] == pytest.approx(3.0)

    def test_one_level_without_weight_does_not_move(self) -> None:
        graph, _ = build_weighted_graph(["a", "b"], [])
        status = CommunityStatus.from_graph(graph)
        assert not one_level(graph, status, 1.0, np.random.default_rng(0))
        assert status.node_community.tolist() == [0, 1]

    def test_partition_at_level_composes(self) -> None:
        dendrogram = [np.array([0, 0, 1, 1, 2]), np.array([0, 0, 1])]
        assert partition_at_level(dendrogram, 0).tolist() == [0, 0, 1, 1, 2]
        assert partition_at_level(dendrogram, 1).tolist() == [0, 0, 0, 0, 1]
        assert partition_at_level([], 0).tolist() == []

    def test_dendrogram_ends_with_stable_level(self, ring_of_cliques) -> None:
        """The last level moves nothing, so it is an identity mapping."""
        keys, edges, _ = ring_of_cliques
        graph, _ = build_weighted_graph(keys, edges)
        dendrogram = generate_dendrogram(graph, 1.0)
        assert len(dendrogram) >= 2
        last = dendrogram[-1]
        assert last.tolist() == list(range(len(last)))


class TestModularity:
    """Test the modularity score."""

    def test_triangles_partition(self, two_triangles) -> None:
        keys, edges = two_triangles
        graph, _ = build_weighted_graph(keys, edges)
        assert modularity(graph, [0, 0, 0, 1, 1, 1]) == pytest.approx(0.5)

    def test_singletons(self, two_triangles) -> None:
        keys, edges = two_triangles
        graph, _ = build_weighted_graph(keys, edges)
        assert modularity(graph, np.arange(6)) == pytest.approx(-1.0 / 6.0)

    def test_resolution_scales_null_term(self, two_triangles) -> None:
        keys, edges = two_triangles
        graph, _ = build_weighted_graph(keys, edges)
        assert modularity(graph, [0, 0, 0, 1, 1, 1], resolution=2.0) == pytest.approx(0.0)

    def test_weightless_graph(self) -> None:
        graph, _ = build_weighted_graph(["a", "b"], [])
        assert modularity(graph, [0, 1]) == 0.0

    def test_optimized_partition_beats_singletons(self, ring_of_cliques) -> None:
        keys, edges, _ = ring_of_cliques
        graph, _ = build_weighted_graph(keys, edges)
        labels = optimize(graph, 1.0)
        assert modularity(graph, labels) > modularity(graph, np.arange(len(keys)))


def _sweep(graph, status, order, resolution=1.0, max_sweeps=1):
    indptr, indices, weights = graph.csr_arrays()
    return _local_moving(
        indptr, indices, weights,
        graph.degree.astype(np.float64), graph.loops.astype(np.float64),
        float(graph.total_weight), np.asarray(order, dtype=np.int64),
        resolution, max_sweeps,
        status.node_community, status.community_degree, status.community_internal,
    )


class TestTieBreaking:
    """Test the choice among equally good communities with a fixed visit order."""

    def test_lowest_id_wins_tie(self) -> None:
        """The hub of a star ties between both leaves and joins the lower id."""
        graph, _ = build_weighted_graph(["a", "b", "c"], [Edge("a", "b"), Edge("a", "c")])
        status = CommunityStatus.from_graph(graph)

        moved, sweeps = _sweep(graph, status, [0])
        assert moved
        assert sweeps == 1
        assert status.node_community.tolist() == [1, 1, 2]

    def test_star_sweep_collapses_into_lowest_leaf(self) -> None:
        graph, _ = build_weighted_graph(["a", "b", "c"], [Edge("a", "b"), Edge("a", "c")])
        status = CommunityStatus.from_graph(graph)

        _sweep(graph, status, [0, 1, 2])
        assert status.node_community.tolist() == [1, 1, 1]
        assert status.community_degree.tolist() == pytest.approx([0.0, 4.0, 0.0])
        assert status.community_internal.tolist() == pytest.approx([0.0, 2.0, 0.0])

    def test_current_community_kept_on_tie(self) -> None:
        """A node stays put when its community ties with a lower-id neighbor community."""
        graph, _ = build_weighted_graph(
            ["n0", "n1", "n2", "n3"], [Edge("n2", "n0"), Edge("n2", "n3")])
        status = CommunityStatus(
            node_community=np.array([0, 1, 2, 2], dtype=np.int64),
            community_degree=np.array([1.0, 0.0, 3.0, 0.0]),
            community_internal=np.array([0.0, 0.0, 1.0, 0.0]),
        )

        moved, _ = _sweep(graph, status, [2])
        assert not moved
        assert status.node_community.tolist() == [0, 1, 2, 2]
        assert status.community_degree.tolist() == pytest.approx([1.0, 0.0, 3.0, 0.0])
        assert status.community_internal.tolist() == pytest.approx([0.0, 0.0, 1.0, 0.0])
