"""Shared test fixtures."""

from datetime import datetime, timezone

import pytest

from constellation.models import Edge, PageNode


def clique_edges(members):
    """Every ordered pair inside ``members`` once."""
    return [Edge(a, b) for a in members for b in members if a != b]


@pytest.fixture
def two_triangles():
    """Two triangles {a,b,c} and {d,e,f} with no links between them."""
    keys = ["a", "b", "c", "d", "e", "f"]
    edges = [
        Edge("a", "b"), Edge("b", "c"), Edge("c", "a"),
        Edge("d", "e"), Edge("e", "f"), Edge("f", "d"),
    ]
    return keys, edges


@pytest.fixture
def ring_of_cliques():
    """Six 5-cliques joined in a ring by single links."""
    groups = [[f"g{g}n{i}" for i in range(5)] for g in range(6)]
    keys = [k for group in groups for k in group]
    edges = []
    for group in groups:
        edges.extend(clique_edges(group))
    for g in range(6):
        edges.append(Edge(groups[g][0], groups[(g + 1) % 6][1]))
    return keys, edges, groups


@pytest.fixture
def pinned_time():
    return datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


@pytest.fixture
def triangle_pages(two_triangles):
    keys, edges = two_triangles
    pages = [
        PageNode(slug=k, created_at=datetime(2024, 1, i + 1, tzinfo=timezone.utc), outbound=1)
        for i, k in enumerate(keys)
    ]
    return pages, edges
