"""
Constellation - Community detection and cluster snapshots for page link graphs.
"""

# Import main entry points for easy access
from .config import ResolutionConfig, ExportConfig
from .link_graph import WeightedGraph, build_weighted_graph, induced_graph
from .louvain import CommunityStatus, optimize, modularity, generate_dendrogram, partition_at_level
from .resolution_search import (
    SearchResult,
    compute_clusters,
    search_partition,
    fallback_partition,
    desired_cluster_count,
)
from .models import PageNode, Edge, Cluster, ClusterLink, ClusterMember, Totals, Snapshot
from .exporter import (
    aggregate_clusters,
    build_snapshot,
    export_constellation,
    load_link_graph,
    load_snapshot,
    prepare_links,
    write_snapshot,
)

# Import core utilities that might be directly useful
from .core_utilities import PerformanceMonitor, perf_monitor, renumber_labels

__all__ = [
    # Configuration
    'ResolutionConfig',
    'ExportConfig',

    # Graph and optimizer
    'WeightedGraph',
    'build_weighted_graph',
    'induced_graph',
    'CommunityStatus',
    'optimize',
    'modularity',
    'generate_dendrogram',
    'partition_at_level',

    # Resolution search
    'SearchResult',
    'compute_clusters',
    'search_partition',
    'fallback_partition',
    'desired_cluster_count',

    # Records
    'PageNode',
    'Edge',
    'Cluster',
    'ClusterLink',
    'ClusterMember',
    'Totals',
    'Snapshot',

    # Export
    'aggregate_clusters',
    'build_snapshot',
    'export_constellation',
    'load_link_graph',
    'load_snapshot',
    'prepare_links',
    'write_snapshot',

    # Utilities
    'PerformanceMonitor',
    'perf_monitor',
    'renumber_labels',
]

# Package metadata
__version__ = '1.0.0'
