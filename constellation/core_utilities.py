"""
Core utilities for the constellation package.
Contains timing helpers and partition label utilities shared across modules.
"""
import time
from collections import defaultdict
from contextlib import contextmanager

import numpy as np


class PerformanceMonitor:
    """Performance monitoring with minimal overhead."""

    def __init__(self, enabled=True):
        self.enabled = enabled
        self.reset()

    def reset(self):
        """Reset all timing statistics."""
        self.timing_stats = defaultdict(float)
        self.timing_counts = defaultdict(int)
        self.total_start_time = time.time()

    @contextmanager
    def timed_operation(self, operation_name, verbose=False):
        """Context manager for timing a named stage."""
        if not self.enabled:
            yield
            return

        start_time = time.time()
        try:
            yield
        finally:
            elapsed = time.time() - start_time
            self.timing_stats[operation_name] += elapsed
            self.timing_counts[operation_name] += 1
            if verbose:
                print(f"  [{operation_name}] completed in {elapsed:.2f} seconds")

    def get_stats(self):
        """Return {operation: {'total', 'count', 'mean'}}."""
        return {
            op: {
                'total': total,
                'count': self.timing_counts[op],
                'mean': total / self.timing_counts[op] if self.timing_counts[op] else 0.0,
            }
            for op, total in self.timing_stats.items()
        }

    def print_timing_summary(self):
        """Print a summary of timing statistics."""
        if not self.enabled:
            return

        total_time = time.time() - self.total_start_time

        print("\n======== TIMING SUMMARY ========")
        print(f"Total execution time: {total_time:.2f} seconds")
        print("\nBreakdown by operation:")

        sorted_ops = sorted(self.timing_stats.items(), key=lambda x: x[1], reverse=True)
        for operation, elapsed in sorted_ops:
            percentage = (elapsed / total_time) * 100 if total_time > 0 else 0.0
            count = self.timing_counts[operation]
            avg_time = elapsed / count if count > 0 else 0
            print(f"  {operation:<30} {elapsed:10.2f}s ({percentage:6.2f}%)  |  {count} calls, avg {avg_time:.4f}s per call")

        print("================================")


# Global performance monitor
perf_monitor = PerformanceMonitor(enabled=True)


def renumber_labels(labels):
    """
    Relabel a partition densely, in order of first appearance.

    [5, 5, 2, 7, 2] -> [0, 0, 1, 2, 1]
    """
    labels = np.asarray(labels, dtype=np.int64)
    if labels.size == 0:
        return np.empty(0, dtype=np.int64)
    _, first_index, inverse = np.unique(labels, return_index=True, return_inverse=True)
    # rank of each unique label by where it was first seen
    rank = np.empty(first_index.size, dtype=np.int64)
    rank[np.argsort(first_index, kind='stable')] = np.arange(first_index.size)
    return rank[inverse.ravel()]


def count_unique(labels):
    """Number of distinct labels in a partition."""
    labels = np.asarray(labels)
    if labels.size == 0:
        return 0
    return int(np.unique(labels).size)


def compose_levels(levels, level=None):
    """
    Project a dendrogram down to the original nodes.

    ``levels[0]`` maps original nodes to first-level communities and every
    following entry maps the previous level's community ids to coarser ones.
    """
    if not levels:
        return np.empty(0, dtype=np.int64)
    if level is None or level >= len(levels):
        level = len(levels) - 1
    if level < 0:
        return np.empty(0, dtype=np.int64)

    result = np.asarray(levels[0], dtype=np.int64).copy()
    for i in range(1, level + 1):
        result = np.asarray(levels[i], dtype=np.int64)[result]
    return result


_FNV32_OFFSET = 0x811C9DC5
_FNV32_PRIME = 0x01000193


def fnv1a_32(text):
    """32-bit FNV-1a hash of the UTF-8 bytes of ``text``."""
    h = _FNV32_OFFSET
    for byte in text.encode('utf-8'):
        h ^= byte
        h = (h * _FNV32_PRIME) & 0xFFFFFFFF
    return h
