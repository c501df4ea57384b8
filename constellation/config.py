# constellation/config.py
from __future__ import annotations
from dataclasses import dataclass, asdict, field
from typing import Any, Dict, Tuple


@dataclass
class ResolutionConfig:
    target_clusters: int = 20          # desired cluster count for large graphs
    small_graph_divisor: int = 3       # small graphs aim for n // divisor clusters
    min_target_clusters: int = 2
    small_graph_threshold: int = 500   # below this many nodes use the small ladder
    large_graph_resolutions: Tuple[float, ...] = (3.4, 2.6, 2.0, 1.6, 1.3, 1.0)
    small_graph_resolutions: Tuple[float, ...] = (1.0, 0.8, 0.6)
    escalation_factor: float = 1.5     # multiplied into the last ladder entry
    max_escalations: int = 4
    nodes_per_bucket: int = 5000       # fallback: one bucket per this many nodes
    min_buckets: int = 2
    max_buckets: int = 64
    random_seed: int = 42
    max_sweeps: int = 1000             # local-moving sweeps per level

    def __post_init__(self):
        self.large_graph_resolutions = tuple(float(r) for r in self.large_graph_resolutions)
        self.small_graph_resolutions = tuple(float(r) for r in self.small_graph_resolutions)

        if not self.large_graph_resolutions or not self.small_graph_resolutions:
            raise ValueError("Resolution ladders must not be empty")
        for r in self.large_graph_resolutions + self.small_graph_resolutions:
            if r <= 0:
                raise ValueError(f"Resolutions must be positive, got {r}")
        if self.target_clusters < 1:
            raise ValueError(f"target_clusters must be >= 1, got {self.target_clusters}")
        if self.small_graph_divisor < 1:
            raise ValueError(f"small_graph_divisor must be >= 1, got {self.small_graph_divisor}")
        if self.escalation_factor <= 1.0:
            raise ValueError(f"escalation_factor must be > 1, got {self.escalation_factor}")
        if self.max_escalations < 0:
            raise ValueError(f"max_escalations must be >= 0, got {self.max_escalations}")
        if self.nodes_per_bucket < 1:
            raise ValueError(f"nodes_per_bucket must be >= 1, got {self.nodes_per_bucket}")
        if self.min_buckets < 1 or self.min_buckets > self.max_buckets:
            raise ValueError(
                f"Bucket bounds must satisfy 1 <= min_buckets <= max_buckets, "
                f"got {self.min_buckets}..{self.max_buckets}"
            )
        if self.max_sweeps < 1:
            raise ValueError(f"max_sweeps must be >= 1, got {self.max_sweeps}")

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d['large_graph_resolutions'] = list(self.large_graph_resolutions)
        d['small_graph_resolutions'] = list(self.small_graph_resolutions)
        return d


@dataclass
class ExportConfig:
    sample_size: int = 40              # members kept per cluster in the snapshot
    indent: int = 2                    # JSON indentation
    resolution: ResolutionConfig = field(default_factory=ResolutionConfig)

    def __post_init__(self):
        if self.sample_size < 0:
            raise ValueError(f"sample_size must be >= 0, got {self.sample_size}")
