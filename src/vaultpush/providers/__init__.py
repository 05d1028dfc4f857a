"""Provider interfaces for vaultpush."""
from __future__ import annotations

from .cluster import ClusterError, ClusterProvider, ExecResult

__all__ = [
    "ClusterError",
    "ClusterProvider",
    "ExecResult",
]
