"""Pruning module."""

from .pruner import (
    IRetentionPruner,
    PruneGate,
    PruneInProgressError,
    PruneResult,
    RetentionPruner,
)

__all__ = [
    "IRetentionPruner",
    "PruneGate",
    "PruneInProgressError",
    "PruneResult",
    "RetentionPruner",
]
