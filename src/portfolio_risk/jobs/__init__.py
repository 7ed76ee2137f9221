"""Batched simulation execution."""

from .models import BatchOutcome, BatchProgress, BatchResult, BatchStatus

__all__ = [
    "BatchOutcome",
    "BatchProgress",
    "BatchResult",
    "BatchStatus",
    "BatchExecutor",
    "BatchFunction",
    "CancellationToken",
]


def __getattr__(name: str):
    if name in {"BatchExecutor", "BatchFunction", "CancellationToken"}:
        from . import executor

        return getattr(executor, name)
    raise AttributeError(name)
