"""Simulation batch data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class BatchStatus(Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"


@dataclass
class BatchProgress:
    """Progress update for a running simulation."""

    current: int
    total: int
    message: str = ""
    percentage: float = field(init=False)

    def __post_init__(self) -> None:
        self.percentage = (self.current / self.total * 100.0) if self.total > 0 else 0.0


@dataclass
class BatchResult:
    """Result of a single batch of trials."""

    index: int
    trials: int
    status: BatchStatus = BatchStatus.COMPLETED
    value: Any | None = None
    duration_seconds: float = 0.0


@dataclass
class BatchOutcome:
    """Aggregate of every batch that ran before completion, cancellation or timeout."""

    requested_trials: int
    results: list[BatchResult] = field(default_factory=list)
    cancelled: bool = False
    timed_out: bool = False
    duration_seconds: float = 0.0

    @property
    def completed_trials(self) -> int:
        return sum(result.trials for result in self.results)

    @property
    def values(self) -> list[Any]:
        return [result.value for result in self.results]

    @property
    def is_partial(self) -> bool:
        return self.completed_trials < self.requested_trials
