"""Thread-pool execution of independent simulation batches."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable

import numpy as np

from portfolio_risk.errors import SimulationCancelledError

from .models import BatchOutcome, BatchProgress, BatchResult, BatchStatus

logger = logging.getLogger(__name__)

BatchFunction = Callable[[int, np.random.Generator], Any]
ProgressCallback = Callable[[BatchProgress], None]


@dataclass
class CancellationToken:
    """Cooperative cancellation flag shared between the caller and workers."""

    _event: threading.Event = field(default_factory=threading.Event)

    def cancel(self) -> None:
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()


def split_trials(total_trials: int, batch_size: int) -> list[int]:
    """Split ``total_trials`` into batch sizes of at most ``batch_size``."""
    total = max(0, int(total_trials))
    size = max(1, int(batch_size))
    full, remainder = divmod(total, size)
    return [size] * full + ([remainder] if remainder else [])


class BatchExecutor:
    """
    Run simulation batches on a bounded thread pool.

    Every batch gets its own ``numpy`` generator spawned from one
    ``SeedSequence``, so a fixed seed reproduces the same aggregate no matter
    how batches are scheduled. Batches check the cancellation token before
    starting; a batch already running always finishes.
    """

    def __init__(self, max_workers: int = 4):
        self.max_workers = max(1, int(max_workers))

    def run(
        self,
        batch_fn: BatchFunction,
        total_trials: int,
        *,
        batch_size: int = 1_000,
        seed: int | None = None,
        timeout: float | None = None,
        token: CancellationToken | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> BatchOutcome:
        sizes = split_trials(total_trials, batch_size)
        outcome = BatchOutcome(requested_trials=sum(sizes))
        if not sizes:
            return outcome

        caller_token = token or CancellationToken()
        # set on timeout only; the caller token is never mutated
        expired = CancellationToken()
        children = np.random.SeedSequence(seed).spawn(len(sizes))
        started = time.perf_counter()
        deadline = started + timeout if timeout is not None else None

        def execute(index: int, trials: int, seed_seq: np.random.SeedSequence) -> BatchResult:
            if caller_token.is_cancelled() or expired.is_cancelled():
                return BatchResult(index=index, trials=0, status=BatchStatus.SKIPPED)
            batch_started = time.perf_counter()
            value = batch_fn(trials, np.random.default_rng(seed_seq))
            return BatchResult(
                index=index,
                trials=trials,
                value=value,
                duration_seconds=time.perf_counter() - batch_started,
            )

        pool = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="portfolio-sim")
        completed: list[BatchResult] = []
        try:
            pending: set[Future[BatchResult]] = {
                pool.submit(execute, idx, trials, child)
                for idx, (trials, child) in enumerate(zip(sizes, children))
            }
            while pending:
                remaining = None if deadline is None else max(0.0, deadline - time.perf_counter())
                done, pending = wait(pending, timeout=remaining, return_when=FIRST_COMPLETED)
                if not done:
                    outcome.timed_out = True
                    expired.cancel()
                    break
                for future in done:
                    result = future.result()
                    if result.status is BatchStatus.COMPLETED:
                        completed.append(result)
                if progress_callback is not None:
                    done_trials = sum(result.trials for result in completed)
                    progress_callback(
                        BatchProgress(current=done_trials, total=outcome.requested_trials, message="simulating")
                    )
        finally:
            pool.shutdown(wait=not outcome.timed_out, cancel_futures=True)

        outcome.results = sorted(completed, key=lambda result: result.index)
        outcome.cancelled = caller_token.is_cancelled() and not outcome.timed_out and outcome.is_partial
        outcome.duration_seconds = time.perf_counter() - started

        if outcome.cancelled or outcome.timed_out:
            logger.warning(
                "Simulation stopped early: %d/%d trials completed (cancelled=%s, timed_out=%s)",
                outcome.completed_trials,
                outcome.requested_trials,
                outcome.cancelled,
                outcome.timed_out,
            )
            if not outcome.results:
                reason = "timed out" if outcome.timed_out else "was cancelled"
                raise SimulationCancelledError(f"Simulation {reason} before any batch completed")
        return outcome


__all__ = ["BatchExecutor", "BatchFunction", "CancellationToken", "split_trials"]
