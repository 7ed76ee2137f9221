"""Unit tests for the thread-pool batch executor."""

from __future__ import annotations

import threading
import time

import numpy as np
import pytest

from portfolio_risk.errors import SimulationCancelledError
from portfolio_risk.jobs import BatchExecutor, BatchProgress, CancellationToken
from portfolio_risk.jobs.executor import split_trials


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _count_trials(trials: int, rng: np.random.Generator) -> int:
    return trials


def _first_draw(trials: int, rng: np.random.Generator) -> float:
    return float(rng.random())


class TestSplitTrials:
    def test_remainder_batch(self):
        assert split_trials(2_500, 1_000) == [1_000, 1_000, 500]

    def test_exact_multiple(self):
        assert split_trials(2_000, 1_000) == [1_000, 1_000]

    def test_degenerate_inputs(self):
        assert split_trials(0, 10) == []
        assert split_trials(3, 0) == [1, 1, 1]


class TestBatchProgress:
    def test_percentage(self):
        assert BatchProgress(current=250, total=1_000).percentage == 25.0
        assert BatchProgress(current=0, total=0).percentage == 0.0


class TestBatchExecutor:
    def test_all_batches_complete(self):
        outcome = BatchExecutor(max_workers=3).run(_count_trials, 2_500, batch_size=1_000, seed=1)
        assert outcome.requested_trials == 2_500
        assert outcome.completed_trials == 2_500
        assert sum(outcome.values) == 2_500
        assert [result.index for result in outcome.results] == [0, 1, 2]
        assert not outcome.is_partial
        assert not outcome.cancelled
        assert not outcome.timed_out

    def test_zero_trials(self):
        outcome = BatchExecutor().run(_count_trials, 0)
        assert outcome.results == []
        assert not outcome.is_partial

    def test_seed_reproducible_across_worker_counts(self):
        one = BatchExecutor(max_workers=1).run(_first_draw, 1_000, batch_size=100, seed=3)
        four = BatchExecutor(max_workers=4).run(_first_draw, 1_000, batch_size=100, seed=3)
        assert one.values == four.values

    def test_batches_get_independent_streams(self):
        outcome = BatchExecutor(max_workers=2).run(_first_draw, 500, batch_size=100, seed=3)
        assert len(set(outcome.values)) == 5

    def test_different_seeds_differ(self):
        a = BatchExecutor().run(_first_draw, 300, batch_size=100, seed=1)
        b = BatchExecutor().run(_first_draw, 300, batch_size=100, seed=2)
        assert a.values != b.values

    def test_progress_callback(self):
        updates: list[BatchProgress] = []
        BatchExecutor(max_workers=2).run(
            _count_trials, 1_000, batch_size=250, seed=1, progress_callback=updates.append
        )
        assert updates
        assert updates[-1].current == 1_000
        assert updates[-1].percentage == 100.0
        assert [u.current for u in updates] == sorted(u.current for u in updates)

    def test_cancel_before_start_raises(self):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(SimulationCancelledError):
            BatchExecutor().run(_count_trials, 1_000, batch_size=100, token=token)

    def test_cancel_mid_run_returns_partial(self):
        token = CancellationToken()

        def cancel_after_first(trials: int, rng: np.random.Generator) -> int:
            token.cancel()
            return trials

        outcome = BatchExecutor(max_workers=1).run(cancel_after_first, 1_000, batch_size=100, token=token)
        assert outcome.cancelled
        assert outcome.is_partial
        assert outcome.completed_trials == 100

    def test_timeout_without_results_raises(self):
        release = threading.Event()

        def slow(trials: int, rng: np.random.Generator) -> int:
            release.wait(2.0)
            return trials

        try:
            with pytest.raises(SimulationCancelledError):
                BatchExecutor(max_workers=1).run(slow, 300, batch_size=100, timeout=0.05)
        finally:
            release.set()

    def test_timeout_keeps_completed_batches(self):
        release = threading.Event()
        calls = []

        def first_fast(trials: int, rng: np.random.Generator) -> int:
            calls.append(trials)
            if len(calls) > 1:
                release.wait(2.0)
            return trials

        try:
            started = time.perf_counter()
            outcome = BatchExecutor(max_workers=1).run(first_fast, 300, batch_size=100, timeout=0.2)
            assert time.perf_counter() - started < 1.5
        finally:
            release.set()
        assert outcome.timed_out
        assert not outcome.cancelled
        assert outcome.completed_trials == 100

    def test_timeout_leaves_caller_token_usable(self):
        release = threading.Event()
        calls = []
        token = CancellationToken()

        def first_fast(trials: int, rng: np.random.Generator) -> int:
            calls.append(trials)
            if len(calls) > 1:
                release.wait(2.0)
            return trials

        executor = BatchExecutor(max_workers=1)
        try:
            timed_out = executor.run(first_fast, 300, batch_size=100, timeout=0.2, token=token)
        finally:
            release.set()
        assert timed_out.timed_out
        assert not token.is_cancelled()

        reused = executor.run(_count_trials, 500, batch_size=100, token=token)
        assert not reused.is_partial
        assert reused.completed_trials == 500

    def test_batch_errors_propagate(self):
        def boom(trials: int, rng: np.random.Generator) -> int:
            raise ValueError("bad batch")

        with pytest.raises(ValueError, match="bad batch"):
            BatchExecutor(max_workers=2).run(boom, 200, batch_size=100)
