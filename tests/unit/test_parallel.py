"""
Unit tests for registry_resolver.utils.parallel module.
"""

import threading
import time

import pytest

from registry_resolver.utils.parallel import execute_parallel
from registry_resolver.utils.stats import ExecutionStats


class TestExecuteParallel:
    """Test execute_parallel function."""

    def test_basic_execution(self):
        """Test basic parallel execution."""
        items = [1, 2, 3, 4, 5]

        results = execute_parallel(items, lambda x: x * x, max_workers=2, show_progress=False)

        assert len(results) == 5
        for item, result, error in results:
            assert error is None
            assert result == item * item

    def test_results_keep_input_order(self):
        """Outcomes come back in input order even when later items finish first."""
        items = [0.05, 0.0, 0.03, 0.01]

        def sleepy(delay: float) -> float:
            time.sleep(delay)
            return delay

        results = execute_parallel(items, sleepy, max_workers=4, show_progress=False)

        assert [item for item, _, _ in results] == items
        assert [result for _, result, _ in results] == items

    def test_error_handling(self):
        """Test error handling in parallel execution."""
        errors_caught = []

        def fail_on_2(x: int) -> int:
            if x == 2:
                raise ValueError(f"Failed on {x}")
            return x * x

        results = execute_parallel(
            [1, 2, 3],
            fail_on_2,
            max_workers=2,
            show_progress=False,
            error_handler=lambda item, error: errors_caught.append((item, error)),
        )

        assert len(results) == 3
        assert len(errors_caught) == 1
        assert errors_caught[0][0] == 2

        for item, result, error in results:
            if item == 2:
                assert isinstance(error, ValueError)
                assert result is None
            else:
                assert error is None
                assert result == item * item

    def test_stats_tracking(self):
        """Test stats tracking integration."""
        stats = ExecutionStats(success=0, failed=0)

        def maybe_fail(x: int) -> int:
            if x == 3:
                raise RuntimeError("boom")
            return x

        execute_parallel(
            [1, 2, 3, 4, 5],
            maybe_fail,
            max_workers=2,
            show_progress=False,
            stats=stats,
            stats_key="success",
        )

        assert stats.get("success") == 4
        assert stats.get("failed") == 1

    def test_empty_items(self):
        """Test with empty item list."""
        assert execute_parallel([], lambda x: x, show_progress=False) == []

    def test_max_workers_bounds_concurrency(self):
        """No more than max_workers calls run at the same time."""
        lock = threading.Lock()
        running = 0
        peak = 0

        def tracked(x: int) -> int:
            nonlocal running, peak
            with lock:
                running += 1
                peak = max(peak, running)
            time.sleep(0.02)
            with lock:
                running -= 1
            return x

        execute_parallel(list(range(12)), tracked, max_workers=3, show_progress=False)

        assert peak <= 3

    def test_invalid_max_workers(self):
        """max_workers below 1 is rejected."""
        with pytest.raises(ValueError):
            execute_parallel([1], lambda x: x, max_workers=0, show_progress=False)
