"""
Bounded parallel execution.

Every fan-out to the embedding provider or the arbitration oracle goes through
execute_parallel so the number of concurrent external calls never exceeds
max_workers.
"""

import logging
import sys
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import TypeVar

from tqdm import tqdm

from registry_resolver.utils.stats import ExecutionStats

logger = logging.getLogger(__name__)

T = TypeVar("T")  # Input type
R = TypeVar("R")  # Result type


def execute_parallel(
    items: Iterable[T],
    worker_func: Callable[[T], R],
    max_workers: int = 8,
    desc: str = "Processing",
    unit: str = "item",
    show_progress: bool = True,
    error_handler: Callable[[T, Exception], None] | None = None,
    stats: ExecutionStats | None = None,
    stats_key: str | None = None,
) -> list[tuple[T, R | None, Exception | None]]:
    """
    Execute a function across items on a fixed-size thread pool.

    Worker exceptions are captured per item and never abort the batch.

    Args:
        items: Iterable of items to process
        worker_func: Function to call for each item (takes item, returns result)
        max_workers: Hard cap on concurrently running calls
        desc: Progress bar description
        unit: Progress bar unit name
        show_progress: Whether to show progress bar
        error_handler: Optional callback for errors (item, exception) -> None
        stats: Optional ExecutionStats instance for tracking
        stats_key: Optional key to increment in stats on success

    Returns:
        List of (item, result, exception) tuples in input order
    """
    if max_workers < 1:
        raise ValueError(f"max_workers must be >= 1, got {max_workers}")

    items_list = list(items)
    total = len(items_list)

    if total == 0:
        return []

    outcomes: list[tuple[T, R | None, Exception | None] | None] = [None] * total

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        future_to_index = {
            executor.submit(worker_func, item): index for index, item in enumerate(items_list)
        }

        progress_bar = None
        if show_progress:
            progress_bar = tqdm(
                total=total,
                desc=desc,
                unit=unit,
                file=sys.stderr,
                mininterval=1.0,
                dynamic_ncols=True,
            )

        try:
            for future in as_completed(future_to_index):
                index = future_to_index[future]
                item = items_list[index]
                result = None
                error = None

                try:
                    result = future.result()
                    if stats and stats_key:
                        stats.increment(stats_key)
                except Exception as e:
                    error = e
                    if error_handler:
                        error_handler(item, e)
                    else:
                        logger.debug(f"Error processing {item}: {e}")
                    if stats:
                        stats.increment("failed")
                finally:
                    outcomes[index] = (item, result, error)
                    if progress_bar:
                        progress_bar.update(1)
        finally:
            if progress_bar:
                progress_bar.close()

    return [outcome for outcome in outcomes if outcome is not None]
