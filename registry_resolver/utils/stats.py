"""
Thread-safe statistics tracking for parallel execution.

Used by batch resolution and embedding maintenance to count outcomes
across worker threads.
"""

from threading import Lock


class ExecutionStats:
    """
    Thread-safe counter set.

    Example:
        stats = ExecutionStats(embedded=0, failed=0)
        stats.increment("embedded")
    """

    def __init__(self, **initial_values: int):
        self._lock = Lock()
        self._counters: dict[str, int] = dict(initial_values)

    @property
    def lock(self) -> Lock:
        """Get the thread lock for manual synchronization."""
        return self._lock

    def increment(self, key: str, amount: int = 1) -> None:
        """Thread-safe increment of a counter."""
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + amount

    def get(self, key: str, default: int = 0) -> int:
        """Get counter value."""
        with self._lock:
            return self._counters.get(key, default)

    def to_dict(self) -> dict[str, int]:
        """Get all counters as a dictionary."""
        with self._lock:
            return self._counters.copy()

    def __getitem__(self, key: str) -> int:
        return self.get(key)

    def __repr__(self) -> str:
        with self._lock:
            items = ", ".join(f"{k}={v}" for k, v in sorted(self._counters.items()))
            return f"ExecutionStats({items})"
