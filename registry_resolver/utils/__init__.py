"""Shared utilities: hashing, bounded parallel execution, counters."""
