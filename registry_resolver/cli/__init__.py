"""Common CLI utilities for maintenance scripts."""

from registry_resolver.cli.logging import (
    print_dry_run_header,
    print_execute_header,
    setup_logging,
)

__all__ = [
    "setup_logging",
    "print_dry_run_header",
    "print_execute_header",
]
