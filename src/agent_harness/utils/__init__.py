"""Shared utility functions for the harness."""

from .rich_logging import ContextLogger, HarnessLogFormatter, setup_rich_logging

__all__ = [
    "ContextLogger",
    "HarnessLogFormatter",
    "setup_rich_logging",
]
