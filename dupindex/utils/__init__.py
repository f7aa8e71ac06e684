"""Shared helpers: logging configuration and atomic file writes."""

from .fileio import write_atomic
from .logging_setup import IndexLogFormatter, setup_logging, log_operation

__all__ = ['write_atomic', 'IndexLogFormatter', 'setup_logging', 'log_operation']
