"""Utilities for the secret rotator."""

from .durations import format_duration, parse_duration
from .logging import setup_logging

__all__ = ["format_duration", "parse_duration", "setup_logging"]
