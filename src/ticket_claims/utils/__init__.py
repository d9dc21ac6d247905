"""Utility helpers."""

from .logging_config import latency_log, setup_logging

__all__ = ["latency_log", "setup_logging"]
