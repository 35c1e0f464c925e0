"""Utility functions."""

from .logging import setup_logging, get_logger
from .metrics import RunMetrics, calculate_metrics, format_metrics_report
from .similarity import SimilarityHeuristic, overlap, tokens

__all__ = [
    "setup_logging",
    "get_logger",
    "RunMetrics",
    "calculate_metrics",
    "format_metrics_report",
    "SimilarityHeuristic",
    "overlap",
    "tokens",
]
