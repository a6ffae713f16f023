"""Observability helpers for Taskhook."""

from taskhook.observability.metrics import metrics

__all__ = ["metrics"]
