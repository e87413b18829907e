"""Observability helpers for Tareas."""

from tareas.observability.metrics import metrics

__all__ = ["metrics"]
