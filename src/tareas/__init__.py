"""Tareas - departmental task assignment and tracking service."""

__version__ = "0.1.0"
