"""Tareas background tasks."""

from tareas.tasks.reminders import start_reminders, stop_reminders

__all__ = ["start_reminders", "stop_reminders"]
