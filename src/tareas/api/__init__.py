"""Tareas HTTP API."""
