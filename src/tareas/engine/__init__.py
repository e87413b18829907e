"""Tareas engine - task lifecycle, visibility and assignment rules."""

from tareas.engine.errors import (
    AuthenticationError,
    Conflict,
    DepartmentMismatch,
    HierarchyViolation,
    InternalError,
    InvalidResponsibles,
    InvalidState,
    NotFound,
    PermissionDenied,
    TareasError,
    ValidationError,
)

__all__ = [
    "AuthenticationError",
    "Conflict",
    "DepartmentMismatch",
    "HierarchyViolation",
    "InternalError",
    "InvalidResponsibles",
    "InvalidState",
    "NotFound",
    "PermissionDenied",
    "TareasError",
    "ValidationError",
]
