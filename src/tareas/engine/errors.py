"""Tareas engine errors."""

from typing import Any


class TareasError(Exception):
    """Base error for Tareas operations."""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "TAREAS_ERROR",
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(TareasError):
    """Malformed or missing input."""

    status_code = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, "VALIDATION_ERROR", details)


class InvalidResponsibles(ValidationError):
    """Some candidate responsibles do not exist or are inactive."""

    def __init__(self, missing_ids: list[int]):
        super().__init__(
            "Uno o más responsables no existen o están inactivos",
            {"responsables": missing_ids},
        )
        self.code = "INVALID_RESPONSIBLES"
        self.missing_ids = missing_ids


class AuthenticationError(TareasError):
    """Missing, invalid or expired credential."""

    status_code = 401

    def __init__(self, message: str = "Token inválido o expirado"):
        super().__init__(message, "AUTHENTICATION_ERROR")


class PermissionDenied(TareasError):
    """Role, department or hierarchy rule failed."""

    status_code = 403

    def __init__(self, message: str = "No tienes permiso para esta acción", code: str = "PERMISSION_DENIED"):
        super().__init__(message, code)


class HierarchyViolation(PermissionDenied):
    """Actor may not act on a user or task above them in the hierarchy."""

    def __init__(self, message: str, usuario_id: int | None = None):
        super().__init__(message, "HIERARCHY_VIOLATION")
        self.usuario_id = usuario_id
        if usuario_id is not None:
            self.details = {"usuarioId": usuario_id}


class DepartmentMismatch(PermissionDenied):
    """Actor may only operate within their own department."""

    def __init__(self, message: str = "Solo puedes asignar tareas dentro de tu departamento"):
        super().__init__(message, "DEPARTMENT_MISMATCH")


class NotFound(TareasError):
    """Task, user, image or department does not exist."""

    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} no encontrado: {entity_id}", "NOT_FOUND")
        self.entity = entity
        self.entity_id = entity_id


class Conflict(TareasError):
    """Uniqueness violation at the store."""

    status_code = 409

    def __init__(self, message: str = "El registro ya existe"):
        super().__init__(message, "CONFLICT")


class InvalidState(TareasError):
    """Lifecycle guard failed."""

    status_code = 400

    def __init__(self, current_status: str, operation: str):
        super().__init__(
            f"No se puede {operation} una tarea en estado {current_status}",
            "INVALID_STATE",
        )
        self.current_status = current_status
        self.operation = operation


class InternalError(TareasError):
    """Unexpected failure; details stay in the logs."""

    status_code = 500

    def __init__(self, message: str = "Error interno del servidor"):
        super().__init__(message, "INTERNAL_ERROR")
