"""
Permission table for task operations.

Each entry maps an operation and a role to the relationships the caller
must hold with the task. A rule is a tuple of alternatives; each
alternative is a set of relationships that must all hold. An empty
alternative always passes, an empty rule never does.
"""

from enum import Enum

from tareas.engine.errors import HierarchyViolation, PermissionDenied
from tareas.models import Principal, Rol, Tarea


class Operacion(str, Enum):
    """Guarded task operations."""

    CREAR = "CREAR"
    ENTREGAR = "ENTREGAR"
    REVISAR = "REVISAR"
    COMPLETAR = "COMPLETAR"
    CANCELAR = "CANCELAR"
    EDITAR = "EDITAR"
    HISTORIAL = "HISTORIAL"
    SUBIR_IMAGEN = "SUBIR_IMAGEN"
    ELIMINAR_IMAGEN = "ELIMINAR_IMAGEN"


class Relacion(str, Enum):
    """Relationship between a caller and a task."""

    MISMO_DEPARTAMENTO = "MISMO_DEPARTAMENTO"
    CREADOR = "CREADOR"
    RESPONSABLE = "RESPONSABLE"


Rule = tuple[frozenset[Relacion], ...]

ALWAYS: Rule = (frozenset(),)
NEVER: Rule = ()


def _needs(*relaciones: Relacion) -> frozenset[Relacion]:
    return frozenset(relaciones)


_SAME_DEPT: Rule = (_needs(Relacion.MISMO_DEPARTAMENTO),)
_CREATOR: Rule = (_needs(Relacion.CREADOR),)
_RESPONSIBLE: Rule = (_needs(Relacion.RESPONSABLE),)

PERMISSIONS: dict[Operacion, dict[Rol, Rule]] = {
    Operacion.CREAR: {
        Rol.SUPER_ADMIN: ALWAYS,
        Rol.ADMIN: ALWAYS,
        Rol.ENCARGADO: ALWAYS,
    },
    Operacion.ENTREGAR: {
        Rol.SUPER_ADMIN: ALWAYS,
        Rol.ADMIN: _RESPONSIBLE,
        Rol.ENCARGADO: _RESPONSIBLE,
        Rol.USUARIO: _RESPONSIBLE,
        Rol.INVITADO: _RESPONSIBLE,
    },
    Operacion.REVISAR: {
        Rol.SUPER_ADMIN: ALWAYS,
        Rol.ADMIN: (_needs(Relacion.MISMO_DEPARTAMENTO), _needs(Relacion.CREADOR)),
        Rol.ENCARGADO: _CREATOR,
        Rol.USUARIO: _CREATOR,
        Rol.INVITADO: _CREATOR,
    },
    Operacion.COMPLETAR: {
        Rol.SUPER_ADMIN: ALWAYS,
        Rol.ADMIN: ALWAYS,
        Rol.ENCARGADO: _CREATOR,
    },
    Operacion.CANCELAR: {
        Rol.SUPER_ADMIN: ALWAYS,
        Rol.ADMIN: ALWAYS,
        Rol.ENCARGADO: _CREATOR,
    },
    Operacion.EDITAR: {
        Rol.SUPER_ADMIN: ALWAYS,
        Rol.ADMIN: _SAME_DEPT,
        Rol.ENCARGADO: _SAME_DEPT,
    },
    Operacion.HISTORIAL: {
        Rol.SUPER_ADMIN: ALWAYS,
        Rol.ADMIN: _SAME_DEPT,
        Rol.ENCARGADO: _SAME_DEPT,
    },
    Operacion.SUBIR_IMAGEN: {
        Rol.SUPER_ADMIN: ALWAYS,
        Rol.ADMIN: _SAME_DEPT,
        Rol.ENCARGADO: _SAME_DEPT,
    },
    Operacion.ELIMINAR_IMAGEN: {
        Rol.SUPER_ADMIN: ALWAYS,
        Rol.ADMIN: _SAME_DEPT,
        Rol.ENCARGADO: (_needs(Relacion.MISMO_DEPARTAMENTO, Relacion.CREADOR),),
    },
}

_DENIED_MESSAGES: dict[Operacion, str] = {
    Operacion.CREAR: "No tienes permiso para crear tareas",
    Operacion.ENTREGAR: "Solo un responsable de la tarea puede entregarla",
    Operacion.REVISAR: "No tienes permiso para revisar esta tarea",
    Operacion.COMPLETAR: "No tienes permiso para concluir esta tarea",
    Operacion.CANCELAR: "No tienes permiso para cancelar esta tarea",
    Operacion.EDITAR: "No tienes permiso para editar esta tarea",
    Operacion.HISTORIAL: "No tienes permiso para cambiar la fecha de esta tarea",
    Operacion.SUBIR_IMAGEN: "No tienes permiso para subir imágenes a esta tarea",
    Operacion.ELIMINAR_IMAGEN: "No tienes permiso para eliminar esta imagen",
}


def relations_for(principal: Principal, tarea: Tarea | None) -> frozenset[Relacion]:
    """Relationships the principal holds with the task."""
    if tarea is None:
        return frozenset()
    held = set()
    if principal.in_department(tarea.departamento_id):
        held.add(Relacion.MISMO_DEPARTAMENTO)
    if tarea.asignador.id == principal.id:
        held.add(Relacion.CREADOR)
    if tarea.is_responsible(principal.id):
        held.add(Relacion.RESPONSABLE)
    return frozenset(held)


def is_allowed(operacion: Operacion, principal: Principal, tarea: Tarea | None = None) -> bool:
    """Evaluate the table for one caller and task."""
    rule = PERMISSIONS[operacion].get(principal.rol, NEVER)
    held = relations_for(principal, tarea)
    return any(required <= held for required in rule)


def require(operacion: Operacion, principal: Principal, tarea: Tarea | None = None) -> None:
    """Raise PermissionDenied unless the table allows the operation."""
    if not is_allowed(operacion, principal, tarea):
        raise PermissionDenied(_DENIED_MESSAGES[operacion])


def require_edit_hierarchy(principal: Principal, tarea: Tarea) -> None:
    """An ENCARGADO may not edit work created by ADMIN or SUPER_ADMIN."""
    if principal.rol == Rol.ENCARGADO and tarea.asignador.rol in (Rol.ADMIN, Rol.SUPER_ADMIN):
        raise HierarchyViolation(
            "No puedes editar una tarea creada por un superior",
            usuario_id=tarea.asignador.id,
        )
