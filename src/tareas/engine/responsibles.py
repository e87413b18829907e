"""Responsible-set validation."""

from tareas.db.repositories import UsuarioRepository
from tareas.engine.errors import (
    DepartmentMismatch,
    HierarchyViolation,
    InvalidResponsibles,
    ValidationError,
)
from tareas.models import Principal, Rol, Usuario


def _assignable(actor: Principal, departamento_id: int, candidate: Usuario) -> bool:
    """Hierarchy rule for one candidate."""
    if actor.rol == Rol.SUPER_ADMIN:
        return True
    if candidate.rol == Rol.INVITADO:
        return True

    same_dept = candidate.departamento_id == departamento_id
    if actor.rol == Rol.ADMIN:
        return same_dept and candidate.rol in (Rol.ENCARGADO, Rol.USUARIO)
    if actor.rol == Rol.ENCARGADO:
        return candidate.id == actor.id or (same_dept and candidate.rol == Rol.USUARIO)
    return False


async def validate_responsibles(
    usuarios: UsuarioRepository,
    actor: Principal,
    departamento_id: int,
    candidate_ids: list[int],
) -> list[Usuario]:
    """
    Validate a candidate responsible set for a task in ``departamento_id``.

    Duplicates are collapsed. Checks run in order: every candidate exists and
    is ACTIVO, a non-SUPER_ADMIN actor targets their own department, then each
    candidate passes the actor's hierarchy rule. Returns the approved users
    in input order.
    """
    ids = list(dict.fromkeys(candidate_ids))
    if not ids:
        raise ValidationError(
            "La tarea debe tener al menos un responsable",
            {"responsables": ["Se requiere al menos un responsable"]},
        )

    found = {u.id: u for u in await usuarios.get_many(ids) if u.is_active}
    missing = [uid for uid in ids if uid not in found]
    if missing:
        raise InvalidResponsibles(missing)

    if actor.rol != Rol.SUPER_ADMIN and not actor.in_department(departamento_id):
        raise DepartmentMismatch()

    approved = [found[uid] for uid in ids]
    for candidate in approved:
        if not _assignable(actor, departamento_id, candidate):
            raise HierarchyViolation(
                f"No puedes asignar al usuario ID {candidate.id} por reglas de jerarquía",
                usuario_id=candidate.id,
            )
    return approved
