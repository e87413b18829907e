"""
Visibility resolver.

Turns a principal plus list filters into a SQL predicate over ``tareas``.
Callers never receive rows to post-filter; the store applies the
predicate, so a caller cannot over-fetch another department's work.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import ColumnElement, String, and_, exists, func, not_, or_, select, true

from tareas.db.tables import ResponsableTable, TareaTable, UsuarioTable
from tareas.engine.errors import PermissionDenied
from tareas.models import (
    EstatusTarea,
    Principal,
    Rol,
    Tarea,
    TiempoFilter,
    Urgencia,
    ViewType,
)
from tareas.utils.time import to_seconds

AGRUPAR_DEPARTAMENTO = "DEPARTAMENTO"
AGRUPAR_USUARIO = "USUARIO"


class TareaFiltros(BaseModel):
    """List filters as supplied by the caller."""

    departamento_id: Optional[int] = None
    asignador_id: Optional[int] = None
    responsable_id: Optional[int] = None
    estatus: Optional[EstatusTarea] = None
    urgencia: Optional[Urgencia] = None
    fecha_inicio: Optional[datetime] = None
    fecha_fin: Optional[datetime] = None
    query: Optional[str] = None
    view_type: Optional[ViewType] = None
    tiempo_filter: Optional[TiempoFilter] = None


def _has_responsible(usuario_id: int) -> ColumnElement[bool]:
    return exists(
        select(ResponsableTable.tarea_id).where(
            ResponsableTable.tarea_id == TareaTable.id,
            ResponsableTable.usuario_id == usuario_id,
        )
    )


def _has_admin_responsible() -> ColumnElement[bool]:
    return exists(
        select(ResponsableTable.tarea_id)
        .join(UsuarioTable, ResponsableTable.usuario_id == UsuarioTable.id)
        .where(
            ResponsableTable.tarea_id == TareaTable.id,
            UsuarioTable.rol == Rol.ADMIN,
        )
    )


def _is_kaizen(prefix: str) -> ColumnElement[bool]:
    return func.upper(TareaTable.tarea, type_=String).startswith(prefix.upper(), autoescape=True)


def can_see_kaizen_everywhere(principal: Principal, quality_marker: str) -> bool:
    """SUPER_ADMIN and quality department members see every KAIZEN task."""
    return principal.is_super_admin or principal.is_quality_member(quality_marker)


def _tiempo_clause(tiempo: TiempoFilter, now: datetime) -> ColumnElement[bool]:
    # Fulfilment dates are stored whole-second, so only `now` needs truncating
    now = to_seconds(now)
    cumplimiento = func.coalesce(TareaTable.fecha_entrega, TareaTable.fecha_conclusion)
    entregada = TareaTable.estatus.in_([EstatusTarea.EN_REVISION, EstatusTarea.CONCLUIDA])

    if tiempo == TiempoFilter.PENDIENTES_ATRASADAS:
        return and_(TareaTable.estatus == EstatusTarea.PENDIENTE, TareaTable.fecha_limite < now)
    if tiempo == TiempoFilter.PENDIENTES_A_TIEMPO:
        return and_(TareaTable.estatus == EstatusTarea.PENDIENTE, TareaTable.fecha_limite >= now)
    if tiempo == TiempoFilter.ENTREGADAS_ATRASADAS:
        return and_(entregada, cumplimiento > TareaTable.fecha_limite)
    # No fulfilment date counts as on time
    return and_(
        entregada,
        or_(cumplimiento.is_(None), cumplimiento <= TareaTable.fecha_limite),
    )


def resolve_visibility(
    principal: Principal,
    filtros: TareaFiltros,
    *,
    kaizen_prefix: str,
    quality_marker: str,
    now: datetime,
) -> ColumnElement[bool]:
    """
    Build the list predicate for a caller.

    The role rule comes first; explicit filters are ANDed on top only where
    the role may use them. The KAIZEN clause is a separate hard AND.
    """
    clauses: list[ColumnElement[bool]] = []
    view = filtros.view_type or ViewType.TODAS

    if principal.rol == Rol.SUPER_ADMIN:
        if filtros.departamento_id is not None:
            clauses.append(TareaTable.departamento_id == filtros.departamento_id)
        if filtros.asignador_id is not None:
            clauses.append(TareaTable.asignador_id == filtros.asignador_id)
        if filtros.responsable_id is not None:
            clauses.append(_has_responsible(filtros.responsable_id))
        if view == ViewType.MIS_TAREAS:
            clauses.append(_has_responsible(principal.id))
        elif view == ViewType.ASIGNADAS:
            clauses.append(TareaTable.asignador_id == principal.id)

    elif principal.rol in (Rol.ADMIN, Rol.ENCARGADO):
        if principal.departamento_id is None:
            raise PermissionDenied("No tienes un departamento asignado")
        clauses.append(TareaTable.departamento_id == principal.departamento_id)
        if filtros.asignador_id is not None:
            clauses.append(TareaTable.asignador_id == filtros.asignador_id)
        if filtros.responsable_id is not None:
            clauses.append(_has_responsible(filtros.responsable_id))

        if view == ViewType.MIS_TAREAS:
            clauses.append(_has_responsible(principal.id))
        elif view == ViewType.ASIGNADAS:
            clauses.append(TareaTable.asignador_id == principal.id)
        elif principal.rol == Rol.ENCARGADO:
            clauses.append(not_(_has_admin_responsible()))

    else:
        clauses.append(_has_responsible(principal.id))

    if kaizen_prefix and not can_see_kaizen_everywhere(principal, quality_marker):
        clauses.append(or_(not_(_is_kaizen(kaizen_prefix)), _has_responsible(principal.id)))

    if filtros.estatus is not None:
        clauses.append(TareaTable.estatus == filtros.estatus)
    if filtros.urgencia is not None:
        clauses.append(TareaTable.urgencia == filtros.urgencia)
    if filtros.fecha_inicio is not None:
        clauses.append(TareaTable.fecha_registro >= filtros.fecha_inicio)
    if filtros.fecha_fin is not None:
        clauses.append(TareaTable.fecha_registro <= filtros.fecha_fin)
    if filtros.query:
        clauses.append(
            or_(
                TareaTable.tarea.icontains(filtros.query, autoescape=True),
                TareaTable.observaciones.icontains(filtros.query, autoescape=True),
            )
        )
    if filtros.tiempo_filter is not None:
        clauses.append(_tiempo_clause(filtros.tiempo_filter, now))

    return and_(true(), *clauses)


def is_visible(
    principal: Principal,
    tarea: Tarea,
    *,
    kaizen_prefix: str,
    quality_marker: str,
) -> bool:
    """Single-task check: base role rule plus the KAIZEN clause, no view narrowing."""
    if principal.rol == Rol.SUPER_ADMIN:
        return True

    if principal.rol in (Rol.ADMIN, Rol.ENCARGADO):
        base = principal.in_department(tarea.departamento_id)
    else:
        base = tarea.is_responsible(principal.id)
    if not base:
        return False

    if kaizen_prefix and tarea.tarea.upper().startswith(kaizen_prefix.upper()):
        return principal.is_quality_member(quality_marker) or tarea.is_responsible(principal.id)
    return True


def grouping_for(principal: Principal, filtros: TareaFiltros) -> str:
    """Summary breakdown key: per department only for an unscoped SUPER_ADMIN view."""
    if (
        principal.rol == Rol.SUPER_ADMIN
        and filtros.departamento_id is None
        and filtros.view_type in (None, ViewType.TODAS)
    ):
        return AGRUPAR_DEPARTAMENTO
    return AGRUPAR_USUARIO


def resolve_kpi_scope(
    principal: Principal,
    departamento_id: Optional[int],
    periodo: Optional[tuple[datetime, datetime]],
    *,
    kaizen_prefix: str,
    quality_marker: str,
) -> tuple[ColumnElement[bool], str, Optional[int]]:
    """
    Predicate, grouping and target department for the KPI view.

    An unfiltered SUPER_ADMIN sees every department side by side; ADMIN and
    ENCARGADO see the responsibles of their own department; everyone else
    sees only work they are responsible for. ``periodo`` bounds the
    deadline.
    """
    clauses: list[ColumnElement[bool]] = []
    agrupacion = AGRUPAR_USUARIO
    objetivo: Optional[int] = None

    if principal.rol == Rol.SUPER_ADMIN:
        if departamento_id is None:
            agrupacion = AGRUPAR_DEPARTAMENTO
        else:
            objetivo = departamento_id
    elif principal.rol in (Rol.ADMIN, Rol.ENCARGADO):
        if principal.departamento_id is None:
            raise PermissionDenied("No tienes un departamento asignado")
        objetivo = principal.departamento_id
    else:
        clauses.append(_has_responsible(principal.id))

    if objetivo is not None:
        clauses.append(TareaTable.departamento_id == objetivo)
    if periodo is not None:
        inicio, fin = periodo
        clauses.append(TareaTable.fecha_limite.between(inicio, fin))
    if kaizen_prefix and not can_see_kaizen_everywhere(principal, quality_marker):
        clauses.append(or_(not_(_is_kaizen(kaizen_prefix)), _has_responsible(principal.id)))

    return and_(true(), *clauses), agrupacion, objetivo
