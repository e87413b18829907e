"""List summaries, KPIs and single-task time analysis."""

import math
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from tareas.db.repositories import MetricRow
from tareas.engine.visibility import AGRUPAR_DEPARTAMENTO
from tareas.models import EstatusTarea, Tarea
from tareas.utils.time import to_seconds

PENDIENTES_ATRASADAS = "pendientesAtrasadas"
PENDIENTES_A_TIEMPO = "pendientesATiempo"
ENTREGADAS_ATRASADAS = "entregadasAtrasadas"
ENTREGADAS_A_TIEMPO = "entregadasATiempo"

TIEMPO_KEYS = (
    PENDIENTES_ATRASADAS,
    PENDIENTES_A_TIEMPO,
    ENTREGADAS_ATRASADAS,
    ENTREGADAS_A_TIEMPO,
)

PROXIMO_A_VENCER_DIAS = 2


def clasificar_tiempo(
    estatus: EstatusTarea,
    fecha_limite: datetime,
    fecha_cumplimiento: Optional[datetime],
    now: datetime,
) -> Optional[str]:
    """
    On-time bucket for one task, or None for cancelled work.

    Pending work is measured against now; delivered or concluded work against
    its fulfilment date (delivery, else completion). A delivered task with no
    fulfilment date counts as on time.
    """
    limite = to_seconds(fecha_limite)
    if estatus == EstatusTarea.PENDIENTE:
        return PENDIENTES_ATRASADAS if to_seconds(now) > limite else PENDIENTES_A_TIEMPO
    if estatus in (EstatusTarea.EN_REVISION, EstatusTarea.CONCLUIDA):
        if fecha_cumplimiento is not None and to_seconds(fecha_cumplimiento) > limite:
            return ENTREGADAS_ATRASADAS
        return ENTREGADAS_A_TIEMPO
    return None


def _cumplimiento(row: MetricRow) -> Optional[datetime]:
    return row.fecha_entrega or row.fecha_conclusion


def _empty_breakdown(key: int, nombre: str) -> dict[str, Any]:
    entry: dict[str, Any] = {"id": key, "nombre": nombre}
    entry.update({k: 0 for k in TIEMPO_KEYS})
    entry.update(
        {"activas": 0, "pendientes": 0, "enRevision": 0, "concluidas": 0, "canceladas": 0, "total": 0}
    )
    return entry


_ESTATUS_KEYS = {
    EstatusTarea.PENDIENTE: "pendientes",
    EstatusTarea.EN_REVISION: "enRevision",
    EstatusTarea.CONCLUIDA: "concluidas",
    EstatusTarea.CANCELADA: "canceladas",
}


def _groups(row: MetricRow, agrupacion: str) -> Iterable[tuple[int, str]]:
    if agrupacion == AGRUPAR_DEPARTAMENTO:
        return [(row.departamento_id, row.departamento_nombre)]
    # A task with two responsibles counts for both
    return row.responsables


def resumen_listado(
    total: int,
    por_estatus: dict[EstatusTarea, int],
    rows: list[MetricRow],
    agrupacion: str,
    now: datetime,
) -> dict[str, Any]:
    """Status totals, on-time counters and a breakdown over the same predicate as the page."""
    totales = {"todas": total}
    for estatus, key in _ESTATUS_KEYS.items():
        totales[key] = por_estatus.get(estatus, 0)
    totales["activas"] = totales["pendientes"] + totales["enRevision"]

    tiempos = {k: 0 for k in TIEMPO_KEYS}
    breakdown: dict[int, dict[str, Any]] = {}

    for row in rows:
        bucket = clasificar_tiempo(row.estatus, row.fecha_limite, _cumplimiento(row), now)
        if bucket:
            tiempos[bucket] += 1

        for key, nombre in _groups(row, agrupacion):
            entry = breakdown.setdefault(key, _empty_breakdown(key, nombre))
            entry["total"] += 1
            entry[_ESTATUS_KEYS[row.estatus]] += 1
            if row.estatus in EstatusTarea.active_states():
                entry["activas"] += 1
            if bucket:
                entry[bucket] += 1

    return {
        "totales": totales,
        "tiempos": tiempos,
        "tipoDesglose": agrupacion,
        "desglose": sorted(breakdown.values(), key=lambda e: -e[PENDIENTES_ATRASADAS]),
    }


def kpis(
    rows: list[MetricRow],
    agrupacion: str,
    departamento_id: Optional[int],
    now: datetime,
) -> dict[str, Any]:
    """On-time counters per department or per responsible. Cancelled tasks are ignored."""
    general = {k: 0 for k in TIEMPO_KEYS}
    general["total"] = 0
    breakdown: dict[int, dict[str, Any]] = {}

    for row in rows:
        bucket = clasificar_tiempo(row.estatus, row.fecha_limite, _cumplimiento(row), now)
        if bucket is None:
            continue
        general[bucket] += 1
        general["total"] += 1
        for key, nombre in _groups(row, agrupacion):
            entry = breakdown.get(key)
            if entry is None:
                entry = {"id": key, "nombre": nombre, "total": 0}
                entry.update({k: 0 for k in TIEMPO_KEYS})
                breakdown[key] = entry
            entry[bucket] += 1
            entry["total"] += 1

    return {
        "vista": agrupacion,
        "departamentoId": departamento_id,
        "general": general,
        "desglose": sorted(breakdown.values(), key=lambda e: -e[PENDIENTES_ATRASADAS]),
    }


def _dias(desde: datetime, hasta: datetime) -> int:
    """Whole days from ``desde`` to ``hasta``, floored like a calendar countdown."""
    return math.floor((hasta - desde) / timedelta(days=1))


def analizar(tarea: Tarea, now: datetime) -> dict[str, Any]:
    """Time analysis block for the detail view."""
    limite = to_seconds(tarea.fecha_limite)
    ahora = to_seconds(now)
    entrega = to_seconds(tarea.fecha_entrega) if tarea.fecha_entrega else None
    cumplimiento = tarea.fecha_cumplimiento()
    cumplimiento = to_seconds(cumplimiento) if cumplimiento else None
    dias = 0

    if tarea.estatus == EstatusTarea.PENDIENTE:
        dias = _dias(ahora, limite)
        if ahora > limite:
            estado = "RETRASO"
        elif dias <= PROXIMO_A_VENCER_DIAS:
            estado = "PRÓXIMO A VENCER"
        else:
            estado = "A TIEMPO"
    elif tarea.estatus == EstatusTarea.EN_REVISION:
        dias = _dias(entrega or ahora, limite)
        if entrega and entrega > limite:
            estado = "ENTREGADA CON RETRASO (EN REVISIÓN)"
        else:
            estado = "ENTREGADA A TIEMPO (EN REVISIÓN)"
    elif tarea.estatus == EstatusTarea.CONCLUIDA:
        if cumplimiento:
            dias = _dias(cumplimiento, limite)
            estado = "FINALIZADA CON RETRASO" if cumplimiento > limite else "FINALIZADA A TIEMPO"
        else:
            estado = "CONCLUIDA"
    else:
        estado = "CANCELADA"

    atrasada = (cumplimiento or ahora) > limite
    return {
        "estadoTiempo": estado,
        "diasDiferencia": dias,
        "esAtrasada": atrasada,
        "esEditable": not tarea.is_terminal(),
        "leyendaRetraso": f"Desfase de {abs(dias)} día(s)" if atrasada else "Tarea al día",
    }
