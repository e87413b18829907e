"""Tareas core engine - task lifecycle operations."""

import logging
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from tareas.config import Settings, settings
from tareas.db.repositories import (
    DepartamentoRepository,
    HistorialRepository,
    ImagenRepository,
    TareaRepository,
    UsuarioRepository,
)
from tareas.engine import indicadores
from tareas.engine.audit import AuditLogger
from tareas.engine.errors import InvalidState, NotFound, PermissionDenied, ValidationError
from tareas.engine.permissions import Operacion, require, require_edit_hierarchy
from tareas.engine.responsibles import validate_responsibles
from tareas.engine.visibility import (
    TareaFiltros,
    grouping_for,
    is_visible,
    resolve_kpi_scope,
    resolve_visibility,
)
from tareas.integrations.storage import ObjectStorage
from tareas.models import (
    AccionBitacora,
    DecisionRevision,
    EstatusTarea,
    HistorialFecha,
    LimpiezaAlmacenamiento,
    NotificationIntent,
    Principal,
    Rol,
    SortField,
    SortOrder,
    Tarea,
    TareaCambios,
    Urgencia,
)
from tareas.notifications.dispatcher import NotificationDispatcher
from tareas.observability.metrics import metrics
from tareas.utils.time import month_bounds, normalize_deadline, to_seconds, to_utc, utc_now

logger = logging.getLogger(__name__)

DEFAULT_COMENTARIO_ENTREGA = "Tarea marcada como entregada."
DEFAULT_FEEDBACK_APROBACION = "Aprobada."
DEFAULT_MOTIVO_RECHAZO = "Correcciones"
DEFAULT_MOTIVO_EDICION = "Edición de tarea"


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class TareasEngine:
    """
    Core engine implementing task operations.

    Every mutation checks permissions and lifecycle guards before writing,
    writes in a single transaction, commits, then writes its audit entry
    and hands notification intents to the dispatcher.
    """

    def __init__(
        self,
        session: AsyncSession,
        notifier: Optional[NotificationDispatcher] = None,
        storage: Optional[ObjectStorage] = None,
        config: Settings = settings,
    ):
        self.session = session
        self.notifier = notifier
        self.storage = storage
        self.config = config
        self.tareas = TareaRepository(session)
        self.usuarios = UsuarioRepository(session)
        self.departamentos = DepartamentoRepository(session)
        self.historial = HistorialRepository(session)
        self.imagenes = ImagenRepository(session)
        self.audit = AuditLogger(session)

    # =========================================================================
    # Reads
    # =========================================================================

    async def listar(
        self,
        principal: Principal,
        filtros: TareaFiltros,
        page: int = 1,
        limit: Optional[int] = None,
        sort_by: Optional[SortField] = None,
        order: SortOrder = SortOrder.DESC,
    ) -> dict[str, Any]:
        """Visible tasks for one page, with pagination meta and a summary."""
        tz = self.config.tz
        now = utc_now()
        filtros = filtros.model_copy(
            update={
                "fecha_inicio": to_utc(filtros.fecha_inicio, tz) if filtros.fecha_inicio else None,
                "fecha_fin": normalize_deadline(filtros.fecha_fin, tz) if filtros.fecha_fin else None,
            }
        )
        page = max(1, page)
        limit = min(max(1, limit or self.config.default_list_limit), self.config.max_list_limit)

        predicate = resolve_visibility(
            principal,
            filtros,
            kaizen_prefix=self.config.kaizen_prefix,
            quality_marker=self.config.quality_department_marker,
            now=now,
        )

        # Same session transaction for count, page and summary
        total = await self.tareas.count(predicate)
        items = await self.tareas.list(
            predicate, sort_by=sort_by, order=order, offset=(page - 1) * limit, limit=limit
        )
        por_estatus = await self.tareas.count_by_estatus(predicate)
        rows = await self.tareas.metric_rows(predicate)

        return {
            "data": items,
            "pagination": {
                "totalItems": total,
                "itemsPorPagina": limit,
                "paginaActual": page,
                "totalPaginas": -(-total // limit),
            },
            "resumen": indicadores.resumen_listado(
                total, por_estatus, rows, grouping_for(principal, filtros), now
            ),
        }

    async def kpis(
        self,
        principal: Principal,
        mes: Optional[int] = None,
        anio: Optional[int] = None,
        departamento_id: Optional[int] = None,
    ) -> dict[str, Any]:
        """On-time KPIs for a month (or all time), grouped per department or user."""
        periodo = month_bounds(anio, mes, self.config.tz) if mes and anio else None
        predicate, agrupacion, objetivo = resolve_kpi_scope(
            principal,
            departamento_id,
            periodo,
            kaizen_prefix=self.config.kaizen_prefix,
            quality_marker=self.config.quality_department_marker,
        )
        rows = await self.tareas.metric_rows(predicate)
        return indicadores.kpis(rows, agrupacion, objetivo, utc_now())

    async def detalle(self, principal: Principal, tarea_id: int) -> tuple[Tarea, dict[str, Any]]:
        """Single task plus its time analysis. Missing is 404, hidden is 403."""
        tarea = await self._get_tarea(tarea_id)
        if not is_visible(
            principal,
            tarea,
            kaizen_prefix=self.config.kaizen_prefix,
            quality_marker=self.config.quality_department_marker,
        ):
            raise PermissionDenied("No tienes permiso para ver esta tarea")
        return tarea, indicadores.analizar(tarea, utc_now())

    # =========================================================================
    # Mutations
    # =========================================================================

    async def crear(
        self,
        principal: Principal,
        tarea: str,
        departamento_id: int,
        fecha_limite: date | datetime,
        responsables: list[int],
        observaciones: Optional[str] = None,
        urgencia: Urgencia = Urgencia.BAJA,
    ) -> Tarea:
        """Create a PENDIENTE task and notify its responsibles."""
        require(Operacion.CREAR, principal)
        if not tarea.strip():
            raise ValidationError("El título es obligatorio", {"tarea": ["Requerido"]})

        departamento = await self.departamentos.get(departamento_id)
        if departamento is None:
            raise NotFound("Departamento", departamento_id)

        aprobados = await validate_responsibles(
            self.usuarios, principal, departamento_id, responsables
        )
        now = utc_now()
        limite = normalize_deadline(fecha_limite, self.config.tz)

        tarea_id = await self.tareas.create(
            tarea=tarea.strip(),
            observaciones=observaciones,
            urgencia=urgencia,
            departamento_id=departamento_id,
            asignador_id=principal.id,
            fecha_limite=limite,
            responsable_ids=[u.id for u in aprobados],
            now=now,
        )
        await self.session.commit()
        creada = await self._get_tarea(tarea_id)
        metrics.inc_counter("tareas.created")

        nombres = ", ".join(u.nombre for u in aprobados)
        await self.audit.record(
            AccionBitacora.CREAR_TAREA,
            f'{principal.nombre} creó la tarea "{creada.tarea}" y la asignó a: {nombres}.',
            principal.id,
            {
                "tareaId": creada.id,
                "departamento": creada.departamento_nombre,
                "responsablesIds": creada.responsable_ids,
            },
        )
        await self._notify(
            creada.responsable_ids,
            f"Nueva Tarea: {creada.tarea}",
            f"Asignada por {principal.nombre}",
            "/admin",
        )
        return creada

    async def entregar(
        self,
        principal: Principal,
        tarea_id: int,
        comentario: Optional[str] = None,
        imagenes: Optional[list[str]] = None,
    ) -> Tarea:
        """Deliver evidence: PENDIENTE -> EN_REVISION, notifies the creator."""
        tarea = await self._get_tarea(tarea_id)
        require(Operacion.ENTREGAR, principal, tarea)
        self._require_transition(tarea, EstatusTarea.EN_REVISION, "entregar", EstatusTarea.PENDIENTE)

        now = utc_now()
        urls = [u for u in (imagenes or []) if u]
        await self._apply_transition(
            tarea,
            "entregar",
            estatus=EstatusTarea.EN_REVISION,
            fecha_entrega=to_seconds(now),
            comentario_entrega=comentario or DEFAULT_COMENTARIO_ENTREGA,
        )
        await self.imagenes.add_many(tarea_id, urls, now)
        await self.session.commit()
        entregada = await self._get_tarea(tarea_id)

        await self.audit.record(
            AccionBitacora.ENTREGAR_TAREA,
            f'{principal.nombre} entregó la tarea "{tarea.tarea}" (ID: {tarea_id}).',
            principal.id,
            {
                "tareaId": tarea_id,
                "departamento": tarea.departamento_nombre,
                "imagenes": len(urls),
            },
        )
        await self._notify(
            [tarea.asignador.id],
            "Tarea Entregada 📩",
            f'{principal.nombre} entregó evidencias: "{tarea.tarea}".',
            "/admin",
        )
        return entregada

    async def revisar(
        self,
        principal: Principal,
        tarea_id: int,
        decision: DecisionRevision,
        feedback: Optional[str] = None,
        nueva_fecha_limite: Optional[date | datetime] = None,
    ) -> Tarea:
        """Approve (-> CONCLUIDA) or reject (-> PENDIENTE) a delivery."""
        tarea = await self._get_tarea(tarea_id)
        require(Operacion.REVISAR, principal, tarea)
        if tarea.estatus != EstatusTarea.EN_REVISION:
            raise InvalidState(tarea.estatus.value, "revisar")

        now = utc_now()
        detalles: dict[str, Any] = {
            "tareaId": tarea_id,
            "departamento": tarea.departamento_nombre,
            "decision": decision.value,
        }

        if decision == DecisionRevision.APROBAR:
            await self._apply_transition(
                tarea,
                "revisar",
                estatus=EstatusTarea.CONCLUIDA,
                fecha_conclusion=to_seconds(now),
                fecha_revision=now,
                feedback_revision=feedback or DEFAULT_FEEDBACK_APROBACION,
            )
            titulo = "✅ Tarea Aprobada"
            cuerpo = f'Tu entrega de "{tarea.tarea}" fue validada.'
            descripcion = f'{principal.nombre} aprobó la tarea "{tarea.tarea}" (ID: {tarea_id}).'
        else:
            cambios: dict[str, Any] = {
                "estatus": EstatusTarea.PENDIENTE,
                "fecha_entrega": None,
                "fecha_conclusion": None,
                "fecha_revision": now,
                "feedback_revision": feedback,
            }
            nueva: Optional[datetime] = None
            if nueva_fecha_limite is not None:
                nueva = normalize_deadline(nueva_fecha_limite, self.config.tz)
                cambios["fecha_limite"] = nueva
                detalles["fechaAnterior"] = tarea.fecha_limite.isoformat()
                detalles["nuevaFecha"] = nueva.isoformat()
            await self._apply_transition(tarea, "revisar", **cambios)
            if nueva is not None:
                await self.historial.append(
                    tarea_id,
                    tarea.fecha_limite,
                    nueva,
                    f"Rechazo: {feedback or DEFAULT_MOTIVO_RECHAZO}",
                    principal.id,
                    now,
                )
            titulo = "⚠️ Tarea Rechazada"
            cuerpo = f"Se requiere corrección: {feedback or DEFAULT_MOTIVO_RECHAZO}"
            descripcion = f'{principal.nombre} rechazó la entrega de "{tarea.tarea}" (ID: {tarea_id}).'

        await self.session.commit()
        revisada = await self._get_tarea(tarea_id)

        if feedback:
            detalles["feedback"] = feedback
        await self.audit.record(AccionBitacora.REVISION_TAREA, descripcion, principal.id, detalles)
        await self._notify(tarea.responsable_ids, titulo, cuerpo, "/mis-tareas")
        return revisada

    async def completar(self, principal: Principal, tarea_id: int) -> Tarea:
        """Administrative override: any non-terminal state -> CONCLUIDA."""
        tarea = await self._get_tarea(tarea_id)
        require(Operacion.COMPLETAR, principal, tarea)
        self._require_transition(tarea, EstatusTarea.CONCLUIDA, "concluir")

        await self._apply_transition(
            tarea,
            "concluir",
            estatus=EstatusTarea.CONCLUIDA,
            fecha_conclusion=to_seconds(utc_now()),
        )
        await self.session.commit()
        concluida = await self._get_tarea(tarea_id)

        await self.audit.record(
            AccionBitacora.ACTUALIZAR_TAREA,
            f'{principal.nombre} VALIDÓ y CERRÓ la tarea "{tarea.tarea}" (ID: {tarea_id}).',
            principal.id,
            {
                "tareaId": tarea_id,
                "departamento": tarea.departamento_nombre,
                "accion": "VALIDACION_MANUAL",
                "estatusAnterior": tarea.estatus.value,
                "estatusNuevo": EstatusTarea.CONCLUIDA.value,
            },
        )
        await self._notify(
            tarea.responsable_ids,
            "Tarea Validada",
            f'"{tarea.tarea}" ha sido CONCLUIDA.',
            "/admin",
        )
        return concluida

    async def cancelar(self, principal: Principal, tarea_id: int) -> Tarea:
        """Any non-terminal state -> CANCELADA."""
        tarea = await self._get_tarea(tarea_id)
        require(Operacion.CANCELAR, principal, tarea)
        self._require_transition(tarea, EstatusTarea.CANCELADA, "cancelar")

        await self._apply_transition(
            tarea, "cancelar", estatus=EstatusTarea.CANCELADA, fecha_conclusion=None
        )
        await self.session.commit()
        cancelada = await self._get_tarea(tarea_id)

        await self.audit.record(
            AccionBitacora.CAMBIO_ESTATUS,
            f'{principal.nombre} canceló la tarea "{tarea.tarea}" (ID: {tarea_id}).',
            principal.id,
            {
                "tareaId": tarea_id,
                "departamento": tarea.departamento_nombre,
                "estatusAnterior": tarea.estatus.value,
                "estatusNuevo": EstatusTarea.CANCELADA.value,
            },
        )
        await self._notify(
            tarea.responsable_ids,
            "Tarea Cancelada",
            f'"{tarea.tarea}" ha sido CANCELADA.',
            "/admin",
        )
        return cancelada

    async def editar(self, principal: Principal, tarea_id: int, cambios: TareaCambios) -> Tarea:
        """
        Partial update.

        Responsibles are validated and replaced wholesale; a deadline change
        is also written to the history; a status change follows the
        lifecycle table and keeps ``fecha_conclusion`` consistent with it.
        """
        tarea = await self._get_tarea(tarea_id)
        require(Operacion.EDITAR, principal, tarea)
        require_edit_hierarchy(principal, tarea)
        if tarea.is_terminal():
            raise InvalidState(tarea.estatus.value, "editar")

        campos = cambios.provided()
        valores: dict[str, Any] = {}
        diff: dict[str, dict[str, Any]] = {}

        def _set(campo: str, antes: Any, despues: Any) -> None:
            if antes != despues:
                valores[campo] = despues
                diff[campo] = {"antes": _jsonable(antes), "despues": _jsonable(despues)}

        if "tarea" in campos and cambios.tarea is not None:
            if not cambios.tarea.strip():
                raise ValidationError("El título es obligatorio", {"tarea": ["Requerido"]})
            _set("tarea", tarea.tarea, cambios.tarea.strip())
        if "observaciones" in campos:
            _set("observaciones", tarea.observaciones, cambios.observaciones)
        if "urgencia" in campos and cambios.urgencia is not None:
            _set("urgencia", tarea.urgencia, cambios.urgencia)

        departamento_id = tarea.departamento_id
        departamento_nombre = tarea.departamento_nombre
        if "departamento_id" in campos and cambios.departamento_id is not None:
            if cambios.departamento_id != tarea.departamento_id:
                if principal.rol != Rol.SUPER_ADMIN:
                    raise PermissionDenied("Solo SUPER_ADMIN puede cambiar el departamento")
                destino = await self.departamentos.get(cambios.departamento_id)
                if destino is None:
                    raise NotFound("Departamento", cambios.departamento_id)
                departamento_id = destino.id
                departamento_nombre = destino.nombre
                _set("departamento_id", tarea.departamento_id, destino.id)

        nuevos_responsables: list[int] = []
        responsables_finales: Optional[list[int]] = None
        if "responsables" in campos and cambios.responsables is not None:
            aprobados = await validate_responsibles(
                self.usuarios, principal, departamento_id, cambios.responsables
            )
            responsables_finales = [u.id for u in aprobados]

        nuevo_estatus: Optional[EstatusTarea] = None
        if "estatus" in campos and cambios.estatus is not None and cambios.estatus != tarea.estatus:
            self._require_transition(tarea, cambios.estatus, "cambiar el estatus de")
            nuevo_estatus = cambios.estatus
            _set("estatus", tarea.estatus, nuevo_estatus)
            if nuevo_estatus == EstatusTarea.CONCLUIDA:
                valores["fecha_conclusion"] = to_seconds(utc_now())
            else:
                valores["fecha_conclusion"] = None

        now = utc_now()
        nueva_fecha: Optional[datetime] = None
        if "fecha_limite" in campos and cambios.fecha_limite is not None:
            candidata = normalize_deadline(cambios.fecha_limite, self.config.tz)
            if candidata != tarea.fecha_limite:
                nueva_fecha = candidata
                _set("fecha_limite", tarea.fecha_limite, nueva_fecha)

        # Writes
        await self._apply_transition(tarea, "editar", **valores)
        if nueva_fecha is not None:
            await self.historial.append(
                tarea_id,
                tarea.fecha_limite,
                nueva_fecha,
                cambios.motivo_cambio_fecha or DEFAULT_MOTIVO_EDICION,
                principal.id,
                now,
            )
        if responsables_finales is not None:
            nuevos_responsables = await self.tareas.replace_responsables(
                tarea_id, responsables_finales
            )
            if set(responsables_finales) != set(tarea.responsable_ids):
                diff["responsables"] = {
                    "antes": tarea.responsable_ids,
                    "despues": sorted(responsables_finales),
                }
        await self.session.commit()
        editada = await self._get_tarea(tarea_id)

        if diff:
            await self.audit.record(
                AccionBitacora.ACTUALIZAR_TAREA,
                f'{principal.nombre} editó la tarea "{editada.tarea}" (ID: {tarea_id}).',
                principal.id,
                {"tareaId": tarea_id, "departamento": departamento_nombre, "cambios": diff},
            )

        if nuevo_estatus is not None:
            titulo = (
                "Tarea Concluida" if nuevo_estatus == EstatusTarea.CONCLUIDA else "Tarea Actualizada"
            )
            await self._notify(
                editada.responsable_ids,
                titulo,
                f'La tarea "{editada.tarea}" ahora está {nuevo_estatus.value}',
                "/mis-tareas",
            )
        if nuevos_responsables:
            await self._notify(
                nuevos_responsables,
                f"Tarea Asignada: {editada.tarea}",
                f"Reasignada por {principal.nombre}",
                "/mis-tareas",
            )
        return editada

    async def agregar_historial(
        self,
        principal: Principal,
        tarea_id: int,
        nueva_fecha: date | datetime,
        motivo: Optional[str] = None,
    ) -> HistorialFecha:
        """Record a deadline change and move the deadline."""
        tarea = await self._get_tarea(tarea_id)
        require(Operacion.HISTORIAL, principal, tarea)

        now = utc_now()
        nueva = normalize_deadline(nueva_fecha, self.config.tz)
        entrada_id = await self.historial.append(
            tarea_id, tarea.fecha_limite, nueva, motivo, principal.id, now
        )
        await self.tareas.update_fields(tarea_id, fecha_limite=nueva)
        await self.session.commit()

        entradas = await self.historial.list_for_tarea(tarea_id)
        entrada = next(e for e in entradas if e.id == entrada_id)

        await self.audit.record(
            AccionBitacora.CAMBIO_FECHA,
            f'{principal.nombre} cambió la fecha límite de "{tarea.tarea}" (ID: {tarea_id}).',
            principal.id,
            {
                "tareaId": tarea_id,
                "departamento": tarea.departamento_nombre,
                "fechaAnterior": tarea.fecha_limite.isoformat(),
                "nuevaFecha": nueva.isoformat(),
                "motivo": motivo,
            },
        )
        local = nueva.astimezone(self.config.tz)
        await self._notify(
            tarea.responsable_ids,
            "📅 Cambio de Fecha",
            f'La tarea "{tarea.tarea}" ahora vence el {local:%d/%m/%Y}.',
            "/mis-tareas",
        )
        return entrada

    async def subir_imagenes(self, principal: Principal, tarea_id: int, urls: list[str]) -> Tarea:
        """Attach image references uploaded elsewhere."""
        tarea = await self._get_tarea(tarea_id)
        require(Operacion.SUBIR_IMAGEN, principal, tarea)
        urls = [u for u in urls if u]
        if not urls:
            raise ValidationError("No hay archivos", {"urls": ["Se requiere al menos una imagen"]})

        await self.imagenes.add_many(tarea_id, urls, utc_now())
        await self.session.commit()
        actualizada = await self._get_tarea(tarea_id)

        await self.audit.record(
            AccionBitacora.SUBIR_IMAGEN,
            f'{principal.nombre} subió {len(urls)} imagen(es) a "{tarea.tarea}" (ID: {tarea_id}).',
            principal.id,
            {"tareaId": tarea_id, "departamento": tarea.departamento_nombre, "urls": urls},
        )
        return actualizada

    async def eliminar_imagen(self, principal: Principal, imagen_id: int) -> LimpiezaAlmacenamiento:
        """
        Delete one image.

        The stored object is removed best-effort; the local row is always
        deleted and the cleanup outcome goes into the audit entry.
        """
        imagen = await self.imagenes.get(imagen_id)
        if imagen is None:
            raise NotFound("Imagen", imagen_id)
        tarea = await self._get_tarea(imagen.tarea_id)
        require(Operacion.ELIMINAR_IMAGEN, principal, tarea)

        if self.storage is not None:
            limpieza = await self.storage.remove_image(imagen.url)
        else:
            logger.warning("No object storage configured, skipping remote image cleanup")
            limpieza = LimpiezaAlmacenamiento.FALLIDA

        await self.imagenes.delete(imagen_id)
        await self.session.commit()

        await self.audit.record(
            AccionBitacora.ELIMINAR_IMAGEN,
            f'{principal.nombre} eliminó una imagen de "{tarea.tarea}" (ID: {tarea.id}).',
            principal.id,
            {
                "tareaId": tarea.id,
                "imagenId": imagen_id,
                "departamento": tarea.departamento_nombre,
                "url": imagen.url,
                "almacenamiento": limpieza.value,
            },
        )
        return limpieza

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _get_tarea(self, tarea_id: int) -> Tarea:
        tarea = await self.tareas.get(tarea_id)
        if tarea is None:
            raise NotFound("Tarea", tarea_id)
        return tarea

    def _require_transition(
        self,
        tarea: Tarea,
        destino: EstatusTarea,
        operacion: str,
        origen: Optional[EstatusTarea] = None,
    ) -> None:
        if origen is not None and tarea.estatus != origen:
            raise InvalidState(tarea.estatus.value, operacion)
        if not tarea.estatus.can_transition_to(destino):
            raise InvalidState(tarea.estatus.value, operacion)

    async def _apply_transition(self, tarea: Tarea, operacion: str, **values: Any) -> None:
        """Write ``values`` only if the task still holds the status the guards saw."""
        if await self.tareas.transition(tarea.id, tarea.estatus, **values):
            return
        await self.session.rollback()
        actual = await self._get_tarea(tarea.id)
        logger.warning(
            f"Task {tarea.id} moved to {actual.estatus.value} before '{operacion}' was applied"
        )
        raise InvalidState(actual.estatus.value, operacion)

    async def _notify(self, audience: list[int], title: str, body: str, url: str) -> None:
        """Hand an intent to the dispatcher. Inactive users are dropped."""
        if self.notifier is None:
            return
        try:
            activos = await self.usuarios.active_ids(list(dict.fromkeys(audience)))
        except Exception as exc:
            logger.error(f"Could not resolve notification audience: {exc}", exc_info=True)
            return
        if not activos:
            return
        self.notifier.dispatch(
            NotificationIntent(audience=activos, title=title, body=body, url=url)
        )
