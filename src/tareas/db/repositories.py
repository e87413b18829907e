"""Database repositories for Tareas entities."""

from __future__ import annotations

from datetime import datetime
from typing import Any, NamedTuple

from sqlalchemy import ColumnElement, case, delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tareas.db.tables import (
    BitacoraTable,
    DepartamentoTable,
    HistorialFechaTable,
    ImagenTareaTable,
    PushSubscriptionTable,
    ResponsableTable,
    TareaTable,
    UsuarioTable,
)
from tareas.engine.errors import Conflict
from tareas.models import (
    Departamento,
    EntradaBitacora,
    EstatusTarea,
    EstatusUsuario,
    HistorialFecha,
    ImagenTarea,
    Rol,
    SortField,
    SortOrder,
    SuscripcionPush,
    Tarea,
    TipoDepartamento,
    Urgencia,
    Usuario,
    UsuarioRef,
)
from tareas.utils.time import ensure_utc

_TAREA_LOAD_OPTIONS = (
    selectinload(TareaTable.departamento),
    selectinload(TareaTable.asignador),
    selectinload(TareaTable.responsables).selectinload(ResponsableTable.usuario),
    selectinload(TareaTable.historial).selectinload(HistorialFechaTable.modificado_por),
    selectinload(TareaTable.imagenes),
)

_URGENCIA_RANK = case(
    {Urgencia.BAJA: 1, Urgencia.MEDIA: 2, Urgencia.ALTA: 3},
    value=TareaTable.urgencia,
)


class MetricRow(NamedTuple):
    """Lightweight task projection used by summaries and KPIs."""

    id: int
    estatus: EstatusTarea
    fecha_limite: datetime
    fecha_entrega: datetime | None
    fecha_conclusion: datetime | None
    departamento_id: int
    departamento_nombre: str
    responsables: list[tuple[int, str]]


class DepartamentoRepository:
    """Repository for the department catalogue."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, departamento_id: int) -> Departamento | None:
        row = await self.session.get(DepartamentoTable, departamento_id)
        return self._row_to_model(row) if row else None

    async def list_all(self) -> list[Departamento]:
        result = await self.session.execute(
            select(DepartamentoTable).order_by(DepartamentoTable.nombre.asc())
        )
        return [self._row_to_model(r) for r in result.scalars().all()]

    async def create(
        self,
        nombre: str,
        tipo: TipoDepartamento = TipoDepartamento.OPERATIVO,
        es_calidad: bool = False,
    ) -> Departamento:
        """Create a department; a duplicate name raises Conflict."""
        row = DepartamentoTable(nombre=nombre, tipo=tipo, es_calidad=es_calidad)
        self.session.add(row)
        try:
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            raise Conflict(f"Ya existe un departamento con el nombre '{nombre}'")
        return self._row_to_model(row)

    async def update(self, departamento_id: int, **values: Any) -> Departamento | None:
        if values:
            try:
                await self.session.execute(
                    update(DepartamentoTable)
                    .where(DepartamentoTable.id == departamento_id)
                    .values(**values)
                )
                await self.session.flush()
            except IntegrityError:
                await self.session.rollback()
                raise Conflict(f"Ya existe un departamento con el nombre '{values.get('nombre')}'")
        return await self.get(departamento_id)

    def _row_to_model(self, row: DepartamentoTable) -> Departamento:
        return Departamento(
            id=row.id,
            nombre=row.nombre,
            tipo=row.tipo,
            es_calidad=row.es_calidad,
        )


class UsuarioRepository:
    """Repository for user lookups and provisioning."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, usuario_id: int) -> Usuario | None:
        row = await self.session.get(UsuarioTable, usuario_id)
        return self._row_to_model(row) if row else None

    async def get_with_departamento(
        self, usuario_id: int
    ) -> tuple[Usuario, Departamento | None] | None:
        """Fetch a user together with their department, if any."""
        result = await self.session.execute(
            select(UsuarioTable, DepartamentoTable)
            .outerjoin(DepartamentoTable, UsuarioTable.departamento_id == DepartamentoTable.id)
            .where(UsuarioTable.id == usuario_id)
        )
        row = result.one_or_none()
        if row is None:
            return None
        usuario_row, depto_row = row
        departamento = (
            DepartamentoRepository(self.session)._row_to_model(depto_row) if depto_row else None
        )
        return self._row_to_model(usuario_row), departamento

    async def get_by_username(self, username: str) -> Usuario | None:
        result = await self.session.execute(
            select(UsuarioTable).where(UsuarioTable.username == username)
        )
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    async def get_many(self, usuario_ids: list[int]) -> list[Usuario]:
        if not usuario_ids:
            return []
        result = await self.session.execute(
            select(UsuarioTable).where(UsuarioTable.id.in_(usuario_ids))
        )
        return [self._row_to_model(r) for r in result.scalars().all()]

    async def active_ids(self, usuario_ids: list[int]) -> list[int]:
        """Filter ids down to ACTIVO users, keeping input order."""
        if not usuario_ids:
            return []
        result = await self.session.execute(
            select(UsuarioTable.id).where(
                UsuarioTable.id.in_(usuario_ids),
                UsuarioTable.estatus == EstatusUsuario.ACTIVO,
            )
        )
        active = set(result.scalars().all())
        return [uid for uid in usuario_ids if uid in active]

    async def list(
        self,
        departamento_id: int | None = None,
        estatus: EstatusUsuario | None = None,
    ) -> list[Usuario]:
        query = select(UsuarioTable)
        if departamento_id is not None:
            query = query.where(UsuarioTable.departamento_id == departamento_id)
        if estatus:
            query = query.where(UsuarioTable.estatus == estatus)
        result = await self.session.execute(query.order_by(UsuarioTable.nombre.asc()))
        return [self._row_to_model(r) for r in result.scalars().all()]

    async def create(
        self,
        nombre: str,
        username: str,
        password_hash: str,
        rol: Rol,
        departamento_id: int | None,
        now: datetime,
    ) -> Usuario:
        """Create a user; a duplicate username raises Conflict."""
        row = UsuarioTable(
            nombre=nombre,
            username=username,
            password_hash=password_hash,
            rol=rol,
            departamento_id=departamento_id,
            estatus=EstatusUsuario.ACTIVO,
            fecha_creacion=now,
        )
        self.session.add(row)
        try:
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            raise Conflict(f"El usuario '{username}' ya existe")
        return self._row_to_model(row)

    async def set_estatus(self, usuario_id: int, estatus: EstatusUsuario) -> Usuario | None:
        await self.session.execute(
            update(UsuarioTable).where(UsuarioTable.id == usuario_id).values(estatus=estatus)
        )
        return await self.get(usuario_id)

    def _row_to_model(self, row: UsuarioTable) -> Usuario:
        return Usuario(
            id=row.id,
            nombre=row.nombre,
            username=row.username,
            rol=row.rol,
            departamento_id=row.departamento_id,
            estatus=row.estatus,
        )


class TareaRepository:
    """Repository for task operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        tarea: str,
        observaciones: str | None,
        urgencia: Urgencia,
        departamento_id: int,
        asignador_id: int,
        fecha_limite: datetime,
        responsable_ids: list[int],
        now: datetime,
    ) -> int:
        """Insert a task and its responsible rows in the current transaction."""
        row = TareaTable(
            tarea=tarea,
            observaciones=observaciones,
            estatus=EstatusTarea.PENDIENTE,
            urgencia=urgencia,
            departamento_id=departamento_id,
            asignador_id=asignador_id,
            fecha_registro=now,
            fecha_limite=fecha_limite,
        )
        self.session.add(row)
        await self.session.flush()
        await self._insert_responsables(row.id, responsable_ids)
        return row.id

    async def get(self, tarea_id: int) -> Tarea | None:
        """Get a task by ID with all owned records loaded."""
        result = await self.session.execute(
            select(TareaTable)
            .where(TareaTable.id == tarea_id)
            .options(*_TAREA_LOAD_OPTIONS)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    async def list(
        self,
        predicate: ColumnElement[bool],
        sort_by: SortField | None = None,
        order: SortOrder = SortOrder.DESC,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[Tarea]:
        """List tasks matching a visibility predicate."""
        query = (
            select(TareaTable)
            .where(predicate)
            .options(*_TAREA_LOAD_OPTIONS)
            .execution_options(populate_existing=True)
        )

        if sort_by is None:
            query = query.order_by(TareaTable.id.desc())
        else:
            column = {
                SortField.FECHA_REGISTRO: TareaTable.fecha_registro,
                SortField.FECHA_LIMITE: TareaTable.fecha_limite,
                SortField.URGENCIA: _URGENCIA_RANK,
            }[sort_by]
            direction = column.asc() if order == SortOrder.ASC else column.desc()
            query = query.order_by(direction, TareaTable.id.desc())

        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)

        result = await self.session.execute(query)
        return [self._row_to_model(r) for r in result.scalars().all()]

    async def count(self, predicate: ColumnElement[bool]) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(TareaTable).where(predicate)
        )
        return result.scalar_one()

    async def count_by_estatus(self, predicate: ColumnElement[bool]) -> dict[EstatusTarea, int]:
        result = await self.session.execute(
            select(TareaTable.estatus, func.count())
            .where(predicate)
            .group_by(TareaTable.estatus)
        )
        return {estatus: total for estatus, total in result.all()}

    async def metric_rows(self, predicate: ColumnElement[bool]) -> list[MetricRow]:
        """Fetch the columns summaries need, plus responsible names per task."""
        result = await self.session.execute(
            select(
                TareaTable.id,
                TareaTable.estatus,
                TareaTable.fecha_limite,
                TareaTable.fecha_entrega,
                TareaTable.fecha_conclusion,
                TareaTable.departamento_id,
                DepartamentoTable.nombre,
            )
            .join(DepartamentoTable, TareaTable.departamento_id == DepartamentoTable.id)
            .where(predicate)
            .order_by(TareaTable.id.asc())
        )
        rows = result.all()
        if not rows:
            return []

        responsables: dict[int, list[tuple[int, str]]] = {}
        resp_result = await self.session.execute(
            select(ResponsableTable.tarea_id, UsuarioTable.id, UsuarioTable.nombre)
            .join(UsuarioTable, ResponsableTable.usuario_id == UsuarioTable.id)
            .where(ResponsableTable.tarea_id.in_(select(TareaTable.id).where(predicate)))
            .order_by(UsuarioTable.id.asc())
        )
        for tarea_id, usuario_id, nombre in resp_result.all():
            responsables.setdefault(tarea_id, []).append((usuario_id, nombre))

        return [
            MetricRow(
                id=r[0],
                estatus=r[1],
                fecha_limite=ensure_utc(r[2]),
                fecha_entrega=ensure_utc(r[3]),
                fecha_conclusion=ensure_utc(r[4]),
                departamento_id=r[5],
                departamento_nombre=r[6],
                responsables=responsables.get(r[0], []),
            )
            for r in rows
        ]

    async def update_fields(self, tarea_id: int, **values: Any) -> None:
        """Apply column updates in the current transaction."""
        if not values:
            return
        await self.session.execute(
            update(TareaTable).where(TareaTable.id == tarea_id).values(**values)
        )

    async def transition(self, tarea_id: int, desde: EstatusTarea, **values: Any) -> bool:
        """
        Apply column updates only while the task is still in ``desde``.

        Returns False when another writer moved the task first; nothing is
        written in that case.
        """
        if not values:
            values = {"estatus": desde}
        result = await self.session.execute(
            update(TareaTable)
            .where(TareaTable.id == tarea_id, TareaTable.estatus == desde)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def replace_responsables(self, tarea_id: int, responsable_ids: list[int]) -> list[int]:
        """
        Replace the responsible set wholesale.

        Returns the ids that were not previously assigned.
        """
        result = await self.session.execute(
            select(ResponsableTable.usuario_id).where(ResponsableTable.tarea_id == tarea_id)
        )
        current = set(result.scalars().all())
        wanted = list(dict.fromkeys(responsable_ids))

        removed = current - set(wanted)
        if removed:
            await self.session.execute(
                delete(ResponsableTable)
                .where(
                    ResponsableTable.tarea_id == tarea_id,
                    ResponsableTable.usuario_id.in_(removed),
                )
                .execution_options(synchronize_session=False)
            )

        added = [uid for uid in wanted if uid not in current]
        await self._insert_responsables(tarea_id, added)
        return added

    async def _insert_responsables(self, tarea_id: int, usuario_ids: list[int]) -> None:
        if not usuario_ids:
            return
        await self.session.execute(
            insert(ResponsableTable),
            [{"tarea_id": tarea_id, "usuario_id": uid} for uid in dict.fromkeys(usuario_ids)],
        )

    def _row_to_model(self, row: TareaTable) -> Tarea:
        """Convert database row to model."""
        return Tarea(
            id=row.id,
            tarea=row.tarea,
            observaciones=row.observaciones,
            estatus=row.estatus,
            urgencia=row.urgencia,
            departamento_id=row.departamento_id,
            departamento_nombre=row.departamento.nombre,
            asignador=UsuarioRef(
                id=row.asignador.id, nombre=row.asignador.nombre, rol=row.asignador.rol
            ),
            responsables=sorted(
                (
                    UsuarioRef(id=r.usuario.id, nombre=r.usuario.nombre, rol=r.usuario.rol)
                    for r in row.responsables
                ),
                key=lambda u: u.id,
            ),
            fecha_registro=ensure_utc(row.fecha_registro),
            fecha_limite=ensure_utc(row.fecha_limite),
            fecha_conclusion=ensure_utc(row.fecha_conclusion),
            fecha_entrega=ensure_utc(row.fecha_entrega),
            fecha_revision=ensure_utc(row.fecha_revision),
            comentario_entrega=row.comentario_entrega,
            feedback_revision=row.feedback_revision,
            historial=[HistorialRepository.row_to_model(h) for h in row.historial],
            imagenes=[ImagenRepository.row_to_model(i) for i in row.imagenes],
        )


class HistorialRepository:
    """Repository for the append-only deadline ledger."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(
        self,
        tarea_id: int,
        fecha_anterior: datetime,
        nueva_fecha: datetime,
        motivo: str | None,
        modificado_por_id: int,
        now: datetime,
    ) -> int:
        """Append one entry. Prior and new values are recorded even when equal."""
        row = HistorialFechaTable(
            tarea_id=tarea_id,
            fecha_anterior=fecha_anterior,
            nueva_fecha=nueva_fecha,
            motivo=motivo,
            modificado_por_id=modificado_por_id,
            fecha_cambio=now,
        )
        self.session.add(row)
        await self.session.flush()
        return row.id

    async def list_for_tarea(self, tarea_id: int) -> list[HistorialFecha]:
        """Entries newest first."""
        result = await self.session.execute(
            select(HistorialFechaTable)
            .where(HistorialFechaTable.tarea_id == tarea_id)
            .options(selectinload(HistorialFechaTable.modificado_por))
            .order_by(HistorialFechaTable.fecha_cambio.desc(), HistorialFechaTable.id.desc())
        )
        return [self.row_to_model(r) for r in result.scalars().all()]

    @staticmethod
    def row_to_model(row: HistorialFechaTable) -> HistorialFecha:
        return HistorialFecha(
            id=row.id,
            tarea_id=row.tarea_id,
            fecha_anterior=ensure_utc(row.fecha_anterior),
            nueva_fecha=ensure_utc(row.nueva_fecha),
            motivo=row.motivo,
            modificado_por_id=row.modificado_por_id,
            modificado_por_nombre=row.modificado_por.nombre,
            fecha_cambio=ensure_utc(row.fecha_cambio),
        )


class ImagenRepository:
    """Repository for evidence image references."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add_many(self, tarea_id: int, urls: list[str], now: datetime) -> int:
        """Insert one row per URL; returns how many were created."""
        if not urls:
            return 0
        await self.session.execute(
            insert(ImagenTareaTable),
            [{"tarea_id": tarea_id, "url": url, "fecha_subida": now} for url in urls],
        )
        return len(urls)

    async def get(self, imagen_id: int) -> ImagenTarea | None:
        row = await self.session.get(ImagenTareaTable, imagen_id)
        return self.row_to_model(row) if row else None

    async def delete(self, imagen_id: int) -> None:
        await self.session.execute(
            delete(ImagenTareaTable)
            .where(ImagenTareaTable.id == imagen_id)
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    def row_to_model(row: ImagenTareaTable) -> ImagenTarea:
        return ImagenTarea(
            id=row.id,
            tarea_id=row.tarea_id,
            url=row.url,
            fecha_subida=ensure_utc(row.fecha_subida),
        )


class BitacoraRepository:
    """Repository for the append-only audit log."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(
        self,
        accion: str,
        descripcion: str,
        usuario_id: int | None,
        detalles: dict[str, Any],
        now: datetime,
    ) -> int:
        """Append an entry. Identical input produces independent rows."""
        row = BitacoraTable(
            accion=accion,
            descripcion=descripcion,
            usuario_id=usuario_id,
            detalles=detalles,
            fecha=now,
        )
        self.session.add(row)
        await self.session.flush()
        return row.id

    async def latest(self, limit: int) -> list[EntradaBitacora]:
        result = await self.session.execute(
            select(BitacoraTable, UsuarioTable.nombre)
            .outerjoin(UsuarioTable, BitacoraTable.usuario_id == UsuarioTable.id)
            .order_by(BitacoraTable.fecha.desc(), BitacoraTable.id.desc())
            .limit(limit)
        )
        return [
            EntradaBitacora(
                id=row.id,
                accion=row.accion,
                descripcion=row.descripcion,
                usuario_id=row.usuario_id,
                usuario_nombre=nombre,
                detalles=row.detalles or {},
                fecha=ensure_utc(row.fecha),
            )
            for row, nombre in result.all()
        ]


class PushSubscriptionRepository:
    """Repository for push registrations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert(
        self,
        usuario_id: int,
        endpoint: str,
        p256dh: str,
        auth: str,
        now: datetime,
    ) -> SuscripcionPush:
        """Register an endpoint, re-pointing it to this user if it already exists."""
        result = await self.session.execute(
            select(PushSubscriptionTable).where(PushSubscriptionTable.endpoint == endpoint)
        )
        row = result.scalar_one_or_none()
        if row is None:
            row = PushSubscriptionTable(
                usuario_id=usuario_id,
                endpoint=endpoint,
                p256dh=p256dh,
                auth=auth,
                fecha_creacion=now,
            )
            self.session.add(row)
        else:
            row.usuario_id = usuario_id
            row.p256dh = p256dh
            row.auth = auth

        try:
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            raise Conflict("La suscripción ya está registrada")
        return self._row_to_model(row)

    async def for_users(self, usuario_ids: list[int]) -> list[SuscripcionPush]:
        if not usuario_ids:
            return []
        result = await self.session.execute(
            select(PushSubscriptionTable)
            .where(PushSubscriptionTable.usuario_id.in_(usuario_ids))
            .order_by(PushSubscriptionTable.id.asc())
        )
        return [self._row_to_model(r) for r in result.scalars().all()]

    async def delete(self, subscription_id: int) -> None:
        await self.session.execute(
            delete(PushSubscriptionTable)
            .where(PushSubscriptionTable.id == subscription_id)
            .execution_options(synchronize_session=False)
        )

    def _row_to_model(self, row: PushSubscriptionTable) -> SuscripcionPush:
        return SuscripcionPush(
            id=row.id,
            usuario_id=row.usuario_id,
            endpoint=row.endpoint,
            p256dh=row.p256dh,
            auth=row.auth,
        )
