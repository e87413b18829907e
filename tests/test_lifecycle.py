"""
Task lifecycle tests.

Create -> deliver -> review (approve / reject) -> complete / cancel, with the
notification intents and audit entries each transition produces.
"""

from datetime import date, datetime, timezone

import pytest

from tareas.db.repositories import BitacoraRepository, TareaRepository
from tareas.engine.core import TareasEngine
from tareas.engine.errors import HierarchyViolation, InvalidState, PermissionDenied
from tareas.models import (
    AccionBitacora,
    DecisionRevision,
    EstatusTarea,
    TareaCambios,
    Urgencia,
)


async def _crear(engine, org, creador, responsables, fecha=None, titulo="Inventario mensual"):
    return await engine.crear(
        creador,
        tarea=titulo,
        departamento_id=creador.departamento_id or org.ventas.id,
        fecha_limite=fecha or date(2030, 6, 10),
        responsables=responsables,
        urgencia=Urgencia.MEDIA,
    )


@pytest.mark.asyncio
async def test_create_normalizes_deadline_and_notifies(engine, org, notifier, session):
    """A quality ADMIN creates a task: end-of-day deadline, PENDIENTE, responsible notified."""
    tarea = await engine.crear(
        org.admin_calidad,
        tarea="Revisar procedimiento",
        departamento_id=org.calidad.id,
        fecha_limite=date(2025, 6, 10),
        responsables=[org.usuario_calidad.id],
    )

    local = tarea.fecha_limite.astimezone(engine.config.tz)
    assert (local.year, local.month, local.day) == (2025, 6, 10)
    assert (local.hour, local.minute, local.second) == (23, 59, 59)
    assert local.microsecond == 999000
    assert tarea.estatus == EstatusTarea.PENDIENTE
    assert tarea.responsable_ids == [org.usuario_calidad.id]
    assert tarea.asignador.id == org.admin_calidad.id

    assert len(notifier.intents) == 1
    intent = notifier.intents[0]
    assert intent.audience == [org.usuario_calidad.id]
    assert intent.title == "Nueva Tarea: Revisar procedimiento"
    assert intent.body == f"Asignada por {org.admin_calidad.nombre}"

    entries = await BitacoraRepository(session).latest(10)
    assert entries[0].accion == AccionBitacora.CREAR_TAREA.value
    assert entries[0].detalles["tareaId"] == tarea.id
    assert entries[0].detalles["responsablesIds"] == [org.usuario_calidad.id]


@pytest.mark.asyncio
async def test_usuario_cannot_create(engine, org):
    with pytest.raises(PermissionDenied):
        await _crear(engine, org, org.usuario, [org.usuario2.id])


@pytest.mark.asyncio
async def test_deliver_moves_to_review_and_notifies_creator(engine, org, notifier):
    tarea = await _crear(engine, org, org.admin, [org.usuario.id])
    notifier.clear()

    entregada = await engine.entregar(
        org.usuario, tarea.id, comentario="Listo", imagenes=["https://cdn/x/v1/tareas/a.jpg"]
    )

    assert entregada.estatus == EstatusTarea.EN_REVISION
    assert entregada.fecha_entrega is not None
    assert entregada.comentario_entrega == "Listo"
    assert [i.url for i in entregada.imagenes] == ["https://cdn/x/v1/tareas/a.jpg"]

    assert notifier.intents[0].audience == [org.admin.id]
    assert notifier.intents[0].title == "Tarea Entregada 📩"
    assert notifier.intents[0].url == "/admin"


@pytest.mark.asyncio
async def test_deliver_requires_responsible(engine, org):
    tarea = await _crear(engine, org, org.admin, [org.usuario.id])

    with pytest.raises(PermissionDenied):
        await engine.entregar(org.usuario2, tarea.id)


@pytest.mark.asyncio
async def test_deliver_twice_is_invalid_state(engine, org, notifier):
    """A second delivery fails before writing images or notifying anyone."""
    tarea = await _crear(engine, org, org.admin, [org.usuario.id])
    entregada = await engine.entregar(
        org.usuario, tarea.id, imagenes=["https://cdn/x/v1/tareas/a.jpg"]
    )
    notifier.clear()

    with pytest.raises(InvalidState) as exc_info:
        await engine.entregar(
            org.usuario,
            tarea.id,
            comentario="Otra vez",
            imagenes=["https://cdn/x/v1/tareas/b.jpg"],
        )
    assert exc_info.value.code == "INVALID_STATE"

    actual = await engine._get_tarea(tarea.id)
    assert [i.url for i in actual.imagenes] == ["https://cdn/x/v1/tareas/a.jpg"]
    assert actual.comentario_entrega == entregada.comentario_entrega
    assert actual.fecha_entrega == entregada.fecha_entrega
    assert notifier.intents == []


@pytest.mark.asyncio
async def test_created_task_reads_back_its_responsibles(engine, org):
    creada = await _crear(engine, org, org.admin, [org.usuario2.id, org.usuario.id])

    leida = await engine._get_tarea(creada.id)

    assert leida.responsable_ids == sorted([org.usuario.id, org.usuario2.id])
    assert leida.responsable_ids == creada.responsable_ids


@pytest.mark.asyncio
async def test_reject_with_new_deadline_appends_history(engine, org, notifier):
    """Reject: back to PENDIENTE, delivery cleared, history old -> new, feedback in push."""
    tarea = await _crear(engine, org, org.admin, [org.usuario.id])
    anterior = tarea.fecha_limite
    await engine.entregar(org.usuario, tarea.id)
    notifier.clear()

    rechazada = await engine.revisar(
        org.admin,
        tarea.id,
        DecisionRevision.RECHAZAR,
        feedback="falta firma",
        nueva_fecha_limite=date(2030, 6, 15),
    )

    assert rechazada.estatus == EstatusTarea.PENDIENTE
    assert rechazada.fecha_entrega is None
    assert rechazada.feedback_revision == "falta firma"
    assert rechazada.fecha_limite.astimezone(engine.config.tz).day == 15

    assert len(rechazada.historial) == 1
    entrada = rechazada.historial[0]
    assert entrada.fecha_anterior == anterior
    assert entrada.nueva_fecha == rechazada.fecha_limite
    assert entrada.modificado_por_id == org.admin.id

    intent = notifier.intents[0]
    assert intent.audience == [org.usuario.id]
    assert intent.title == "⚠️ Tarea Rechazada"
    assert "falta firma" in intent.body


@pytest.mark.asyncio
async def test_approve_sets_completion_keeps_delivery(engine, org, notifier):
    tarea = await _crear(engine, org, org.admin, [org.usuario.id])
    entregada = await engine.entregar(org.usuario, tarea.id)
    notifier.clear()

    aprobada = await engine.revisar(org.admin, tarea.id, DecisionRevision.APROBAR)

    assert aprobada.estatus == EstatusTarea.CONCLUIDA
    assert aprobada.fecha_conclusion is not None
    assert aprobada.fecha_conclusion >= entregada.fecha_entrega
    assert aprobada.fecha_entrega == entregada.fecha_entrega
    assert aprobada.fecha_conclusion.microsecond == 0
    assert entregada.fecha_entrega.microsecond == 0
    assert notifier.intents[0].title == "✅ Tarea Aprobada"
    assert notifier.intents[0].url == "/mis-tareas"


@pytest.mark.asyncio
async def test_reject_clears_completion_timestamp(engine, org, session):
    tarea = await _crear(engine, org, org.admin, [org.usuario.id])
    await engine.entregar(org.usuario, tarea.id)
    await TareaRepository(session).update_fields(
        tarea.id, fecha_conclusion=datetime(2030, 1, 1, tzinfo=timezone.utc)
    )
    await session.commit()

    rechazada = await engine.revisar(org.admin, tarea.id, DecisionRevision.RECHAZAR, feedback="x")

    assert rechazada.estatus == EstatusTarea.PENDIENTE
    assert rechazada.fecha_conclusion is None


@pytest.mark.asyncio
async def test_transition_requires_expected_status(engine, org, session):
    tarea = await _crear(engine, org, org.admin, [org.usuario.id])
    repo = TareaRepository(session)

    assert not await repo.transition(
        tarea.id, EstatusTarea.EN_REVISION, estatus=EstatusTarea.CONCLUIDA
    )
    assert await repo.transition(tarea.id, EstatusTarea.PENDIENTE, estatus=EstatusTarea.CANCELADA)
    await session.commit()

    assert (await repo.get(tarea.id)).estatus == EstatusTarea.CANCELADA


@pytest.mark.asyncio
async def test_review_on_stale_read_loses_to_concurrent_review(
    engine, org, notifier, session_factory, monkeypatch
):
    """Two reviewers act on the same delivery; only the first decision is applied."""
    tarea = await _crear(engine, org, org.admin, [org.usuario.id])
    await engine.entregar(org.usuario, tarea.id)
    notifier.clear()

    fresh_get = engine.tareas.get

    async def get_then_concurrent_approval(tarea_id):
        snapshot = await fresh_get(tarea_id)
        monkeypatch.setattr(engine.tareas, "get", fresh_get)
        async with session_factory() as otra:
            await TareasEngine(otra).revisar(org.super_admin, tarea_id, DecisionRevision.APROBAR)
        return snapshot

    monkeypatch.setattr(engine.tareas, "get", get_then_concurrent_approval)

    with pytest.raises(InvalidState) as exc_info:
        await engine.revisar(
            org.admin,
            tarea.id,
            DecisionRevision.RECHAZAR,
            feedback="falta firma",
            nueva_fecha_limite=date(2030, 7, 1),
        )
    assert exc_info.value.current_status == EstatusTarea.CONCLUIDA.value

    final = await engine._get_tarea(tarea.id)
    assert final.estatus == EstatusTarea.CONCLUIDA
    assert final.fecha_conclusion is not None
    assert final.fecha_entrega is not None
    assert final.historial == []
    assert notifier.intents == []


@pytest.mark.asyncio
async def test_review_requires_en_revision(engine, org):
    tarea = await _crear(engine, org, org.admin, [org.usuario.id])

    with pytest.raises(InvalidState):
        await engine.revisar(org.admin, tarea.id, DecisionRevision.APROBAR)


@pytest.mark.asyncio
async def test_encargado_reviews_only_own_tasks(engine, org):
    tarea = await _crear(engine, org, org.admin, [org.usuario.id])
    await engine.entregar(org.usuario, tarea.id)

    with pytest.raises(PermissionDenied):
        await engine.revisar(org.encargado, tarea.id, DecisionRevision.APROBAR)


@pytest.mark.asyncio
async def test_complete_from_pending(engine, org, notifier, session):
    tarea = await _crear(engine, org, org.admin, [org.usuario.id, org.usuario2.id])
    notifier.clear()

    concluida = await engine.completar(org.admin, tarea.id)

    assert concluida.estatus == EstatusTarea.CONCLUIDA
    assert concluida.fecha_conclusion is not None
    assert notifier.intents[0].audience == [org.usuario.id, org.usuario2.id]
    assert notifier.intents[0].body == '"Inventario mensual" ha sido CONCLUIDA.'

    entry = (await BitacoraRepository(session).latest(1))[0]
    assert entry.accion == AccionBitacora.ACTUALIZAR_TAREA.value
    assert entry.detalles["accion"] == "VALIDACION_MANUAL"
    assert entry.detalles["estatusNuevo"] == "CONCLUIDA"


@pytest.mark.asyncio
async def test_cancel_then_every_mutation_is_rejected(engine, org):
    tarea = await _crear(engine, org, org.admin, [org.usuario.id])
    cancelada = await engine.cancelar(org.admin, tarea.id)
    assert cancelada.estatus == EstatusTarea.CANCELADA

    with pytest.raises(InvalidState):
        await engine.completar(org.admin, tarea.id)
    with pytest.raises(InvalidState):
        await engine.cancelar(org.admin, tarea.id)
    with pytest.raises(InvalidState):
        await engine.entregar(org.usuario, tarea.id)
    with pytest.raises(InvalidState):
        await engine.editar(org.admin, tarea.id, TareaCambios(tarea="Nuevo"))


@pytest.mark.asyncio
async def test_encargado_cannot_cancel_admin_task(engine, org):
    tarea = await _crear(engine, org, org.admin, [org.usuario.id])

    with pytest.raises(PermissionDenied):
        await engine.cancelar(org.encargado, tarea.id)


@pytest.mark.asyncio
async def test_encargado_editing_admin_task_is_hierarchy_violation(engine, org):
    tarea = await _crear(engine, org, org.admin, [org.usuario.id])

    with pytest.raises(HierarchyViolation) as exc_info:
        await engine.editar(org.encargado, tarea.id, TareaCambios(observaciones="ajuste"))
    assert exc_info.value.code == "HIERARCHY_VIOLATION"


@pytest.mark.asyncio
async def test_edit_replaces_responsibles_and_notifies_only_new(engine, org, notifier):
    tarea = await _crear(engine, org, org.admin, [org.usuario.id])
    notifier.clear()

    editada = await engine.editar(
        org.admin,
        tarea.id,
        TareaCambios(responsables=[org.usuario2.id, org.encargado.id], urgencia=Urgencia.ALTA),
    )

    assert sorted(editada.responsable_ids) == sorted([org.usuario2.id, org.encargado.id])
    assert editada.urgencia == Urgencia.ALTA
    assert len(notifier.intents) == 1
    assert sorted(notifier.intents[0].audience) == sorted([org.usuario2.id, org.encargado.id])


@pytest.mark.asyncio
async def test_edit_deadline_records_history(engine, org):
    tarea = await _crear(engine, org, org.admin, [org.usuario.id])

    editada = await engine.editar(
        org.admin,
        tarea.id,
        TareaCambios(
            fecha_limite=datetime(2030, 7, 1), motivo_cambio_fecha="Proveedor retrasado"
        ),
    )

    assert editada.historial[0].motivo == "Proveedor retrasado"
    assert editada.historial[0].fecha_anterior == tarea.fecha_limite
    assert editada.fecha_limite.astimezone(engine.config.tz).day == 1


@pytest.mark.asyncio
async def test_edit_status_follows_lifecycle(engine, org, notifier):
    tarea = await _crear(engine, org, org.admin, [org.usuario.id])
    notifier.clear()

    editada = await engine.editar(
        org.admin, tarea.id, TareaCambios(estatus=EstatusTarea.CONCLUIDA)
    )

    assert editada.estatus == EstatusTarea.CONCLUIDA
    assert editada.fecha_conclusion is not None
    assert notifier.intents[0].title == "Tarea Concluida"
    assert notifier.intents[0].body == 'La tarea "Inventario mensual" ahora está CONCLUIDA'


@pytest.mark.asyncio
async def test_edit_department_is_super_admin_only(engine, org):
    tarea = await _crear(engine, org, org.admin, [org.usuario.id])

    with pytest.raises(PermissionDenied):
        await engine.editar(
            org.admin, tarea.id, TareaCambios(departamento_id=org.operaciones.id)
        )

    movida = await engine.editar(
        org.super_admin,
        tarea.id,
        TareaCambios(departamento_id=org.operaciones.id, responsables=[org.usuario_ops.id]),
    )
    assert movida.departamento_id == org.operaciones.id
    assert movida.departamento_nombre == "OPERACIONES"
    assert movida.responsable_ids == [org.usuario_ops.id]


@pytest.mark.asyncio
async def test_inactive_responsible_left_out_of_audience(engine, org, notifier, session):
    """A responsible deactivated after assignment stops receiving pushes."""
    from tareas.db.repositories import UsuarioRepository
    from tareas.models import EstatusUsuario

    tarea = await _crear(engine, org, org.admin, [org.usuario.id, org.usuario2.id])
    await UsuarioRepository(session).set_estatus(org.usuario2.id, EstatusUsuario.INACTIVO)
    await session.commit()
    notifier.clear()

    await engine.completar(org.admin, tarea.id)

    assert notifier.intents[0].audience == [org.usuario.id]


@pytest.mark.asyncio
async def test_detail_hidden_and_missing(engine, org):
    from tareas.engine.errors import NotFound

    tarea = await _crear(engine, org, org.admin, [org.usuario.id])

    with pytest.raises(PermissionDenied):
        await engine.detalle(org.admin_ops, tarea.id)
    with pytest.raises(NotFound):
        await engine.detalle(org.admin, 999999)

    found, analisis = await engine.detalle(org.usuario, tarea.id)
    assert found.id == tarea.id
    assert analisis["estadoTiempo"] == "A TIEMPO"
    assert analisis["esEditable"] is True


@pytest.mark.asyncio
async def test_timestamps_are_utc(engine, org):
    tarea = await _crear(engine, org, org.admin, [org.usuario.id])

    assert tarea.fecha_registro.tzinfo == timezone.utc
    assert tarea.fecha_limite.tzinfo == timezone.utc
