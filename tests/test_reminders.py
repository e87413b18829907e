"""Deadline reminder tests."""

from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

import pytest

from tareas.models import NotificationIntent, TipoRecordatorio
from tareas.tasks.reminders import next_run, run_reminders

MX = ZoneInfo("America/Mexico_City")
# 08:00 local on 2030-03-15
NOW = datetime(2030, 3, 15, 14, 0, tzinfo=timezone.utc)


class RecordingDispatcher:
    def __init__(self, fail_titles: tuple[str, ...] = ()):
        self.delivered: list[NotificationIntent] = []
        self.fail_titles = fail_titles

    async def deliver(self, intent: NotificationIntent):
        if intent.title in self.fail_titles:
            raise RuntimeError("push relay down")
        self.delivered.append(intent)


@pytest.fixture
async def agenda(engine, org):
    """Tasks due today, overdue, later, and a concluded one due today."""
    hoy = await engine.crear(
        org.admin, "Reporte diario", org.ventas.id, date(2030, 3, 15), [org.usuario.id]
    )
    vencida = await engine.crear(
        org.admin, "Conciliación", org.ventas.id, date(2030, 3, 12), [org.usuario2.id]
    )
    await engine.crear(
        org.admin, "Plan trimestral", org.ventas.id, date(2030, 3, 20), [org.usuario.id]
    )
    cerrada = await engine.crear(
        org.admin, "Arqueo", org.ventas.id, date(2030, 3, 15), [org.usuario.id]
    )
    await engine.completar(org.admin, cerrada.id)
    return {"hoy": hoy, "vencida": vencida}


@pytest.mark.asyncio
async def test_morning_run(agenda, session_factory, org):
    dispatcher = RecordingDispatcher()

    sent = await run_reminders(TipoRecordatorio.MATUTINO, session_factory, dispatcher, NOW, MX)

    assert sent == 2
    hoy, vencida = dispatcher.delivered
    assert hoy.title == "📅 Vence Hoy"
    assert hoy.body == 'La tarea "Reporte diario" vence hoy. ¡Organiza tu día!'
    assert hoy.audience == [org.usuario.id]
    assert vencida.title == "⚠️ TAREA VENCIDA"
    assert vencida.body == '"Conciliación" requiere atención inmediata.'
    assert vencida.audience == [org.usuario2.id]


@pytest.mark.asyncio
async def test_closing_run_only_due_today(agenda, session_factory):
    dispatcher = RecordingDispatcher()

    sent = await run_reminders(TipoRecordatorio.CIERRE, session_factory, dispatcher, NOW, MX)

    assert sent == 1
    (intent,) = dispatcher.delivered
    assert intent.title == "⏳ Cierre de día"
    assert '("Reporte diario")' in intent.body
    assert intent.body.endswith("O pide cambio de fecha para no afectar tu rendimiento.")


@pytest.mark.asyncio
async def test_delivery_failure_does_not_stop_run(agenda, session_factory):
    dispatcher = RecordingDispatcher(fail_titles=("📅 Vence Hoy",))

    sent = await run_reminders(TipoRecordatorio.MATUTINO, session_factory, dispatcher, NOW, MX)

    assert sent == 2
    assert [i.title for i in dispatcher.delivered] == ["⚠️ TAREA VENCIDA"]


@pytest.mark.asyncio
async def test_delivered_task_is_not_reminded(agenda, engine, org, session_factory):
    await engine.entregar(org.usuario, agenda["hoy"].id)
    dispatcher = RecordingDispatcher()

    await run_reminders(TipoRecordatorio.CIERRE, session_factory, dispatcher, NOW, MX)

    assert dispatcher.delivered == []


def test_next_run_picks_closest_slot():
    morning, closing = time(9, 0), time(18, 0)

    run_at, tipo = next_run(NOW, MX, morning, closing)  # 08:00 local
    assert tipo == TipoRecordatorio.MATUTINO
    assert run_at == datetime(2030, 3, 15, 15, 0, tzinfo=timezone.utc)

    run_at, tipo = next_run(datetime(2030, 3, 15, 20, 0, tzinfo=timezone.utc), MX, morning, closing)
    assert tipo == TipoRecordatorio.CIERRE
    assert run_at == datetime(2030, 3, 16, 0, 0, tzinfo=timezone.utc)

    run_at, tipo = next_run(datetime(2030, 3, 16, 1, 0, tzinfo=timezone.utc), MX, morning, closing)
    assert tipo == TipoRecordatorio.MATUTINO
    assert run_at == datetime(2030, 3, 16, 15, 0, tzinfo=timezone.utc)
