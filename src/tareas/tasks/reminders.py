"""Deadline reminder background task."""

import asyncio
import logging
from datetime import datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import and_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tareas.config import settings
from tareas.db.repositories import TareaRepository
from tareas.db.tables import TareaTable
from tareas.models import EstatusTarea, NotificationIntent, Tarea, TipoRecordatorio
from tareas.notifications.dispatcher import NotificationDispatcher
from tareas.utils.time import day_bounds, utc_now

logger = logging.getLogger("tareas.reminders")

_reminder_task: Optional[asyncio.Task] = None
_shutdown_event: Optional[asyncio.Event] = None


def next_run(
    now: datetime,
    tz: ZoneInfo,
    morning: time,
    closing: time,
) -> tuple[datetime, TipoRecordatorio]:
    """Earliest reminder run strictly after ``now``, in UTC."""
    local = now.astimezone(tz)
    candidates = []
    for offset in (0, 1):
        day = local.date() + timedelta(days=offset)
        candidates.append((datetime.combine(day, morning, tzinfo=tz), TipoRecordatorio.MATUTINO))
        candidates.append((datetime.combine(day, closing, tzinfo=tz), TipoRecordatorio.CIERRE))
    run_at, tipo = min((c for c in candidates if c[0] > local), key=lambda c: c[0])
    return run_at.astimezone(now.tzinfo), tipo


async def _pending(session: AsyncSession, *clauses) -> list[Tarea]:
    predicate = and_(TareaTable.estatus == EstatusTarea.PENDIENTE, *clauses)
    return await TareaRepository(session).list(predicate)


async def run_reminders(
    tipo: TipoRecordatorio,
    session_factory: async_sessionmaker[AsyncSession],
    dispatcher: NotificationDispatcher,
    now: Optional[datetime] = None,
    tz: Optional[ZoneInfo] = None,
) -> int:
    """
    Evaluate one reminder run and deliver its pushes.

    Morning: PENDIENTE tasks due today, then PENDIENTE tasks already past
    their deadline day. Closing: PENDIENTE tasks due today. "Today" is the
    business day containing ``now``. Returns the number of intents sent.
    """
    now = now or utc_now()
    inicio, fin = day_bounds(now, tz or settings.tz)
    intents: list[NotificationIntent] = []

    async with session_factory() as session:
        hoy = await _pending(session, TareaTable.fecha_limite.between(inicio, fin))
        vencidas = []
        if tipo == TipoRecordatorio.MATUTINO:
            vencidas = await _pending(session, TareaTable.fecha_limite < inicio)

    for tarea in hoy:
        if not tarea.responsable_ids:
            continue
        if tipo == TipoRecordatorio.MATUTINO:
            title = "📅 Vence Hoy"
            body = f'La tarea "{tarea.tarea}" vence hoy. ¡Organiza tu día!'
        else:
            title = "⏳ Cierre de día"
            body = (
                f'Tienes una tarea ("{tarea.tarea}") que vence hoy. ¿Crees terminarla? '
                "O pide cambio de fecha para no afectar tu rendimiento."
            )
        intents.append(NotificationIntent(audience=tarea.responsable_ids, title=title, body=body))

    for tarea in vencidas:
        if tarea.responsable_ids:
            intents.append(
                NotificationIntent(
                    audience=tarea.responsable_ids,
                    title="⚠️ TAREA VENCIDA",
                    body=f'"{tarea.tarea}" requiere atención inmediata.',
                )
            )

    for intent in intents:
        try:
            await dispatcher.deliver(intent)
        except Exception as e:
            logger.error(f"Reminder delivery failed for '{intent.title}': {e}", exc_info=True)

    logger.info(f"{tipo.value} reminder run: {len(intents)} notifications")
    return len(intents)


async def reminder_loop(
    session_factory: async_sessionmaker[AsyncSession],
    dispatcher: NotificationDispatcher,
):
    """
    Background loop firing the morning and closing reminder runs.

    Sleeps until the next scheduled local time in the business timezone,
    re-computing after every run so DST shifts are picked up.
    """
    tz = settings.tz
    logger.info(
        f"Reminder loop started (morning {settings.morning_reminder_time}, "
        f"closing {settings.closing_reminder_time}, {settings.business_timezone})"
    )

    while not _shutdown_event.is_set():
        run_at, tipo = next_run(
            utc_now(), tz, settings.morning_reminder_time, settings.closing_reminder_time
        )
        delay = max(0.0, (run_at - utc_now()).total_seconds())

        try:
            await asyncio.wait_for(_shutdown_event.wait(), timeout=delay)
            break
        except asyncio.TimeoutError:
            pass

        try:
            await run_reminders(tipo, session_factory, dispatcher)
        except Exception as e:
            logger.error(f"Reminder run error: {e}", exc_info=True)

    logger.info("Reminder loop stopped")


async def start_reminders(
    session_factory: async_sessionmaker[AsyncSession],
    dispatcher: NotificationDispatcher,
):
    """Start the reminder background task."""
    global _reminder_task, _shutdown_event

    _shutdown_event = asyncio.Event()
    _reminder_task = asyncio.create_task(reminder_loop(session_factory, dispatcher))


async def stop_reminders():
    """Stop the reminder background task."""
    global _reminder_task, _shutdown_event

    if _shutdown_event:
        _shutdown_event.set()

    if _reminder_task:
        try:
            await asyncio.wait_for(_reminder_task, timeout=10.0)
        except asyncio.TimeoutError:
            logger.warning("Reminder task did not stop gracefully, cancelling")
            _reminder_task.cancel()
            try:
                await _reminder_task
            except asyncio.CancelledError:
                pass

    _reminder_task = None
    _shutdown_event = None
