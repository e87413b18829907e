"""Post-commit notification fan-out."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tareas.db.repositories import PushSubscriptionRepository, UsuarioRepository
from tareas.models import NotificationIntent, SuscripcionPush
from tareas.notifications.transport import PushSubscriptionGone, PushTransport
from tareas.observability.metrics import metrics

logger = logging.getLogger(__name__)


@dataclass
class DeliveryReport:
    """Outcome of one intent's fan-out."""

    usuarios: int = 0
    enviados: int = 0
    fallidos: int = 0
    eliminados: int = 0


class NotificationDispatcher:
    """
    Delivers notification intents in the background.

    ``dispatch`` is called only after the primary transaction has committed
    and returns immediately. Delivery opens its own session, resolves the
    active registrations of the audience and sends to each concurrently.
    One failed send never aborts its siblings; a registration the push
    service reports as gone is deleted.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        transport: PushTransport,
        icon: str,
        drain_timeout: float = 10.0,
    ):
        self._session_factory = session_factory
        self._transport = transport
        self._icon = icon
        self._drain_timeout = drain_timeout
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def dispatch(self, intent: NotificationIntent) -> None:
        """Schedule delivery and return without waiting for it."""
        if not intent.audience:
            return
        task = asyncio.create_task(self._run(intent), name=f"notify:{intent.title}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _run(self, intent: NotificationIntent) -> None:
        try:
            await self.deliver(intent)
        except Exception as exc:
            metrics.inc_counter("notifications.dispatch.failed")
            logger.error(f"Notification delivery failed for '{intent.title}': {exc}", exc_info=True)

    async def deliver(self, intent: NotificationIntent) -> DeliveryReport:
        """Deliver one intent now. Used directly by the reminder loop."""
        audience = list(dict.fromkeys(intent.audience))
        report = DeliveryReport()

        async with self._session_factory() as session:
            active = await UsuarioRepository(session).active_ids(audience)
            report.usuarios = len(active)
            subscriptions = PushSubscriptionRepository(session)
            targets = await subscriptions.for_users(active)
            if not targets:
                logger.debug(f"No push registrations for users {active}")
                return report

            payload = intent.payload(self._icon)
            results = await asyncio.gather(
                *(self._send_one(sub, payload) for sub in targets)
            )

            for sub, outcome in zip(targets, results):
                if outcome == "sent":
                    report.enviados += 1
                    continue
                report.fallidos += 1
                if outcome == "gone":
                    await subscriptions.delete(sub.id)
                    report.eliminados += 1

            if report.eliminados:
                await session.commit()

        metrics.inc_counter("notifications.sent", report.enviados)
        metrics.inc_counter("notifications.failed", report.fallidos)
        logger.info(
            f"Push '{intent.title}': users={report.usuarios} sent={report.enviados} "
            f"failed={report.fallidos} removed={report.eliminados}"
        )
        return report

    async def _send_one(self, subscription: SuscripcionPush, payload: dict[str, Any]) -> str:
        try:
            await self._transport.send(subscription, payload)
        except PushSubscriptionGone:
            return "gone"
        except Exception as exc:
            logger.warning(f"Push to user {subscription.usuario_id} failed: {exc}")
            return "failed"
        return "sent"

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight deliveries, cancelling whatever outlives the timeout."""
        if not self._pending:
            return
        pending = set(self._pending)
        _, still_running = await asyncio.wait(
            pending, timeout=timeout if timeout is not None else self._drain_timeout
        )
        for task in still_running:
            task.cancel()
        if still_running:
            logger.warning(f"Cancelled {len(still_running)} pending notification deliveries")
