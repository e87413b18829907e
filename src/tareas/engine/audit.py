"""Audit trail writer."""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from tareas.db.repositories import BitacoraRepository
from tareas.models import AccionBitacora
from tareas.observability.metrics import metrics
from tareas.utils.time import utc_now

logger = logging.getLogger(__name__)


class AuditLogger:
    """
    Writes bitacora entries after the primary mutation has committed.

    A failed write is rolled back, logged and counted; it never reaches the
    caller, so the mutation it describes stays successful.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.entries = BitacoraRepository(session)

    async def record(
        self,
        accion: AccionBitacora | str,
        descripcion: str,
        usuario_id: int | None,
        detalles: dict[str, Any] | None = None,
    ) -> bool:
        """Append and commit one entry. Returns False if the write failed."""
        tag = accion.value if isinstance(accion, AccionBitacora) else accion
        try:
            await self.entries.append(tag, descripcion, usuario_id, detalles or {}, utc_now())
            await self.session.commit()
        except Exception as exc:
            await self.session.rollback()
            metrics.inc_counter("audit.write.failed")
            logger.error(f"Failed to write audit entry {tag}: {exc}", exc_info=True)
            return False

        metrics.inc_counter("audit.write.ok")
        return True
