"""Object storage client used to clean up evidence images."""

import logging
import re
from typing import Optional

import httpx

from tareas.config import settings
from tareas.integrations.circuit_breaker import CircuitBreaker, build_breaker
from tareas.models import LimpiezaAlmacenamiento
from tareas.observability.metrics import metrics

logger = logging.getLogger(__name__)


class ObjectStorage:
    """
    Best-effort remover for stored images.

    Subclasses implement ``delete``. ``remove_image`` never raises: the
    outcome is reported as a ``LimpiezaAlmacenamiento`` value for the audit
    trail.
    """

    def __init__(self, folder: str):
        self.folder = folder
        self._public_id_re = re.compile(rf"v\d+/({re.escape(folder)}/[^/.]+)")

    def public_id_from_url(self, url: str) -> Optional[str]:
        """Extract ``<folder>/<name>`` from a versioned delivery URL."""
        match = self._public_id_re.search(url)
        return match.group(1) if match else None

    async def delete(self, public_id: str) -> None:
        raise NotImplementedError

    async def remove_image(self, url: str) -> LimpiezaAlmacenamiento:
        public_id = self.public_id_from_url(url)
        if public_id is None:
            logger.warning(f"No storage reference found in image url {url}")
            metrics.inc_counter("storage.delete.unreferenced")
            return LimpiezaAlmacenamiento.SIN_REFERENCIA

        try:
            await self.delete(public_id)
        except Exception as exc:
            logger.error(f"Failed to delete stored image {public_id}: {exc}")
            metrics.inc_counter("storage.delete.failed")
            return LimpiezaAlmacenamiento.FALLIDA

        metrics.inc_counter("storage.delete.ok")
        return LimpiezaAlmacenamiento.ELIMINADA


class HttpObjectStorage(ObjectStorage):
    """Deletes assets through the storage provider's HTTP API."""

    def __init__(
        self,
        base_url: Optional[str],
        token: Optional[str],
        folder: str,
        timeout: float,
        breaker: Optional[CircuitBreaker] = None,
    ):
        super().__init__(folder)
        self.base_url = base_url.rstrip("/") if base_url else None
        self.token = token
        self.timeout = timeout
        self._breaker = breaker

    async def delete(self, public_id: str) -> None:
        if not self.base_url:
            raise RuntimeError("storage_url not configured")
        if self._breaker:
            await self._breaker.call(self._delete, public_id)
        else:
            await self._delete(public_id)

    async def _delete(self, public_id: str) -> None:
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.delete(f"{self.base_url}/assets/{public_id}", headers=headers)
            response.raise_for_status()


def build_storage() -> HttpObjectStorage:
    """Storage client from settings."""
    return HttpObjectStorage(
        base_url=settings.storage_url,
        token=settings.storage_token,
        folder=settings.storage_folder,
        timeout=settings.http_timeout_seconds,
        breaker=build_breaker("storage"),
    )
