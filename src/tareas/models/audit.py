"""Audit and notification models."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class EntradaBitacora(BaseModel):
    """Append-only audit record."""

    id: int
    accion: str
    descripcion: str
    usuario_id: Optional[int] = None
    usuario_nombre: Optional[str] = None
    detalles: dict[str, Any] = Field(default_factory=dict)
    fecha: datetime


class SuscripcionPush(BaseModel):
    """A browser push registration."""

    id: int
    usuario_id: int
    endpoint: str
    p256dh: str
    auth: str

    def keys(self) -> dict[str, str]:
        return {"p256dh": self.p256dh, "auth": self.auth}


class NotificationIntent(BaseModel):
    """Who to notify, with what, and where the link points."""

    audience: list[int]
    title: str
    body: str
    url: str = "/mis-tareas"

    def payload(self, icon: str) -> dict[str, Any]:
        """Wire payload handed to the push transport."""
        return {
            "title": self.title,
            "body": self.body,
            "icon": icon,
            "data": {"url": self.url},
        }
