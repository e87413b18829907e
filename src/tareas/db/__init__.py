"""Tareas database layer."""

from tareas.db.base import Base, get_session, init_db
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

__all__ = [
    "Base",
    "get_session",
    "init_db",
    "BitacoraTable",
    "DepartamentoTable",
    "HistorialFechaTable",
    "ImagenTareaTable",
    "PushSubscriptionTable",
    "ResponsableTable",
    "TareaTable",
    "UsuarioTable",
]
