"""Tareas data models."""

from tareas.models.audit import EntradaBitacora, NotificationIntent, SuscripcionPush
from tareas.models.enums import (
    AccionBitacora,
    DecisionRevision,
    EstatusTarea,
    EstatusUsuario,
    LimpiezaAlmacenamiento,
    Rol,
    SortField,
    SortOrder,
    TiempoFilter,
    TipoDepartamento,
    TipoRecordatorio,
    Urgencia,
    ViewType,
)
from tareas.models.principal import Principal
from tareas.models.tarea import (
    Departamento,
    HistorialFecha,
    ImagenTarea,
    Tarea,
    TareaCambios,
    Usuario,
    UsuarioRef,
)

__all__ = [
    "AccionBitacora",
    "DecisionRevision",
    "Departamento",
    "EntradaBitacora",
    "EstatusTarea",
    "EstatusUsuario",
    "HistorialFecha",
    "ImagenTarea",
    "LimpiezaAlmacenamiento",
    "NotificationIntent",
    "Principal",
    "Rol",
    "SuscripcionPush",
    "SortField",
    "SortOrder",
    "Tarea",
    "TareaCambios",
    "TiempoFilter",
    "TipoDepartamento",
    "TipoRecordatorio",
    "Urgencia",
    "Usuario",
    "UsuarioRef",
    "ViewType",
]
