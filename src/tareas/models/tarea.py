"""Task model - core work unit and its owned records."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from tareas.models.enums import (
    EstatusTarea,
    EstatusUsuario,
    Rol,
    TipoDepartamento,
    Urgencia,
)


class Departamento(BaseModel):
    id: int
    nombre: str
    tipo: TipoDepartamento = TipoDepartamento.OPERATIVO
    es_calidad: bool = False


class Usuario(BaseModel):
    """User as seen by the core (no password hash)."""

    id: int
    nombre: str
    username: str
    rol: Rol
    departamento_id: Optional[int] = None
    estatus: EstatusUsuario = EstatusUsuario.ACTIVO

    @property
    def is_active(self) -> bool:
        return self.estatus == EstatusUsuario.ACTIVO


class UsuarioRef(BaseModel):
    """Compact user reference embedded in task payloads."""

    id: int
    nombre: str
    rol: Rol


class HistorialFecha(BaseModel):
    """One deadline change."""

    id: int
    tarea_id: int
    fecha_anterior: datetime
    nueva_fecha: datetime
    motivo: Optional[str] = None
    modificado_por_id: int
    modificado_por_nombre: Optional[str] = None
    fecha_cambio: datetime


class ImagenTarea(BaseModel):
    id: int
    tarea_id: int
    url: str
    fecha_subida: datetime


class Tarea(BaseModel):
    """Task with its responsible set, deadline history and images."""

    id: int
    tarea: str
    observaciones: Optional[str] = None

    estatus: EstatusTarea = EstatusTarea.PENDIENTE
    urgencia: Urgencia = Urgencia.BAJA

    departamento_id: int
    departamento_nombre: str
    asignador: UsuarioRef
    responsables: list[UsuarioRef] = Field(default_factory=list)

    fecha_registro: datetime
    fecha_limite: datetime
    fecha_conclusion: Optional[datetime] = None
    fecha_entrega: Optional[datetime] = None
    fecha_revision: Optional[datetime] = None
    comentario_entrega: Optional[str] = None
    feedback_revision: Optional[str] = None

    historial: list[HistorialFecha] = Field(default_factory=list)
    imagenes: list[ImagenTarea] = Field(default_factory=list)

    @property
    def responsable_ids(self) -> list[int]:
        return [r.id for r in self.responsables]

    def is_terminal(self) -> bool:
        """Check if task is in a terminal state."""
        return self.estatus.is_terminal()

    def is_responsible(self, usuario_id: int) -> bool:
        return usuario_id in self.responsable_ids

    def fecha_cumplimiento(self) -> Optional[datetime]:
        """Delivery date when present, otherwise completion date."""
        return self.fecha_entrega or self.fecha_conclusion


class TareaCambios(BaseModel):
    """Partial edit of a task. Only fields explicitly set are applied."""

    tarea: Optional[str] = None
    observaciones: Optional[str] = None
    fecha_limite: Optional[datetime] = None
    motivo_cambio_fecha: Optional[str] = None
    urgencia: Optional[Urgencia] = None
    estatus: Optional[EstatusTarea] = None
    departamento_id: Optional[int] = None
    responsables: Optional[list[int]] = None

    def provided(self) -> set[str]:
        """Names of the fields the caller actually sent."""
        return set(self.model_fields_set)
