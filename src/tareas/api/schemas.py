"""API request/response schemas."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from tareas.models import (
    DecisionRevision,
    EstatusTarea,
    EstatusUsuario,
    LimpiezaAlmacenamiento,
    Rol,
    TipoDepartamento,
    Urgencia,
)


class CamelModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ============================================================================
# Shared schemas
# ============================================================================


class UsuarioRefSchema(CamelModel):
    id: int
    nombre: str
    rol: Rol


class HistorialFechaSchema(CamelModel):
    id: int
    fecha_anterior: datetime
    nueva_fecha: datetime
    motivo: Optional[str] = None
    modificado_por_id: int
    modificado_por_nombre: Optional[str] = None
    fecha_cambio: datetime


class ImagenSchema(CamelModel):
    id: int
    url: str
    fecha_subida: datetime


# ============================================================================
# Tareas
# ============================================================================


class TareaResponse(CamelModel):
    """Task with responsibles, history and images."""

    id: int
    tarea: str
    observaciones: Optional[str] = None
    estatus: EstatusTarea
    urgencia: Urgencia
    departamento_id: int
    departamento_nombre: str
    asignador: UsuarioRefSchema
    responsables: list[UsuarioRefSchema]
    fecha_registro: datetime
    fecha_limite: datetime
    fecha_conclusion: Optional[datetime] = None
    fecha_entrega: Optional[datetime] = None
    fecha_revision: Optional[datetime] = None
    comentario_entrega: Optional[str] = None
    feedback_revision: Optional[str] = None
    historial: list[HistorialFechaSchema] = Field(default_factory=list)
    imagenes: list[ImagenSchema] = Field(default_factory=list)


class TareaDetalleResponse(TareaResponse):
    """Detail view: the task plus its time analysis block."""

    analisis: dict[str, Any]


class Paginacion(BaseModel):
    totalItems: int
    itemsPorPagina: int
    paginaActual: int
    totalPaginas: int


class ListTareasResponse(BaseModel):
    """List response: page, pagination meta and summary over the same filter."""

    data: list[TareaResponse]
    pagination: Paginacion
    resumen: dict[str, Any]


class CrearTareaRequest(CamelModel):
    """Create task request."""

    tarea: str = Field(..., min_length=1, description="Title")
    observaciones: Optional[str] = None
    departamento_id: int
    fecha_limite: datetime = Field(..., description="Deadline; a bare date means end of that day")
    responsables: list[int] = Field(..., min_length=1)
    urgencia: Urgencia = Urgencia.BAJA


class EditarTareaRequest(CamelModel):
    """Partial edit. Only fields present in the body are applied."""

    tarea: Optional[str] = None
    observaciones: Optional[str] = None
    fecha_limite: Optional[datetime] = None
    motivo_cambio_fecha: Optional[str] = None
    urgencia: Optional[Urgencia] = None
    estatus: Optional[EstatusTarea] = None
    departamento_id: Optional[int] = None
    responsables: Optional[list[int]] = None


class EntregarTareaRequest(CamelModel):
    comentario: Optional[str] = None
    imagenes: list[str] = Field(default_factory=list, description="Uploaded evidence URLs")


class RevisionTareaRequest(CamelModel):
    decision: DecisionRevision
    feedback: Optional[str] = None
    nueva_fecha_limite: Optional[datetime] = None


class HistorialRequest(CamelModel):
    nueva_fecha: datetime
    motivo: Optional[str] = None


class SubirImagenesRequest(CamelModel):
    urls: list[str] = Field(..., min_length=1)


class EliminarImagenResponse(BaseModel):
    ok: bool
    almacenamiento: LimpiezaAlmacenamiento


# ============================================================================
# Catalog
# ============================================================================


class DepartamentoSchema(CamelModel):
    id: int
    nombre: str
    tipo: TipoDepartamento
    es_calidad: bool


class CrearDepartamentoRequest(CamelModel):
    nombre: str = Field(..., min_length=1)
    tipo: TipoDepartamento = TipoDepartamento.OPERATIVO
    es_calidad: bool = False


class ActualizarDepartamentoRequest(CamelModel):
    nombre: Optional[str] = None
    tipo: Optional[TipoDepartamento] = None
    es_calidad: Optional[bool] = None


class UsuarioSchema(CamelModel):
    id: int
    nombre: str
    username: str
    rol: Rol
    departamento_id: Optional[int] = None
    estatus: EstatusUsuario


class CrearUsuarioRequest(CamelModel):
    nombre: str = Field(..., min_length=1)
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=6)
    rol: Rol
    departamento_id: Optional[int] = None


class EstatusUsuarioRequest(CamelModel):
    estatus: EstatusUsuario


class PushKeys(BaseModel):
    p256dh: str
    auth: str


class SuscripcionRequest(BaseModel):
    """Browser PushSubscription JSON."""

    endpoint: str
    keys: PushKeys


class SuscripcionResponse(CamelModel):
    id: int
    usuario_id: int
    endpoint: str


class BitacoraSchema(CamelModel):
    id: int
    accion: str
    descripcion: str
    usuario_id: Optional[int] = None
    usuario_nombre: Optional[str] = None
    detalles: dict[str, Any] = Field(default_factory=dict)
    fecha: datetime


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
