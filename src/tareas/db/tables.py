"""SQLAlchemy table definitions."""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tareas.db.base import Base, JSONType
from tareas.models.enums import (
    EstatusTarea,
    EstatusUsuario,
    Rol,
    TipoDepartamento,
    Urgencia,
)


class DepartamentoTable(Base):
    """Departments - scope for users and tasks."""

    __tablename__ = "departamentos"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nombre: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    tipo: Mapped[TipoDepartamento] = mapped_column(
        Enum(TipoDepartamento), nullable=False, default=TipoDepartamento.OPERATIVO
    )
    # Grants visibility of KAIZEN tasks to members
    es_calidad: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    usuarios: Mapped[list["UsuarioTable"]] = relationship(back_populates="departamento")


class UsuarioTable(Base):
    """Users - never hard-deleted, deactivated via estatus."""

    __tablename__ = "usuarios"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nombre: Mapped[str] = mapped_column(String(200), nullable=False)
    username: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    rol: Mapped[Rol] = mapped_column(Enum(Rol), nullable=False, default=Rol.USUARIO)
    departamento_id: Mapped[int | None] = mapped_column(
        ForeignKey("departamentos.id"), nullable=True
    )
    estatus: Mapped[EstatusUsuario] = mapped_column(
        Enum(EstatusUsuario), nullable=False, default=EstatusUsuario.ACTIVO
    )
    fecha_creacion: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    departamento: Mapped[DepartamentoTable | None] = relationship(back_populates="usuarios")

    __table_args__ = (
        Index("idx_usuarios_departamento", "departamento_id", "estatus"),
    )


class TareaTable(Base):
    """Tasks - core work units."""

    __tablename__ = "tareas"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tarea: Mapped[str] = mapped_column(String(500), nullable=False)
    observaciones: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Status
    estatus: Mapped[EstatusTarea] = mapped_column(
        Enum(EstatusTarea), nullable=False, default=EstatusTarea.PENDIENTE
    )
    urgencia: Mapped[Urgencia] = mapped_column(
        Enum(Urgencia), nullable=False, default=Urgencia.BAJA
    )

    # Ownership
    departamento_id: Mapped[int] = mapped_column(ForeignKey("departamentos.id"), nullable=False)
    asignador_id: Mapped[int] = mapped_column(ForeignKey("usuarios.id"), nullable=False)

    # Timestamps
    fecha_registro: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    fecha_limite: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    fecha_conclusion: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    fecha_entrega: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    fecha_revision: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Delivery / review
    comentario_entrega: Mapped[str | None] = mapped_column(Text, nullable=True)
    feedback_revision: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    departamento: Mapped[DepartamentoTable] = relationship(lazy="raise")
    asignador: Mapped[UsuarioTable] = relationship(lazy="raise")
    responsables: Mapped[list["ResponsableTable"]] = relationship(
        back_populates="tarea", cascade="all, delete-orphan", lazy="raise"
    )
    historial: Mapped[list["HistorialFechaTable"]] = relationship(
        back_populates="tarea",
        cascade="all, delete-orphan",
        order_by=lambda: (HistorialFechaTable.fecha_cambio.desc(), HistorialFechaTable.id.desc()),
        lazy="raise",
    )
    imagenes: Mapped[list["ImagenTareaTable"]] = relationship(
        back_populates="tarea", cascade="all, delete-orphan", lazy="raise"
    )

    __table_args__ = (
        Index("idx_tareas_departamento_estatus", "departamento_id", "estatus"),
        Index("idx_tareas_asignador", "asignador_id"),
        Index("idx_tareas_fecha_limite", "estatus", "fecha_limite"),
    )


class ResponsableTable(Base):
    """Task <-> user assignment (replaced wholesale on edit)."""

    __tablename__ = "responsables_tarea"

    tarea_id: Mapped[int] = mapped_column(
        ForeignKey("tareas.id", ondelete="CASCADE"), primary_key=True
    )
    usuario_id: Mapped[int] = mapped_column(ForeignKey("usuarios.id"), primary_key=True)

    tarea: Mapped[TareaTable] = relationship(back_populates="responsables")
    usuario: Mapped[UsuarioTable] = relationship(lazy="raise")

    __table_args__ = (
        Index("idx_responsables_usuario", "usuario_id"),
    )


class HistorialFechaTable(Base):
    """Deadline change ledger - append-only."""

    __tablename__ = "historial_fechas"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tarea_id: Mapped[int] = mapped_column(
        ForeignKey("tareas.id", ondelete="CASCADE"), nullable=False
    )
    fecha_anterior: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    nueva_fecha: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    motivo: Mapped[str | None] = mapped_column(Text, nullable=True)
    modificado_por_id: Mapped[int] = mapped_column(ForeignKey("usuarios.id"), nullable=False)
    fecha_cambio: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    tarea: Mapped[TareaTable] = relationship(back_populates="historial")
    modificado_por: Mapped[UsuarioTable] = relationship(lazy="raise")

    __table_args__ = (
        Index("idx_historial_tarea", "tarea_id", "fecha_cambio"),
    )


class ImagenTareaTable(Base):
    """Evidence image references (binary lives in object storage)."""

    __tablename__ = "imagenes_tarea"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tarea_id: Mapped[int] = mapped_column(
        ForeignKey("tareas.id", ondelete="CASCADE"), nullable=False
    )
    url: Mapped[str] = mapped_column(String(1000), nullable=False)
    fecha_subida: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    tarea: Mapped[TareaTable] = relationship(back_populates="imagenes")

    __table_args__ = (
        Index("idx_imagenes_tarea", "tarea_id"),
    )


class BitacoraTable(Base):
    """Audit entries - append-only, never deduplicated."""

    __tablename__ = "bitacora"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    accion: Mapped[str] = mapped_column(String(100), nullable=False)
    descripcion: Mapped[str] = mapped_column(Text, nullable=False)
    usuario_id: Mapped[int | None] = mapped_column(ForeignKey("usuarios.id"), nullable=True)
    detalles: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    fecha: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    usuario: Mapped[UsuarioTable | None] = relationship(lazy="raise")

    __table_args__ = (
        Index("idx_bitacora_fecha", "fecha"),
        Index("idx_bitacora_accion", "accion", "fecha"),
    )


class PushSubscriptionTable(Base):
    """Push registrations, one row per browser endpoint."""

    __tablename__ = "push_subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    usuario_id: Mapped[int] = mapped_column(ForeignKey("usuarios.id"), nullable=False)
    endpoint: Mapped[str] = mapped_column(String(1000), nullable=False, unique=True)
    p256dh: Mapped[str] = mapped_column(String(255), nullable=False)
    auth: Mapped[str] = mapped_column(String(255), nullable=False)
    fecha_creacion: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_push_usuario", "usuario_id"),
    )
