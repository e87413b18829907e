"""Tareas enumerations."""

from enum import Enum


class Rol(str, Enum):
    """Five-level role hierarchy."""

    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    ENCARGADO = "ENCARGADO"
    USUARIO = "USUARIO"
    INVITADO = "INVITADO"

    @classmethod
    def managers(cls) -> set["Rol"]:
        """Roles allowed to create and manage tasks."""
        return {cls.SUPER_ADMIN, cls.ADMIN, cls.ENCARGADO}

    @classmethod
    def departmentless(cls) -> set["Rol"]:
        """Roles that must not belong to a department."""
        return {cls.SUPER_ADMIN, cls.INVITADO}


class EstatusUsuario(str, Enum):
    """User activity status (soft deactivation)."""

    ACTIVO = "ACTIVO"
    INACTIVO = "INACTIVO"


class TipoDepartamento(str, Enum):
    """Department classification."""

    ADMINISTRATIVO = "ADMINISTRATIVO"
    OPERATIVO = "OPERATIVO"


class EstatusTarea(str, Enum):
    """Task lifecycle status."""

    PENDIENTE = "PENDIENTE"
    EN_REVISION = "EN_REVISION"
    CONCLUIDA = "CONCLUIDA"
    CANCELADA = "CANCELADA"

    @classmethod
    def terminal_states(cls) -> set["EstatusTarea"]:
        """Return terminal states."""
        return {cls.CONCLUIDA, cls.CANCELADA}

    @classmethod
    def active_states(cls) -> set["EstatusTarea"]:
        return {cls.PENDIENTE, cls.EN_REVISION}

    def is_terminal(self) -> bool:
        """Check if status is terminal."""
        return self in self.terminal_states()

    def can_transition_to(self, new_status: "EstatusTarea") -> bool:
        """Check if transition to new status is valid per state machine."""
        valid_transitions: dict[EstatusTarea, set[EstatusTarea]] = {
            EstatusTarea.PENDIENTE: {
                EstatusTarea.EN_REVISION,
                EstatusTarea.CONCLUIDA,  # Direct administrative validation
                EstatusTarea.CANCELADA,
            },
            EstatusTarea.EN_REVISION: {
                EstatusTarea.CONCLUIDA,
                EstatusTarea.PENDIENTE,  # On rejection
                EstatusTarea.CANCELADA,
            },
            EstatusTarea.CONCLUIDA: set(),
            EstatusTarea.CANCELADA: set(),
        }
        return new_status in valid_transitions.get(self, set())


class Urgencia(str, Enum):
    """Task urgency."""

    BAJA = "BAJA"
    MEDIA = "MEDIA"
    ALTA = "ALTA"


class ViewType(str, Enum):
    """List view hint."""

    MIS_TAREAS = "MIS_TAREAS"
    ASIGNADAS = "ASIGNADAS"
    TODAS = "TODAS"


class TiempoFilter(str, Enum):
    """On-time / late filter for list queries."""

    PENDIENTES_ATRASADAS = "PENDIENTES_ATRASADAS"
    PENDIENTES_A_TIEMPO = "PENDIENTES_A_TIEMPO"
    ENTREGADAS_ATRASADAS = "ENTREGADAS_ATRASADAS"
    ENTREGADAS_A_TIEMPO = "ENTREGADAS_A_TIEMPO"


class SortField(str, Enum):
    FECHA_REGISTRO = "fecha_registro"
    FECHA_LIMITE = "fecha_limite"
    URGENCIA = "urgencia"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class DecisionRevision(str, Enum):
    """Review outcome."""

    APROBAR = "APROBAR"
    RECHAZAR = "RECHAZAR"


class AccionBitacora(str, Enum):
    """Audit action tags."""

    CREAR_TAREA = "CREAR_TAREA"
    ACTUALIZAR_TAREA = "ACTUALIZAR_TAREA"
    CAMBIO_ESTATUS = "CAMBIO_ESTATUS"
    ENTREGAR_TAREA = "ENTREGAR_TAREA"
    REVISION_TAREA = "REVISION_TAREA"
    CAMBIO_FECHA = "CAMBIO_FECHA"
    SUBIR_IMAGEN = "SUBIR_IMAGEN"
    ELIMINAR_IMAGEN = "ELIMINAR_IMAGEN"
    NOTIFICACION = "NOTIFICACION"
    ERROR_SISTEMA = "ERROR_SISTEMA"


class LimpiezaAlmacenamiento(str, Enum):
    """Outcome of best-effort object storage cleanup."""

    ELIMINADA = "ELIMINADA"
    FALLIDA = "FALLIDA"
    SIN_REFERENCIA = "SIN_REFERENCIA"


class TipoRecordatorio(str, Enum):
    """Reminder runs."""

    MATUTINO = "MATUTINO"
    CIERRE = "CIERRE"
