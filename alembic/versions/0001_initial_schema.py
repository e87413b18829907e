"""Initial Tareas schema."""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create base tables and enums."""
    bind = op.get_bind()

    rol = sa.Enum("SUPER_ADMIN", "ADMIN", "ENCARGADO", "USUARIO", "INVITADO", name="rol")
    estatususuario = sa.Enum("ACTIVO", "INACTIVO", name="estatususuario")
    tipodepartamento = sa.Enum("ADMINISTRATIVO", "OPERATIVO", name="tipodepartamento")
    estatustarea = sa.Enum(
        "PENDIENTE",
        "EN_REVISION",
        "CONCLUIDA",
        "CANCELADA",
        name="estatustarea",
    )
    urgencia = sa.Enum("BAJA", "MEDIA", "ALTA", name="urgencia")

    for enum in (rol, estatususuario, tipodepartamento, estatustarea, urgencia):
        enum.create(bind, checkfirst=True)

    op.create_table(
        "departamentos",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("nombre", sa.String(length=120), nullable=False),
        sa.Column("tipo", tipodepartamento, nullable=False),
        sa.Column("es_calidad", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("nombre", name="uq_departamentos_nombre"),
    )

    op.create_table(
        "usuarios",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("nombre", sa.String(length=200), nullable=False),
        sa.Column("username", sa.String(length=100), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("rol", rol, nullable=False),
        sa.Column("departamento_id", sa.Integer(), sa.ForeignKey("departamentos.id"), nullable=True),
        sa.Column("estatus", estatususuario, nullable=False),
        sa.Column("fecha_creacion", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("username", name="uq_usuarios_username"),
    )
    op.create_index("idx_usuarios_departamento", "usuarios", ["departamento_id", "estatus"])

    op.create_table(
        "tareas",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tarea", sa.String(length=500), nullable=False),
        sa.Column("observaciones", sa.Text(), nullable=True),
        sa.Column("estatus", estatustarea, nullable=False),
        sa.Column("urgencia", urgencia, nullable=False),
        sa.Column("departamento_id", sa.Integer(), sa.ForeignKey("departamentos.id"), nullable=False),
        sa.Column("asignador_id", sa.Integer(), sa.ForeignKey("usuarios.id"), nullable=False),
        sa.Column("fecha_registro", sa.DateTime(timezone=True), nullable=False),
        sa.Column("fecha_limite", sa.DateTime(timezone=True), nullable=False),
        sa.Column("fecha_conclusion", sa.DateTime(timezone=True), nullable=True),
        sa.Column("fecha_entrega", sa.DateTime(timezone=True), nullable=True),
        sa.Column("fecha_revision", sa.DateTime(timezone=True), nullable=True),
        sa.Column("comentario_entrega", sa.Text(), nullable=True),
        sa.Column("feedback_revision", sa.Text(), nullable=True),
    )
    op.create_index("idx_tareas_departamento_estatus", "tareas", ["departamento_id", "estatus"])
    op.create_index("idx_tareas_asignador", "tareas", ["asignador_id"])
    op.create_index("idx_tareas_fecha_limite", "tareas", ["estatus", "fecha_limite"])

    op.create_table(
        "responsables_tarea",
        sa.Column(
            "tarea_id",
            sa.Integer(),
            sa.ForeignKey("tareas.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("usuario_id", sa.Integer(), sa.ForeignKey("usuarios.id"), primary_key=True),
    )
    op.create_index("idx_responsables_usuario", "responsables_tarea", ["usuario_id"])

    op.create_table(
        "historial_fechas",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "tarea_id",
            sa.Integer(),
            sa.ForeignKey("tareas.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("fecha_anterior", sa.DateTime(timezone=True), nullable=False),
        sa.Column("nueva_fecha", sa.DateTime(timezone=True), nullable=False),
        sa.Column("motivo", sa.Text(), nullable=True),
        sa.Column("modificado_por_id", sa.Integer(), sa.ForeignKey("usuarios.id"), nullable=False),
        sa.Column("fecha_cambio", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_historial_tarea", "historial_fechas", ["tarea_id", "fecha_cambio"])

    op.create_table(
        "imagenes_tarea",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "tarea_id",
            sa.Integer(),
            sa.ForeignKey("tareas.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("url", sa.String(length=1000), nullable=False),
        sa.Column("fecha_subida", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_imagenes_tarea", "imagenes_tarea", ["tarea_id"])

    op.create_table(
        "bitacora",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("accion", sa.String(length=100), nullable=False),
        sa.Column("descripcion", sa.Text(), nullable=False),
        sa.Column("usuario_id", sa.Integer(), sa.ForeignKey("usuarios.id"), nullable=True),
        sa.Column("detalles", postgresql.JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("fecha", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_bitacora_fecha", "bitacora", ["fecha"])
    op.create_index("idx_bitacora_accion", "bitacora", ["accion", "fecha"])

    op.create_table(
        "push_subscriptions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("usuario_id", sa.Integer(), sa.ForeignKey("usuarios.id"), nullable=False),
        sa.Column("endpoint", sa.String(length=1000), nullable=False),
        sa.Column("p256dh", sa.String(length=255), nullable=False),
        sa.Column("auth", sa.String(length=255), nullable=False),
        sa.Column("fecha_creacion", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("endpoint", name="uq_push_subscriptions_endpoint"),
    )
    op.create_index("idx_push_usuario", "push_subscriptions", ["usuario_id"])


def downgrade() -> None:
    """Drop tables and enums."""
    for index, table in (
        ("idx_push_usuario", "push_subscriptions"),
        ("idx_bitacora_accion", "bitacora"),
        ("idx_bitacora_fecha", "bitacora"),
        ("idx_imagenes_tarea", "imagenes_tarea"),
        ("idx_historial_tarea", "historial_fechas"),
        ("idx_responsables_usuario", "responsables_tarea"),
        ("idx_tareas_fecha_limite", "tareas"),
        ("idx_tareas_asignador", "tareas"),
        ("idx_tareas_departamento_estatus", "tareas"),
        ("idx_usuarios_departamento", "usuarios"),
    ):
        op.drop_index(index, table_name=table)

    for table in (
        "push_subscriptions",
        "bitacora",
        "imagenes_tarea",
        "historial_fechas",
        "responsables_tarea",
        "tareas",
        "usuarios",
        "departamentos",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for name in ("urgencia", "estatustarea", "tipodepartamento", "estatususuario", "rol"):
        sa.Enum(name=name).drop(bind, checkfirst=True)
