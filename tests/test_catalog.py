"""Catalog tests: departments, user provisioning, push registrations and the log view."""

from datetime import date

import pytest

from tareas.auth.passwords import verify_password
from tareas.db.tables import UsuarioTable
from tareas.engine.catalog import CatalogService
from tareas.engine.errors import Conflict, NotFound, PermissionDenied, ValidationError
from tareas.models import EstatusUsuario, Rol, TipoDepartamento


@pytest.fixture
def catalog(session):
    return CatalogService(session)


@pytest.mark.asyncio
async def test_departments_super_admin_only(catalog, org):
    creado = await catalog.crear_departamento(
        org.super_admin, "  LOGÍSTICA ", TipoDepartamento.OPERATIVO
    )
    assert creado.nombre == "LOGÍSTICA"

    with pytest.raises(PermissionDenied):
        await catalog.crear_departamento(org.admin, "COMPRAS")
    with pytest.raises(Conflict):
        await catalog.crear_departamento(org.super_admin, "VENTAS")


@pytest.mark.asyncio
async def test_update_department_flags_quality(catalog, org):
    actualizado = await catalog.actualizar_departamento(
        org.super_admin, org.operaciones.id, es_calidad=True
    )

    assert actualizado.es_calidad is True
    assert actualizado.nombre == "OPERACIONES"
    with pytest.raises(NotFound):
        await catalog.actualizar_departamento(org.super_admin, 9999, nombre="X")


@pytest.mark.asyncio
async def test_list_departments_sorted(catalog, org):
    nombres = [d.nombre for d in await catalog.listar_departamentos()]

    assert nombres == sorted(nombres)
    assert len(nombres) == 3


@pytest.mark.asyncio
async def test_admin_creates_user_in_own_department(catalog, org, session):
    usuario = await catalog.crear_usuario(
        org.admin,
        nombre="Nuevo Vendedor",
        username="nuevo",
        password="secreto123",
        rol=Rol.USUARIO,
        departamento_id=org.operaciones.id,
    )

    assert usuario.departamento_id == org.ventas.id
    row = await session.get(UsuarioTable, usuario.id)
    assert row.password_hash != "secreto123"
    assert verify_password("secreto123", row.password_hash)


@pytest.mark.asyncio
async def test_admin_cannot_create_admins(catalog, org):
    with pytest.raises(PermissionDenied):
        await catalog.crear_usuario(
            org.admin, nombre="Otro", username="otro", password="secreto123", rol=Rol.ADMIN
        )
    with pytest.raises(PermissionDenied):
        await catalog.crear_usuario(
            org.encargado, nombre="Otro", username="otro", password="secreto123", rol=Rol.USUARIO
        )


@pytest.mark.asyncio
async def test_departmentless_roles(catalog, org):
    invitado = await catalog.crear_usuario(
        org.super_admin,
        nombre="Consultor",
        username="consultor",
        password="secreto123",
        rol=Rol.INVITADO,
        departamento_id=org.ventas.id,
    )
    assert invitado.departamento_id is None

    with pytest.raises(ValidationError):
        await catalog.crear_usuario(
            org.super_admin, nombre="Sin", username="sin", password="secreto123", rol=Rol.ENCARGADO
        )
    with pytest.raises(NotFound):
        await catalog.crear_usuario(
            org.super_admin,
            nombre="Sin",
            username="sin",
            password="secreto123",
            rol=Rol.ENCARGADO,
            departamento_id=9999,
        )


@pytest.mark.asyncio
async def test_user_validation(catalog, org):
    with pytest.raises(ValidationError):
        await catalog.crear_usuario(
            org.admin, nombre="Corta", username="corta", password="123", rol=Rol.USUARIO
        )
    with pytest.raises(Conflict):
        await catalog.crear_usuario(
            org.admin, nombre="Dup", username="usuario", password="secreto123", rol=Rol.USUARIO
        )


@pytest.mark.asyncio
async def test_list_users_scoped_to_department(catalog, org):
    propios = await catalog.listar_usuarios(org.admin, departamento_id=org.operaciones.id)
    assert {u.departamento_id for u in propios} == {org.ventas.id}

    activos = await catalog.listar_usuarios(org.encargado, estatus=EstatusUsuario.ACTIVO)
    assert org.inactivo.id not in {u.id for u in activos}

    todos = await catalog.listar_usuarios(org.super_admin)
    assert len(todos) == len(org.users)

    with pytest.raises(PermissionDenied):
        await catalog.listar_usuarios(org.usuario)


@pytest.mark.asyncio
async def test_status_changes(catalog, org):
    baja = await catalog.cambiar_estatus_usuario(org.admin, org.usuario.id, EstatusUsuario.INACTIVO)
    assert baja.estatus == EstatusUsuario.INACTIVO

    with pytest.raises(PermissionDenied):
        await catalog.cambiar_estatus_usuario(org.admin, org.admin.id, EstatusUsuario.INACTIVO)
    with pytest.raises(PermissionDenied):
        await catalog.cambiar_estatus_usuario(
            org.admin, org.usuario_ops.id, EstatusUsuario.INACTIVO
        )
    with pytest.raises(PermissionDenied):
        await catalog.cambiar_estatus_usuario(
            org.admin, org.super_admin.id, EstatusUsuario.INACTIVO
        )
    with pytest.raises(NotFound):
        await catalog.cambiar_estatus_usuario(org.super_admin, 9999, EstatusUsuario.ACTIVO)

    reactivado = await catalog.cambiar_estatus_usuario(
        org.super_admin, org.inactivo.id, EstatusUsuario.ACTIVO
    )
    assert reactivado.is_active


@pytest.mark.asyncio
async def test_subscribe_own_account_only(catalog, org):
    suscripcion = await catalog.suscribir(
        org.usuario, org.usuario.id, "https://push.example/u", "key", "auth"
    )
    assert suscripcion.usuario_id == org.usuario.id

    with pytest.raises(PermissionDenied):
        await catalog.suscribir(org.usuario, org.usuario2.id, "https://push.example/x", "k", "a")
    with pytest.raises(ValidationError):
        await catalog.suscribir(org.usuario, org.usuario.id, "", "k", "a")


@pytest.mark.asyncio
async def test_log_view_super_admin_only(catalog, engine, org):
    await engine.crear(org.admin, "Tarea auditada", org.ventas.id, date(2030, 1, 1), [org.usuario.id])

    entradas = await catalog.bitacora_reciente(org.super_admin)
    assert entradas[0].accion == "CREAR_TAREA"
    assert entradas[0].usuario_nombre == "Andrés Gerente"

    with pytest.raises(PermissionDenied):
        await catalog.bitacora_reciente(org.admin)
