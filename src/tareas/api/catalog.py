"""REST API router - departments, users, push registrations, logs and health."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from tareas import __version__
from tareas.api.deps import get_catalog, get_principal, require_roles
from tareas.api.schemas import (
    ActualizarDepartamentoRequest,
    BitacoraSchema,
    CrearDepartamentoRequest,
    CrearUsuarioRequest,
    DepartamentoSchema,
    EstatusUsuarioRequest,
    HealthResponse,
    SuscripcionRequest,
    SuscripcionResponse,
    UsuarioSchema,
)
from tareas.engine.catalog import CatalogService
from tareas.models import EstatusUsuario, Principal, Rol

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(status="healthy", version=__version__)


# ============================================================================
# Departments
# ============================================================================


@router.get("/departamentos", response_model=list[DepartamentoSchema])
async def list_departamentos(
    principal: Principal = Depends(get_principal),
    catalog: CatalogService = Depends(get_catalog),
):
    return [DepartamentoSchema.model_validate(d) for d in await catalog.listar_departamentos()]


@router.post("/departamentos", response_model=DepartamentoSchema, status_code=201)
async def create_departamento(
    request: CrearDepartamentoRequest,
    principal: Principal = Depends(require_roles(Rol.SUPER_ADMIN)),
    catalog: CatalogService = Depends(get_catalog),
):
    departamento = await catalog.crear_departamento(
        principal, request.nombre, request.tipo, request.es_calidad
    )
    return DepartamentoSchema.model_validate(departamento)


@router.put("/departamentos/{departamento_id}", response_model=DepartamentoSchema)
async def update_departamento(
    departamento_id: int,
    request: ActualizarDepartamentoRequest,
    principal: Principal = Depends(require_roles(Rol.SUPER_ADMIN)),
    catalog: CatalogService = Depends(get_catalog),
):
    departamento = await catalog.actualizar_departamento(
        principal,
        departamento_id,
        nombre=request.nombre,
        tipo=request.tipo,
        es_calidad=request.es_calidad,
    )
    return DepartamentoSchema.model_validate(departamento)


# ============================================================================
# Users
# ============================================================================


@router.get("/usuarios", response_model=list[UsuarioSchema])
async def list_usuarios(
    departamento_id: Optional[int] = Query(None, alias="departamentoId"),
    estatus: Optional[EstatusUsuario] = Query(None),
    principal: Principal = Depends(require_roles(Rol.SUPER_ADMIN, Rol.ADMIN, Rol.ENCARGADO)),
    catalog: CatalogService = Depends(get_catalog),
):
    """Candidates for assignment; non-SUPER_ADMIN callers only see their department."""
    usuarios = await catalog.listar_usuarios(principal, departamento_id, estatus)
    return [UsuarioSchema.model_validate(u) for u in usuarios]


@router.post("/usuarios", response_model=UsuarioSchema, status_code=201)
async def create_usuario(
    request: CrearUsuarioRequest,
    principal: Principal = Depends(require_roles(Rol.SUPER_ADMIN, Rol.ADMIN)),
    catalog: CatalogService = Depends(get_catalog),
):
    usuario = await catalog.crear_usuario(
        principal,
        nombre=request.nombre,
        username=request.username,
        password=request.password,
        rol=request.rol,
        departamento_id=request.departamento_id,
    )
    return UsuarioSchema.model_validate(usuario)


@router.put("/usuarios/{usuario_id}/estatus", response_model=UsuarioSchema)
async def set_usuario_estatus(
    usuario_id: int,
    request: EstatusUsuarioRequest,
    principal: Principal = Depends(require_roles(Rol.SUPER_ADMIN, Rol.ADMIN)),
    catalog: CatalogService = Depends(get_catalog),
):
    usuario = await catalog.cambiar_estatus_usuario(principal, usuario_id, request.estatus)
    return UsuarioSchema.model_validate(usuario)


@router.post("/usuarios/{usuario_id}/subscribe", response_model=SuscripcionResponse, status_code=201)
async def subscribe_push(
    usuario_id: int,
    request: SuscripcionRequest,
    principal: Principal = Depends(get_principal),
    catalog: CatalogService = Depends(get_catalog),
):
    """Register the browser push endpoint for the caller's own account."""
    suscripcion = await catalog.suscribir(
        principal,
        usuario_id,
        endpoint=request.endpoint,
        p256dh=request.keys.p256dh,
        auth=request.keys.auth,
    )
    return SuscripcionResponse.model_validate(suscripcion)


# ============================================================================
# Audit log
# ============================================================================


@router.get("/logs", response_model=list[BitacoraSchema])
async def list_logs(
    principal: Principal = Depends(require_roles(Rol.SUPER_ADMIN)),
    catalog: CatalogService = Depends(get_catalog),
):
    return [BitacoraSchema.model_validate(e) for e in await catalog.bitacora_reciente(principal)]
