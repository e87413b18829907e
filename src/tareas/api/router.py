"""REST API router - task endpoints."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from tareas.api.deps import get_engine, get_principal, require_manager
from tareas.api.schemas import (
    CrearTareaRequest,
    EditarTareaRequest,
    EliminarImagenResponse,
    EntregarTareaRequest,
    HistorialFechaSchema,
    HistorialRequest,
    ListTareasResponse,
    RevisionTareaRequest,
    SubirImagenesRequest,
    TareaDetalleResponse,
    TareaResponse,
)
from tareas.engine.core import TareasEngine
from tareas.engine.visibility import TareaFiltros
from tareas.models import (
    EstatusTarea,
    Principal,
    SortField,
    SortOrder,
    TareaCambios,
    TiempoFilter,
    Urgencia,
    ViewType,
)

router = APIRouter(prefix="/tareas", tags=["tareas"])


# ============================================================================
# Reads
# ============================================================================


@router.get("", response_model=ListTareasResponse)
async def list_tareas(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    sort_by: Optional[SortField] = Query(None, alias="sortBy"),
    order: SortOrder = Query(SortOrder.DESC),
    departamento_id: Optional[int] = Query(None, alias="departamentoId"),
    asignador_id: Optional[int] = Query(None, alias="asignadorId"),
    responsable_id: Optional[int] = Query(None, alias="responsableId"),
    estatus: Optional[EstatusTarea] = Query(None),
    urgencia: Optional[Urgencia] = Query(None),
    fecha_inicio: Optional[datetime] = Query(None, alias="fechaInicio"),
    fecha_fin: Optional[datetime] = Query(None, alias="fechaFin"),
    query: Optional[str] = Query(None),
    view_type: Optional[ViewType] = Query(None, alias="viewType"),
    tiempo_filter: Optional[TiempoFilter] = Query(None, alias="tiempoFilter"),
    principal: Principal = Depends(get_principal),
    engine: TareasEngine = Depends(get_engine),
):
    """List visible tasks with pagination meta and a summary over the same filter."""
    filtros = TareaFiltros(
        departamento_id=departamento_id,
        asignador_id=asignador_id,
        responsable_id=responsable_id,
        estatus=estatus,
        urgencia=urgencia,
        fecha_inicio=fecha_inicio,
        fecha_fin=fecha_fin,
        query=query,
        view_type=view_type,
        tiempo_filter=tiempo_filter,
    )
    result = await engine.listar(
        principal, filtros, page=page, limit=limit, sort_by=sort_by, order=order
    )
    return ListTareasResponse(
        data=[TareaResponse.model_validate(t) for t in result["data"]],
        pagination=result["pagination"],
        resumen=result["resumen"],
    )


@router.get("/kpis")
async def get_kpis(
    mes: Optional[int] = Query(None, ge=1, le=12),
    anio: Optional[int] = Query(None, ge=2000, le=2100),
    departamento_id: Optional[int] = Query(None, alias="departamentoId"),
    principal: Principal = Depends(get_principal),
    engine: TareasEngine = Depends(get_engine),
):
    """On-time KPIs, grouped per department (unscoped SUPER_ADMIN) or per responsible."""
    return await engine.kpis(principal, mes=mes, anio=anio, departamento_id=departamento_id)


@router.get("/{tarea_id}", response_model=TareaDetalleResponse)
async def get_tarea(
    tarea_id: int,
    principal: Principal = Depends(get_principal),
    engine: TareasEngine = Depends(get_engine),
):
    tarea, analisis = await engine.detalle(principal, tarea_id)
    return TareaDetalleResponse.model_validate({**tarea.model_dump(), "analisis": analisis})


# ============================================================================
# Mutations
# ============================================================================


@router.post("", response_model=TareaResponse, status_code=201)
async def create_tarea(
    request: CrearTareaRequest,
    principal: Principal = Depends(require_manager),
    engine: TareasEngine = Depends(get_engine),
):
    tarea = await engine.crear(
        principal,
        tarea=request.tarea,
        departamento_id=request.departamento_id,
        fecha_limite=request.fecha_limite,
        responsables=request.responsables,
        observaciones=request.observaciones,
        urgencia=request.urgencia,
    )
    return TareaResponse.model_validate(tarea)


@router.put("/{tarea_id}", response_model=TareaResponse)
async def edit_tarea(
    tarea_id: int,
    request: EditarTareaRequest,
    principal: Principal = Depends(require_manager),
    engine: TareasEngine = Depends(get_engine),
):
    """Partial edit; fields absent from the body are left untouched."""
    cambios = TareaCambios(**request.model_dump(include=request.model_fields_set))
    tarea = await engine.editar(principal, tarea_id, cambios)
    return TareaResponse.model_validate(tarea)


@router.post("/{tarea_id}/entregar", response_model=TareaResponse)
async def deliver_tarea(
    tarea_id: int,
    request: EntregarTareaRequest,
    principal: Principal = Depends(get_principal),
    engine: TareasEngine = Depends(get_engine),
):
    tarea = await engine.entregar(
        principal, tarea_id, comentario=request.comentario, imagenes=request.imagenes
    )
    return TareaResponse.model_validate(tarea)


@router.post("/{tarea_id}/revision", response_model=TareaResponse)
async def review_tarea(
    tarea_id: int,
    request: RevisionTareaRequest,
    principal: Principal = Depends(require_manager),
    engine: TareasEngine = Depends(get_engine),
):
    tarea = await engine.revisar(
        principal,
        tarea_id,
        decision=request.decision,
        feedback=request.feedback,
        nueva_fecha_limite=request.nueva_fecha_limite,
    )
    return TareaResponse.model_validate(tarea)


@router.patch("/{tarea_id}/complete", response_model=TareaResponse)
async def complete_tarea(
    tarea_id: int,
    principal: Principal = Depends(require_manager),
    engine: TareasEngine = Depends(get_engine),
):
    tarea = await engine.completar(principal, tarea_id)
    return TareaResponse.model_validate(tarea)


@router.patch("/{tarea_id}/cancel", response_model=TareaResponse)
async def cancel_tarea(
    tarea_id: int,
    principal: Principal = Depends(require_manager),
    engine: TareasEngine = Depends(get_engine),
):
    tarea = await engine.cancelar(principal, tarea_id)
    return TareaResponse.model_validate(tarea)


@router.post("/{tarea_id}/historial", response_model=HistorialFechaSchema, status_code=201)
async def add_historial(
    tarea_id: int,
    request: HistorialRequest,
    principal: Principal = Depends(require_manager),
    engine: TareasEngine = Depends(get_engine),
):
    entrada = await engine.agregar_historial(
        principal, tarea_id, nueva_fecha=request.nueva_fecha, motivo=request.motivo
    )
    return HistorialFechaSchema.model_validate(entrada)


@router.post("/{tarea_id}/upload", response_model=TareaResponse)
async def upload_imagenes(
    tarea_id: int,
    request: SubirImagenesRequest,
    principal: Principal = Depends(require_manager),
    engine: TareasEngine = Depends(get_engine),
):
    tarea = await engine.subir_imagenes(principal, tarea_id, request.urls)
    return TareaResponse.model_validate(tarea)


@router.delete("/imagen/{imagen_id}", response_model=EliminarImagenResponse)
async def delete_imagen(
    imagen_id: int,
    principal: Principal = Depends(require_manager),
    engine: TareasEngine = Depends(get_engine),
):
    limpieza = await engine.eliminar_imagen(principal, imagen_id)
    return EliminarImagenResponse(ok=True, almacenamiento=limpieza)
