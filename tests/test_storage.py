"""Tests for image references and best-effort storage cleanup."""

from datetime import date

import pytest

from tareas.db.repositories import BitacoraRepository
from tareas.engine.core import TareasEngine
from tareas.engine.errors import NotFound, PermissionDenied, ValidationError
from tareas.models import AccionBitacora, LimpiezaAlmacenamiento

URL = "https://res.example.com/demo/image/upload/v1717000000/tareas/evidencia_01.jpg"


def test_public_id_from_versioned_url(storage):
    assert storage.public_id_from_url(URL) == "tareas/evidencia_01"
    assert storage.public_id_from_url("https://elsewhere.example/foto.jpg") is None


@pytest.mark.asyncio
async def test_remove_image_outcomes(storage_factory):
    assert await storage_factory().remove_image(URL) == LimpiezaAlmacenamiento.ELIMINADA
    assert await storage_factory(fail=True).remove_image(URL) == LimpiezaAlmacenamiento.FALLIDA
    assert (
        await storage_factory().remove_image("https://elsewhere.example/foto.jpg")
        == LimpiezaAlmacenamiento.SIN_REFERENCIA
    )


async def _tarea_con_imagen(engine, org):
    tarea = await engine.crear(
        org.admin, "Fotos de vitrina", org.ventas.id, date(2030, 5, 1), [org.usuario.id]
    )
    return await engine.subir_imagenes(org.admin, tarea.id, [URL])


@pytest.mark.asyncio
async def test_upload_attaches_images_without_notifying(engine, org, notifier):
    tarea = await _tarea_con_imagen(engine, org)
    notifier.clear()

    tarea = await engine.subir_imagenes(org.encargado, tarea.id, [URL, ""])

    assert len(tarea.imagenes) == 2
    assert notifier.intents == []


@pytest.mark.asyncio
async def test_upload_requires_urls_and_department(engine, org):
    tarea = await _tarea_con_imagen(engine, org)

    with pytest.raises(ValidationError):
        await engine.subir_imagenes(org.admin, tarea.id, [])
    with pytest.raises(PermissionDenied):
        await engine.subir_imagenes(org.usuario, tarea.id, [URL])


@pytest.mark.asyncio
async def test_delete_image_removes_stored_object(engine, org, storage, session):
    tarea = await _tarea_con_imagen(engine, org)

    resultado = await engine.eliminar_imagen(org.admin, tarea.imagenes[0].id)

    assert resultado == LimpiezaAlmacenamiento.ELIMINADA
    assert storage.deleted == ["tareas/evidencia_01"]
    assert (await engine._get_tarea(tarea.id)).imagenes == []
    entrada = (await BitacoraRepository(session).latest(1))[0]
    assert entrada.accion == AccionBitacora.ELIMINAR_IMAGEN.value
    assert entrada.detalles["almacenamiento"] == "ELIMINADA"


@pytest.mark.asyncio
async def test_storage_failure_still_deletes_row(session, notifier, org, storage_factory):
    engine = TareasEngine(session, notifier=notifier, storage=storage_factory(fail=True))
    tarea = await _tarea_con_imagen(engine, org)

    resultado = await engine.eliminar_imagen(org.admin, tarea.imagenes[0].id)

    assert resultado == LimpiezaAlmacenamiento.FALLIDA
    assert (await engine._get_tarea(tarea.id)).imagenes == []
    entrada = (await BitacoraRepository(session).latest(1))[0]
    assert entrada.detalles["almacenamiento"] == "FALLIDA"


@pytest.mark.asyncio
async def test_delete_image_guards(engine, org):
    tarea = await _tarea_con_imagen(engine, org)

    with pytest.raises(NotFound):
        await engine.eliminar_imagen(org.admin, 9999)
    # ENCARGADO may only remove images from tasks they created
    with pytest.raises(PermissionDenied):
        await engine.eliminar_imagen(org.encargado, tarea.imagenes[0].id)
