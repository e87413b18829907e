#!/usr/bin/env python3
"""Bootstrap a fresh database: departments, a SUPER_ADMIN account and a token for it."""

from __future__ import annotations

import asyncio
import os
import sys

from tareas.auth.passwords import hash_password
from tareas.auth.token import create_access_token
from tareas.db.base import async_session_factory, close_db, init_db
from tareas.db.repositories import DepartamentoRepository, UsuarioRepository
from tareas.engine.errors import Conflict
from tareas.models import Rol, TipoDepartamento
from tareas.utils.time import utc_now

DEPARTAMENTOS = [
    ("DIRECCIÓN", TipoDepartamento.ADMINISTRATIVO, False),
    ("CALIDAD", TipoDepartamento.ADMINISTRATIVO, True),
    ("RECURSOS HUMANOS", TipoDepartamento.ADMINISTRATIVO, False),
    ("OPERACIONES", TipoDepartamento.OPERATIVO, False),
]


def _env(name: str, default: str | None = None) -> str | None:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value


async def seed() -> int:
    await init_db()
    username = _env("SEED_ADMIN_USERNAME", "admin")
    password = _env("SEED_ADMIN_PASSWORD")
    if not password:
        print("SEED_ADMIN_PASSWORD is required", file=sys.stderr)
        return 1

    async with async_session_factory() as session:
        departamentos = DepartamentoRepository(session)
        existentes = {d.nombre for d in await departamentos.list_all()}
        for nombre, tipo, es_calidad in DEPARTAMENTOS:
            if nombre not in existentes:
                await departamentos.create(nombre, tipo, es_calidad)
                print(f"department: {nombre}")
        await session.commit()

        usuarios = UsuarioRepository(session)
        admin = await usuarios.get_by_username(username)
        if admin is None:
            try:
                admin = await usuarios.create(
                    nombre=_env("SEED_ADMIN_NAME", "Administrador"),
                    username=username,
                    password_hash=hash_password(password),
                    rol=Rol.SUPER_ADMIN,
                    departamento_id=None,
                    now=utc_now(),
                )
            except Conflict as exc:
                print(str(exc), file=sys.stderr)
                return 1
            await session.commit()
            print(f"user: {admin.username} ({admin.rol.value})")

    print(f"token: {create_access_token(admin.id, admin.rol)}")
    await close_db()
    return 0


def main() -> int:
    return asyncio.run(seed())


if __name__ == "__main__":
    raise SystemExit(main())
