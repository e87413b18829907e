"""Tareas authentication module."""

from tareas.auth.context import resolve_principal
from tareas.auth.passwords import hash_password, verify_password
from tareas.auth.token import create_access_token, decode_access_token

__all__ = [
    "create_access_token",
    "decode_access_token",
    "hash_password",
    "resolve_principal",
    "verify_password",
]
