"""Bearer token helpers.

Tokens are issued by the login service; this service only verifies them.
``create_access_token`` exists for seeding and tests.
"""

from datetime import timedelta
from typing import Any, Optional

from jose import ExpiredSignatureError, JWTError, jwt

from tareas.config import settings
from tareas.engine.errors import AuthenticationError
from tareas.models import Rol
from tareas.utils.time import utc_now


def create_access_token(
    usuario_id: int,
    rol: Rol,
    departamento_id: Optional[int] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """Sign a token carrying the caller's id, role and department."""
    now = utc_now()
    minutes = expires_minutes if expires_minutes is not None else settings.jwt_expires_minutes
    claims = {
        "sub": str(usuario_id),
        "id": usuario_id,
        "rol": rol.value,
        "departamentoId": departamento_id,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=minutes)).timestamp()),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """Verify signature and expiry, returning the claims."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"verify_aud": False},
        )
    except ExpiredSignatureError as exc:
        raise AuthenticationError("Token expirado") from exc
    except JWTError as exc:
        raise AuthenticationError("Token inválido") from exc

    subject = payload.get("id", payload.get("sub"))
    try:
        payload["id"] = int(subject)
    except (TypeError, ValueError) as exc:
        raise AuthenticationError("Token sin identificador de usuario") from exc
    return payload


def bearer_token(authorization: Optional[str]) -> str:
    """Extract the token from an ``Authorization: Bearer`` header."""
    if not authorization:
        raise AuthenticationError("Token no proporcionado")
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        raise AuthenticationError("Formato de token inválido")
    return parts[1].strip()
