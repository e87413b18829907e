"""Push transport - hands payloads to the push relay over HTTP."""

import logging
from typing import Any, Optional

import httpx

from tareas.config import settings
from tareas.integrations.circuit_breaker import CircuitBreaker, build_breaker
from tareas.models import SuscripcionPush

logger = logging.getLogger(__name__)

# Push services answer these for registrations that will never work again
GONE_STATUS_CODES = (404, 410)


class PushDeliveryError(Exception):
    """A push could not be delivered."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class PushSubscriptionGone(PushDeliveryError):
    """The registration is permanently invalid and should be deleted."""


class PushTransport:
    """Interface: deliver one payload to one registration."""

    async def send(self, subscription: SuscripcionPush, payload: dict[str, Any]) -> None:
        raise NotImplementedError


class NullPushTransport(PushTransport):
    """Used when no relay is configured; drops payloads."""

    async def send(self, subscription: SuscripcionPush, payload: dict[str, Any]) -> None:
        logger.debug(f"Push relay not configured, dropping push for user {subscription.usuario_id}")


class RelayPushTransport(PushTransport):
    """
    Posts ``{subscription, payload}`` to a web-push relay.

    The relay signs and forwards to the browser push service and mirrors its
    status code, so 404/410 mean the registration is dead.
    """

    def __init__(
        self,
        relay_url: str,
        token: Optional[str],
        timeout: float,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.relay_url = relay_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._breaker = breaker

    async def send(self, subscription: SuscripcionPush, payload: dict[str, Any]) -> None:
        if self._breaker:
            await self._breaker.call(self._post, subscription, payload)
        else:
            await self._post(subscription, payload)

    async def _post(self, subscription: SuscripcionPush, payload: dict[str, Any]) -> None:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        body = {
            "subscription": {"endpoint": subscription.endpoint, "keys": subscription.keys()},
            "payload": payload,
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(f"{self.relay_url}/send", json=body, headers=headers)

        if response.status_code in GONE_STATUS_CODES:
            raise PushSubscriptionGone(
                f"Push registration gone ({response.status_code})", response.status_code
            )
        if response.status_code >= 400:
            raise PushDeliveryError(
                f"Push relay returned {response.status_code}", response.status_code
            )


def build_transport() -> PushTransport:
    """Transport from settings."""
    if not settings.push_relay_url:
        logger.info("Push relay not configured, notifications will be dropped")
        return NullPushTransport()
    return RelayPushTransport(
        relay_url=settings.push_relay_url,
        token=settings.push_relay_token,
        timeout=settings.http_timeout_seconds,
        breaker=build_breaker("push", ignored_exceptions=(PushSubscriptionGone,)),
    )
