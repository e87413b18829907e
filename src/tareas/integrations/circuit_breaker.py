"""Circuit breaker guarding outbound calls (push relay, object storage)."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from tareas.config import settings
from tareas.observability.metrics import metrics
from tareas.utils.time import utc_now

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """Circuit breaker configuration."""

    failure_threshold: int = 5
    timeout_seconds: int = 60
    half_open_max_calls: int = 3
    success_threshold: int = 2
    # Errors that say nothing about the remote's health (e.g. a dead push
    # registration) pass through without counting as failures.
    ignored_exceptions: tuple[type[BaseException], ...] = ()

    @classmethod
    def from_settings(cls, ignored_exceptions: tuple[type[BaseException], ...] = ()) -> "CircuitBreakerConfig":
        return cls(
            failure_threshold=settings.circuit_breaker_failure_threshold,
            timeout_seconds=settings.circuit_breaker_timeout_seconds,
            half_open_max_calls=settings.circuit_breaker_half_open_max_calls,
            success_threshold=settings.circuit_breaker_success_threshold,
            ignored_exceptions=ignored_exceptions,
        )


class CircuitBreakerOpen(Exception):
    """Raised instead of calling a remote that is considered down."""

    def __init__(self, service_name: str, retry_after: int):
        self.service_name = service_name
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker open for {service_name}, retry after {retry_after}s")


class CircuitBreaker:
    """
    Fail fast against a remote that keeps failing.

    CLOSED opens after ``failure_threshold`` consecutive failures. OPEN
    rejects calls until ``timeout_seconds`` have passed, then lets up to
    ``half_open_max_calls`` probes through. ``success_threshold`` probe
    successes close it again; any probe failure reopens it.
    """

    def __init__(self, name: str, config: CircuitBreakerConfig):
        self.name = name
        self.config = config
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._half_open_calls = 0
        self._opened_at: Optional[datetime] = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    def snapshot(self) -> dict[str, Any]:
        """State for health output."""
        return {
            "state": self._state.value,
            "failures": self._failures,
            "opened_at": self._opened_at.isoformat() if self._opened_at else None,
        }

    async def call(self, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        """Run ``func`` unless the circuit is open."""
        async with self._lock:
            if self._state == CircuitState.OPEN:
                if self._retry_after() > 0:
                    metrics.inc_counter(f"circuit.{self.name}.rejected")
                    raise CircuitBreakerOpen(self.name, self._retry_after())
                self._enter(CircuitState.HALF_OPEN)

            if self._state == CircuitState.HALF_OPEN:
                if self._half_open_calls >= self.config.half_open_max_calls:
                    raise CircuitBreakerOpen(self.name, self.config.timeout_seconds)
                self._half_open_calls += 1

        try:
            result = await func(*args, **kwargs)
        except self.config.ignored_exceptions:
            await self._record(success=True)
            raise
        except Exception as exc:
            logger.warning(f"Circuit {self.name} call failed: {exc}")
            await self._record(success=False)
            raise

        await self._record(success=True)
        return result

    async def reset(self) -> None:
        async with self._lock:
            self._enter(CircuitState.CLOSED)

    async def _record(self, success: bool) -> None:
        async with self._lock:
            if success:
                self._failures = 0
                self._successes += 1
                if (
                    self._state == CircuitState.HALF_OPEN
                    and self._successes >= self.config.success_threshold
                ):
                    self._enter(CircuitState.CLOSED)
                return

            self._successes = 0
            self._failures += 1
            if self._state == CircuitState.HALF_OPEN or (
                self._failures >= self.config.failure_threshold
            ):
                self._enter(CircuitState.OPEN)

    def _enter(self, state: CircuitState) -> None:
        previous = self._state
        self._state = state
        self._half_open_calls = 0
        self._successes = 0
        if state == CircuitState.OPEN:
            self._opened_at = utc_now()
            metrics.inc_counter(f"circuit.{self.name}.opened")
            logger.error(f"Circuit {self.name} opened after {self._failures} failures")
        elif state == CircuitState.CLOSED:
            self._failures = 0
            self._opened_at = None
            if previous != CircuitState.CLOSED:
                logger.info(f"Circuit {self.name} closed")
        else:
            logger.info(f"Circuit {self.name} half-open")

    def _retry_after(self) -> int:
        if self._opened_at is None:
            return 0
        elapsed = (utc_now() - self._opened_at).total_seconds()
        return max(0, int(self.config.timeout_seconds - elapsed))


def build_breaker(
    name: str, ignored_exceptions: tuple[type[BaseException], ...] = ()
) -> Optional[CircuitBreaker]:
    """Breaker from settings, or None when disabled."""
    if not settings.circuit_breaker_enabled:
        logger.info(f"Circuit breaker disabled for {name}")
        return None
    return CircuitBreaker(name, CircuitBreakerConfig.from_settings(ignored_exceptions))
