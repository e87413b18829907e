"""External service integrations and resilience patterns."""

from tareas.integrations.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerOpen,
    CircuitState,
    build_breaker,
)
from tareas.integrations.storage import HttpObjectStorage, ObjectStorage, build_storage

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerOpen",
    "CircuitState",
    "HttpObjectStorage",
    "ObjectStorage",
    "build_breaker",
    "build_storage",
]
