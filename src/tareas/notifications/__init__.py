"""Push notification delivery."""

from tareas.notifications.dispatcher import DeliveryReport, NotificationDispatcher
from tareas.notifications.transport import (
    NullPushTransport,
    PushDeliveryError,
    PushSubscriptionGone,
    PushTransport,
    RelayPushTransport,
    build_transport,
)

__all__ = [
    "DeliveryReport",
    "NotificationDispatcher",
    "NullPushTransport",
    "PushDeliveryError",
    "PushSubscriptionGone",
    "PushTransport",
    "RelayPushTransport",
    "build_transport",
]
