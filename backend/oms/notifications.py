# Overview: Publish-only notification bus used for post-commit events.

"""
Notification bus.

The lifecycle services never reach for process-global state to announce
changes. They receive a NotificationBus and call publish(event, payload).
Delivery is fire-and-forget: a bus with no subscribers is not an error.

Implementations:
- SignalNotificationBus: one blinker signal per event name (production)
- NullNotificationBus: drops everything
"""

from __future__ import annotations

import logging
from typing import Protocol

from flask import current_app

from .extensions import order_signals

logger = logging.getLogger(__name__)

EVENT_INVENTORY_UPDATED = "inventory-updated"
EVENT_INVENTORY_STOCK_UPDATED = "inventory-stock-updated"
EVENT_INVOICE_CREATED = "invoice-created"
EVENT_INVOICE_STATUS_UPDATED = "invoice-status-updated"
EVENT_ORDER_STATUS_UPDATED = "order-status-updated"

EXTENSION_KEY = "oms.notifications"


class NotificationBus(Protocol):
    def publish(self, event: str, payload: dict) -> None: ...


class NullNotificationBus:
    def publish(self, event: str, payload: dict) -> None:
        return None


class SignalNotificationBus:
    """Fan out events to blinker signals named after the event."""

    def signal(self, event: str):
        return order_signals.signal(event)

    def publish(self, event: str, payload: dict) -> None:
        sig = self.signal(event)
        if not sig.receivers:
            logger.debug("No subscribers for %s", event)
            return
        try:
            sig.send(self, payload=payload)
        except Exception:
            # receivers are best-effort
            logger.exception("Notification subscriber failed for %s", event)


def init_notifications(app, bus: NotificationBus | None = None) -> None:
    app.extensions[EXTENSION_KEY] = bus or SignalNotificationBus()


def get_notification_bus() -> NotificationBus:
    return current_app.extensions.get(EXTENSION_KEY) or NullNotificationBus()


def publish_all(bus: NotificationBus, events: list[tuple[str, dict]]) -> None:
    """Publish queued (event, payload) pairs, swallowing bus failures."""
    for event, payload in events:
        try:
            bus.publish(event, payload)
        except Exception:
            logger.exception("Failed to publish %s", event)
