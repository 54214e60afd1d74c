"""Subscriber bookkeeping shared by the event sources.

A subscriber that raises is logged and skipped: one failing consumer must not
interrupt the live stream for the others.
"""

from __future__ import annotations

import threading

import structlog

from core.domain.models import PaymentEvent
from core.interfaces.event_source import EventCallback

logger = structlog.get_logger(__name__)


class CallbackSubscription:
    """`core.interfaces.event_source.Subscription` backed by a registry.

    Delivery and cancellation share a reentrant lock: `cancel` waits for an
    in-flight callback on another thread, and a callback may cancel itself.
    """

    def __init__(self, registry: "SubscriberRegistry", callback: EventCallback) -> None:
        self._registry = registry
        self.callback = callback
        self._active = True
        self._delivery_lock = threading.RLock()

    @property
    def active(self) -> bool:
        return self._active

    def deliver(self, event: PaymentEvent) -> bool:
        """Run the callback unless cancelled; returns whether it ran."""

        with self._delivery_lock:
            if not self._active:
                return False
            self.callback(event)
            return True

    def cancel(self) -> None:
        with self._delivery_lock:
            if not self._active:
                return
            self._active = False
        self._registry.remove(self)


class SubscriberRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: list[CallbackSubscription] = []

    def add(self, callback: EventCallback) -> CallbackSubscription:
        subscription = CallbackSubscription(self, callback)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def remove(self, subscription: CallbackSubscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    @property
    def has_active(self) -> bool:
        with self._lock:
            return bool(self._subscriptions)

    def dispatch(self, event: PaymentEvent) -> int:
        """Deliver `event` to every active subscriber; returns deliveries made."""

        with self._lock:
            targets = list(self._subscriptions)
        delivered = 0
        for subscription in targets:
            try:
                if subscription.deliver(event):
                    delivered += 1
            except Exception:
                logger.exception("subscriber_failed", callback=repr(subscription.callback))
        return delivered
