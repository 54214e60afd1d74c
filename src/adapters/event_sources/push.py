"""Push-based event source (production path).

A webhook handler (or any producer) calls `publish` / `publish_payload`; the
source fans events out to its subscribers. Publishing is serialized, so events
pushed by the same originator reach subscribers in the order they were pushed.
"""

from __future__ import annotations

import threading
from typing import Any

import structlog
from pydantic import ValidationError

from adapters.event_sources.subscriptions import SubscriberRegistry
from core.domain.models import PaymentEvent
from core.interfaces.event_source import EventCallback, Subscription

logger = structlog.get_logger(__name__)


class PushEventSource:
    """Fan-out of pushed payment events."""

    def __init__(self) -> None:
        self._registry = SubscriberRegistry()
        self._publish_lock = threading.Lock()
        self.invalid_payloads = 0

    def subscribe(self, callback: EventCallback) -> Subscription:
        return self._registry.add(callback)

    def publish(self, event: PaymentEvent) -> int:
        with self._publish_lock:
            return self._registry.dispatch(event)

    def publish_payload(self, payload: dict[str, Any]) -> bool:
        """Validate a webhook body and publish it; invalid bodies are counted, not raised."""

        try:
            event = PaymentEvent.model_validate(payload)
        except ValidationError as exc:
            with self._publish_lock:
                self.invalid_payloads += 1
            logger.warning("webhook_payload_invalid", errors=exc.error_count())
            return False
        self.publish(event)
        return True
