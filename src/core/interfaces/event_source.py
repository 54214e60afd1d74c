"""Contratos de fuentes de eventos.

Por qué Protocol:
- Define un contrato estructural (duck typing) sin herencia rígida.
- Permite intercambiar el generador sintético, los pushes de webhook y el
  polling HTTP sin tocar el agregador.
"""

from __future__ import annotations

from typing import Callable, Protocol, runtime_checkable

from core.domain.models import PaymentEvent

EventCallback = Callable[[PaymentEvent], None]


@runtime_checkable
class Subscription(Protocol):
    """Handle returned by `EventSource.subscribe`.

    Rules:
    - `cancel` is idempotent and safe to call at any time, including from
      inside a callback.
    - After `cancel` returns no further events are delivered.
    """

    @property
    def active(self) -> bool: ...

    def cancel(self) -> None: ...


@runtime_checkable
class EventSource(Protocol):
    """Minimal contract for a producer of payment events.

    Events from the same originator are delivered in observation order; there
    is no ordering guarantee across originators.
    """

    def subscribe(self, callback: EventCallback) -> Subscription:
        """Register `callback` for every future event."""

        ...
