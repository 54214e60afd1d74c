"""Fuente de eventos por polling HTTP.

El endpoint devuelve una lista JSON de eventos de pago (o `{"events": [...]}`)
con `observed_at >= since`. La fuente recuerda el `observed_at` más reciente
y lo reenvía como cursor en el siguiente poll.

Notas:
- `since` se trata como inclusivo: los eventos con timestamp igual al cursor
  que ya se entregaron se descartan, así cada evento llega una sola vez.
- Los fallos HTTP transitorios se registran y se reintentan en el siguiente tick.
- La I/O es async (`httpx.AsyncClient`); el polling corre en su propio hilo
  con su propio event loop.
"""

from __future__ import annotations

import asyncio
import threading
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from adapters.event_sources.subscriptions import SubscriberRegistry
from adapters.http_client import build_async_client
from core.config import AppSettings
from core.domain.models import PaymentEvent
from core.interfaces.event_source import EventCallback, Subscription

logger = structlog.get_logger(__name__)

EventKey = tuple[datetime, str | None, str | None, float, float, float]


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _key(event: PaymentEvent) -> EventKey:
    return (
        _as_utc(event.observed_at),
        event.originator,
        event.payee,
        event.location.lat,
        event.location.lon,
        event.amount,
    )


class HttpFeedEventSource:
    def __init__(
        self,
        url: str,
        *,
        settings: AppSettings | None = None,
        client: httpx.AsyncClient | None = None,
        poll_seconds: float | None = None,
    ) -> None:
        self._settings = settings or AppSettings()
        self.url = url
        self.poll_seconds = poll_seconds or self._settings.feed_poll_seconds
        self._client = client or build_async_client(self._settings)
        self._registry = SubscriberRegistry()
        self._cursor: datetime | None = None
        self._seen_at_cursor: set[EventKey] = set()
        self._stop = threading.Event()
        self._close_requested = False
        self._thread: threading.Thread | None = None
        self.invalid_items = 0
        self.duplicates = 0

    @property
    def cursor(self) -> datetime | None:
        return self._cursor

    def _items(self, data: Any) -> list[Any]:
        if isinstance(data, dict):
            data = data.get("events", [])
        return data if isinstance(data, list) else []

    async def fetch(self) -> list[PaymentEvent]:
        """Un GET al feed; lanza `httpx.HTTPError` ante fallos de transporte/status."""

        params = {"since": self._cursor.isoformat()} if self._cursor else None
        response = await self._client.get(self.url, params=params)
        response.raise_for_status()

        events: list[PaymentEvent] = []
        for item in self._items(response.json()):
            try:
                events.append(PaymentEvent.model_validate(item))
            except ValidationError as exc:
                self.invalid_items += 1
                logger.warning("feed_item_invalid", url=self.url, errors=exc.error_count())
        return events

    def _is_new(self, key: EventKey) -> bool:
        if self._cursor is None:
            return True
        observed = key[0]
        if observed < self._cursor:
            return False
        return observed > self._cursor or key not in self._seen_at_cursor

    def _advance(self, keys: list[EventKey]) -> None:
        newest = max(key[0] for key in keys)
        if self._cursor is None or newest > self._cursor:
            self._cursor = newest
            self._seen_at_cursor = set()
        self._seen_at_cursor.update(key for key in keys if key[0] == self._cursor)

    async def poll_once(self) -> int:
        """Fetch + dispatch; devuelve la cantidad de eventos nuevos entregados."""

        try:
            events = await self.fetch()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("feed_poll_failed", url=self.url, error=str(exc))
            return 0

        delivered: list[EventKey] = []
        for event in events:
            key = _key(event)
            if not self._is_new(key) or key in delivered:
                self.duplicates += 1
                continue
            self._registry.dispatch(event)
            delivered.append(key)

        if delivered:
            self._advance(delivered)
            logger.debug("feed_polled", url=self.url, events=len(delivered))
        return len(delivered)

    def subscribe(self, callback: EventCallback) -> Subscription:
        return self._registry.add(callback)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="geoqr-http-feed", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None

    def close(self) -> None:
        """Detiene el polling y libera el cliente HTTP."""

        self._close_requested = True
        running = self._thread is not None and self._thread.is_alive()
        self.stop()
        if not running and not self._client.is_closed:
            asyncio.run(self._client.aclose())

    def _run(self) -> None:
        asyncio.run(self._poll_loop())

    async def _poll_loop(self) -> None:
        try:
            while not await asyncio.to_thread(self._stop.wait, self.poll_seconds):
                if self._registry.has_active:
                    await self.poll_once()
        finally:
            # The client's connections belong to this loop; close them here.
            if self._close_requested:
                await self._client.aclose()
