"""Deterministic synthetic payment events.

Stands in for a live payment feed during demos and tests. The same seed
always yields the same sequence; with an explicit `start_at`, timestamps are
virtual (`start_at + n * interval`) so tests are fully reproducible.
"""

from __future__ import annotations

import itertools
import random
import threading
from datetime import datetime, timedelta
from typing import Iterator, Sequence

import structlog

from adapters.event_sources.subscriptions import SubscriberRegistry
from core.config import AppSettings
from core.domain.models import GeoPoint, PaymentEvent, utc_now
from core.interfaces.event_source import EventCallback, Subscription

logger = structlog.get_logger(__name__)


class SyntheticEventSource:
    """Seeded generator of payment events scattered around hotspots."""

    def __init__(
        self,
        *,
        hotspots: Sequence[GeoPoint],
        spread_deg: float = 0.25,
        min_amount: float = 10.0,
        max_amount: float = 5_000.0,
        seed: int = 7,
        interval_seconds: float = 2.0,
        start_at: datetime | None = None,
        originators: Sequence[str] = ("synthetic",),
        payees: Sequence[str] = (),
    ) -> None:
        if not hotspots:
            raise ValueError("at least one hotspot is required")
        if not 0 < min_amount <= max_amount:
            raise ValueError("amount range must satisfy 0 < min_amount <= max_amount")
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self.hotspots = tuple(hotspots)
        self.spread_deg = spread_deg
        self.min_amount = min_amount
        self.max_amount = max_amount
        self.seed = seed
        self.interval_seconds = interval_seconds
        self.start_at = start_at
        self.originators = tuple(originators) or ("synthetic",)
        self.payees = tuple(payees)

        self._registry = SubscriberRegistry()
        self._stream: Iterator[PaymentEvent] | None = None
        self._stream_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @classmethod
    def from_settings(cls, settings: AppSettings, **overrides: object) -> "SyntheticEventSource":
        params: dict[str, object] = {
            "hotspots": [GeoPoint(lat=settings.default_fence_lat, lon=settings.default_fence_lon)],
            "seed": settings.synthetic_seed,
            "interval_seconds": settings.synthetic_interval_seconds,
        }
        params.update(overrides)
        return cls(**params)  # type: ignore[arg-type]

    def _make(self, rng: random.Random, index: int) -> PaymentEvent:
        hotspot = rng.choice(self.hotspots)
        lat = min(90.0, max(-90.0, hotspot.lat + rng.uniform(-self.spread_deg, self.spread_deg)))
        lon = min(180.0, max(-180.0, hotspot.lon + rng.uniform(-self.spread_deg, self.spread_deg)))
        amount = round(rng.uniform(self.min_amount, self.max_amount), 2)
        if self.start_at is not None:
            observed_at = self.start_at + timedelta(seconds=index * self.interval_seconds)
        else:
            observed_at = utc_now()
        return PaymentEvent(
            location=GeoPoint(lat=lat, lon=lon),
            amount=amount,
            observed_at=observed_at,
            payee=rng.choice(self.payees) if self.payees else None,
            originator=self.originators[index % len(self.originators)],
        )

    def events(self) -> Iterator[PaymentEvent]:
        """Lazy, unbounded sequence of events (fresh and reproducible per call)."""

        rng = random.Random(self.seed)
        for index in itertools.count():
            yield self._make(rng, index)

    def take(self, count: int) -> list[PaymentEvent]:
        return list(itertools.islice(self.events(), count))

    def _next_event(self) -> PaymentEvent:
        with self._stream_lock:
            if self._stream is None:
                self._stream = self.events()
            return next(self._stream)

    def pump(self, count: int) -> int:
        """Synchronously deliver the next `count` events to current subscribers."""

        for _ in range(count):
            self._registry.dispatch(self._next_event())
        return count

    def subscribe(self, callback: EventCallback) -> Subscription:
        return self._registry.add(callback)

    def start(self) -> None:
        """Emit events on a background thread at `interval_seconds`."""

        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="geoqr-synthetic", daemon=True)
        self._thread.start()
        logger.debug("synthetic_source_started", interval_seconds=self.interval_seconds, seed=self.seed)

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            if not self._registry.has_active:
                continue
            self._registry.dispatch(self._next_event())
