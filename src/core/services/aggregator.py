"""Spatial aggregation of geolocated payment events.

The aggregator is the single owner (and only writer) of the density grid.
Event ingestion, snapshot reads and the retention pass may run on different
threads; one lock serializes all of them, which is plenty for human-scale
payment rates.

Retention:
- The event-count cap is enforced on every `ingest` so memory stays bounded
  even without a reconciler.
- The age horizon is enforced by `trim`, driven by `RetentionReconciler` on
  its own cadence (time-driven, never request-driven).
"""

from __future__ import annotations

import math
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, NamedTuple

import structlog

from core.config import AppSettings
from core.domain.models import DensityCell, DensitySnapshot, PaymentEvent, utc_now
from core.interfaces.event_source import EventSource, Subscription

logger = structlog.get_logger(__name__)

METERS_PER_DEGREE = 111_320.0

CellKey = tuple[int, int]
Clock = Callable[[], datetime]


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class GridSpec:
    """Fixed-resolution discretization of lat/lon into cells."""

    cell_size_deg: float = 0.05

    def __post_init__(self) -> None:
        if not math.isfinite(self.cell_size_deg) or self.cell_size_deg <= 0:
            raise ValueError(f"cell_size_deg must be > 0 (got {self.cell_size_deg})")

    @classmethod
    def from_meters(cls, meters: float) -> "GridSpec":
        """Approximate a metric cell size (1 degree ~= 111.32 km)."""

        return cls(cell_size_deg=meters / METERS_PER_DEGREE)

    def cell_of(self, lat: float, lon: float) -> CellKey:
        size = self.cell_size_deg
        return math.floor(lat / size), math.floor(lon / size)

    def center_of(self, key: CellKey) -> tuple[float, float]:
        size = self.cell_size_deg
        row, col = key
        lat = min(90.0, max(-90.0, (row + 0.5) * size))
        lon = min(180.0, max(-180.0, (col + 0.5) * size))
        return lat, lon


@dataclass(frozen=True)
class RetentionPolicy:
    """Retention horizon: last `max_events` events and/or last `max_age_seconds`."""

    max_age_seconds: float | None = 3600.0
    max_events: int | None = 10_000

    def __post_init__(self) -> None:
        if self.max_age_seconds is not None and not self.max_age_seconds > 0:
            raise ValueError("max_age_seconds must be > 0 or None")
        if self.max_events is not None and self.max_events < 1:
            raise ValueError("max_events must be >= 1 or None")


@dataclass(frozen=True)
class AggregatorStats:
    ingested: int
    rejected: int
    evicted: int
    retained: int
    cells: int
    version: int


class _Contribution(NamedTuple):
    observed_at: datetime
    key: CellKey
    amount: float


@dataclass
class _Cell:
    total: float = 0.0
    count: int = 0


class SpatialAggregator:
    """Bounded, continuously updated density grid keyed by location cell."""

    def __init__(
        self,
        grid: GridSpec | None = None,
        retention: RetentionPolicy | None = None,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self.grid = grid or GridSpec()
        self.retention = retention or RetentionPolicy()
        self._clock = clock
        self._lock = threading.Lock()
        self._cells: dict[CellKey, _Cell] = {}
        self._entries: deque[_Contribution] = deque()
        self._ingested = 0
        self._rejected = 0
        self._evicted = 0
        self._version = 0

    @classmethod
    def from_settings(cls, settings: AppSettings, *, clock: Clock = utc_now) -> "SpatialAggregator":
        return cls(
            GridSpec(cell_size_deg=settings.cell_size_deg),
            RetentionPolicy(
                max_age_seconds=settings.retention_max_age_seconds,
                max_events=settings.retention_max_events,
            ),
            clock=clock,
        )

    @staticmethod
    def _accepts(event: PaymentEvent) -> bool:
        lat, lon, amount = event.location.lat, event.location.lon, event.amount
        if not (math.isfinite(lat) and math.isfinite(lon) and math.isfinite(amount)):
            return False
        return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0 and amount > 0

    def ingest(self, event: PaymentEvent) -> bool:
        """Add `event.amount` to its cell; malformed events are dropped and counted."""

        if not self._accepts(event):
            with self._lock:
                self._rejected += 1
            logger.debug(
                "event_rejected",
                lat=event.location.lat,
                lon=event.location.lon,
                amount=event.amount,
            )
            return False

        key = self.grid.cell_of(event.location.lat, event.location.lon)
        contribution = _Contribution(_as_utc(event.observed_at), key, float(event.amount))
        with self._lock:
            cell = self._cells.get(key)
            if cell is None:
                cell = self._cells[key] = _Cell()
            cell.total += contribution.amount
            cell.count += 1
            self._entries.append(contribution)
            self._ingested += 1
            evicted = self._enforce_count_locked()
            self._version += 1
        if evicted:
            logger.debug("events_evicted", reason="max_events", evicted=evicted)
        return True

    def _enforce_count_locked(self) -> int:
        limit = self.retention.max_events
        evicted = 0
        while limit is not None and len(self._entries) > limit:
            self._release_locked(self._entries.popleft())
            evicted += 1
        self._evicted += evicted
        return evicted

    def _release_locked(self, contribution: _Contribution) -> None:
        cell = self._cells[contribution.key]
        cell.count -= 1
        if cell.count == 0:
            del self._cells[contribution.key]
        else:
            cell.total = max(0.0, cell.total - contribution.amount)

    def trim(self, now: datetime | None = None) -> int:
        """One retention pass; returns the number of evicted events."""

        now = _as_utc(now) if now is not None else _as_utc(self._clock())
        max_age = self.retention.max_age_seconds
        max_events = self.retention.max_events

        with self._lock:
            before = len(self._entries)
            kept: list[_Contribution] = list(self._entries)
            if max_age is not None:
                cutoff = now - timedelta(seconds=max_age)
                kept = [c for c in kept if c.observed_at >= cutoff]
            if max_events is not None and len(kept) > max_events:
                kept = kept[-max_events:]
            evicted = before - len(kept)
            if evicted:
                cells: dict[CellKey, _Cell] = {}
                for c in kept:
                    cell = cells.setdefault(c.key, _Cell())
                    cell.total += c.amount
                    cell.count += 1
                self._entries = deque(kept)
                self._cells = cells
                self._evicted += evicted
                self._version += 1
            retained = len(self._entries)

        if evicted:
            logger.info("retention_trimmed", evicted=evicted, retained=retained)
        return evicted

    def _copy_locked(self) -> list[tuple[CellKey, float]]:
        return [(key, cell.total) for key, cell in self._cells.items()]

    def _as_cells(self, items: Iterable[tuple[CellKey, float]]) -> tuple[DensityCell, ...]:
        out = []
        for key, total in sorted(items):
            lat, lon = self.grid.center_of(key)
            out.append(DensityCell(lat=lat, lon=lon, intensity=total))
        return tuple(out)

    def snapshot(self) -> tuple[DensityCell, ...]:
        """Consistent point-in-time copy, ordered by cell index."""

        with self._lock:
            items = self._copy_locked()
        return self._as_cells(items)

    def versioned_snapshot(self) -> DensitySnapshot:
        with self._lock:
            items = self._copy_locked()
            version = self._version
        return DensitySnapshot(version=version, cells=self._as_cells(items))

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    def stats(self) -> AggregatorStats:
        with self._lock:
            return AggregatorStats(
                ingested=self._ingested,
                rejected=self._rejected,
                evicted=self._evicted,
                retained=len(self._entries),
                cells=len(self._cells),
                version=self._version,
            )

    def follow(self, source: EventSource) -> Subscription:
        """Subscribe `ingest` to `source`; cancel the returned handle to stop."""

        return source.subscribe(self.ingest)


class RetentionReconciler:
    """Background thread running `SpatialAggregator.trim` at a fixed interval."""

    def __init__(self, aggregator: SpatialAggregator, interval_seconds: float = 30.0) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._aggregator = aggregator
        self._interval = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> int:
        return self._aggregator.trim()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="geoqr-retention", daemon=True)
        self._thread.start()
        logger.debug("retention_started", interval_seconds=self._interval)

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self.run_once()
            except Exception:
                logger.exception("retention_pass_failed")

    def __enter__(self) -> "RetentionReconciler":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()
