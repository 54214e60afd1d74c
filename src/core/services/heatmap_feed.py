"""Snapshot -> diff -> redraw pipeline for map consumers.

Instead of rebuilding the overlay on every UI refresh, the consumer polls the
feed; the renderer callback only fires when the aggregator state actually
changed, and receives the point-level diff along with the full projection.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable

import structlog

from core.domain.models import HeatPoint
from core.services.aggregator import SpatialAggregator
from core.services.heatmap import HeatmapProjector

logger = structlog.get_logger(__name__)

PointKey = tuple[float, float]


@dataclass(frozen=True)
class HeatmapUpdate:
    """What changed between two consecutive projections."""

    version: int
    points: tuple[HeatPoint, ...]
    added: tuple[HeatPoint, ...] = ()
    removed: tuple[HeatPoint, ...] = ()
    changed: tuple[HeatPoint, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.changed)


def diff_points(previous: tuple[HeatPoint, ...], current: tuple[HeatPoint, ...]) -> tuple[
    tuple[HeatPoint, ...], tuple[HeatPoint, ...], tuple[HeatPoint, ...]
]:
    """Return `(added, removed, changed)` keyed by point location."""

    before: dict[PointKey, HeatPoint] = {(p.lat, p.lon): p for p in previous}
    after: dict[PointKey, HeatPoint] = {(p.lat, p.lon): p for p in current}
    added = tuple(p for k, p in after.items() if k not in before)
    removed = tuple(p for k, p in before.items() if k not in after)
    changed = tuple(p for k, p in after.items() if k in before and before[k].weight != p.weight)
    return added, removed, changed


@dataclass
class HeatmapFeed:
    """Polls the aggregator and notifies `on_change` only on real data changes."""

    aggregator: SpatialAggregator
    projector: HeatmapProjector
    on_change: Callable[[HeatmapUpdate], None] | None = None
    _version: int | None = field(default=None, init=False)
    _points: tuple[HeatPoint, ...] = field(default=(), init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @property
    def points(self) -> tuple[HeatPoint, ...]:
        return self._points

    def poll(self) -> HeatmapUpdate | None:
        snapshot = self.aggregator.versioned_snapshot()
        with self._lock:
            if snapshot.version == self._version:
                return None
            points = tuple(self.projector.project(snapshot.cells))
            added, removed, changed = diff_points(self._points, points)
            self._version = snapshot.version
            self._points = points

        update = HeatmapUpdate(
            version=snapshot.version,
            points=points,
            added=added,
            removed=removed,
            changed=changed,
        )
        logger.debug(
            "heatmap_updated",
            version=update.version,
            added=len(added),
            removed=len(removed),
            changed=len(changed),
        )
        if self.on_change is not None:
            self.on_change(update)
        return update
