"""Heatmap projection of a density snapshot."""

from __future__ import annotations

from typing import Iterable

from core.config import AppSettings
from core.domain.models import GeoPoint, HeatPoint


class HeatmapProjector:
    """Turns `(lat, lon, intensity)` cells into weights normalized to [0, 1].

    The maximum is recomputed from the given snapshot on every call; it is
    never cached, since it moves as events stream in. An empty grid yields a
    single low-weight point at the default coverage location so consumers
    always have something to render.
    """

    def __init__(self, fallback: GeoPoint, fallback_weight: float = 0.01) -> None:
        if not 0.0 <= fallback_weight <= 1.0:
            raise ValueError("fallback_weight must be within [0, 1]")
        self.fallback = fallback
        self.fallback_weight = fallback_weight

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "HeatmapProjector":
        return cls(
            GeoPoint(lat=settings.fallback_lat, lon=settings.fallback_lon),
            settings.fallback_weight,
        )

    def fallback_point(self) -> HeatPoint:
        return HeatPoint(self.fallback.lat, self.fallback.lon, self.fallback_weight)

    def project(self, cells: Iterable[tuple[float, float, float]]) -> list[HeatPoint]:
        rows = [(float(lat), float(lon), float(intensity)) for lat, lon, intensity in cells]
        if not rows:
            return [self.fallback_point()]

        peak = max(intensity for _, _, intensity in rows)
        if peak <= 0:
            return [HeatPoint(lat, lon, 0.0) for lat, lon, _ in rows]
        return [
            HeatPoint(lat, lon, min(1.0, max(0.0, intensity / peak)))
            for lat, lon, intensity in rows
        ]
