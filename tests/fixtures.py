"""Shared builders for tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from core.domain.models import GeoPoint, PaymentEvent

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

DELHI = GeoPoint(lat=28.6139, lon=77.2090)
GURGAON = GeoPoint(lat=28.4595, lon=77.0266)
MUMBAI = GeoPoint(lat=19.0760, lon=72.8777)


class FakeClock:
    """Manually advanced clock returning aware UTC datetimes."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def make_event(
    lat: float = DELHI.lat,
    lon: float = DELHI.lon,
    amount: float = 100.0,
    at: datetime = T0,
    **extra: object,
) -> PaymentEvent:
    return PaymentEvent(location=GeoPoint(lat=lat, lon=lon), amount=amount, observed_at=at, **extra)
