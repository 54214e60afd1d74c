"""Geofence credential issuance and verification.

The serialized credential is what gets embedded in the "hybrid" QR image. It
must be deterministic: identical `(payee, fence)` pairs produce byte-identical
payloads, so `issued_at` is deliberately left out of it.

Wire format::

    geoqr:{"fence":{"lat":..,"lon":..,"radius_m":..},"payee":"..","v":1}

(compact JSON, sorted keys, UTF-8).
"""

from __future__ import annotations

import json
import math
from datetime import datetime

import structlog

from core.domain.errors import EmptyIdentifier, InvalidGeofence
from core.domain.models import GeoCredential, GeofenceConstraint, GeoPoint, utc_now

logger = structlog.get_logger(__name__)

PAYLOAD_PREFIX = "geoqr:"
PAYLOAD_VERSION = 1
EARTH_RADIUS_M = 6_371_000.0


def validate_fence(fence: GeofenceConstraint) -> GeofenceConstraint:
    """Raise `InvalidGeofence` unless radius > 0 and the center is in range."""

    lat, lon, radius = fence.center.lat, fence.center.lon, fence.radius_m
    if not all(math.isfinite(v) for v in (lat, lon, radius)):
        raise InvalidGeofence(f"non-finite geofence values: lat={lat} lon={lon} radius_m={radius}")
    if radius <= 0:
        raise InvalidGeofence(f"radius must be > 0 (got {radius})")
    if not -90.0 <= lat <= 90.0:
        raise InvalidGeofence(f"latitude out of range [-90, 90]: {lat}")
    if not -180.0 <= lon <= 180.0:
        raise InvalidGeofence(f"longitude out of range [-180, 180]: {lon}")
    return fence


def issue(payee: str, fence: GeofenceConstraint, *, now: datetime | None = None) -> GeoCredential:
    """Attach `fence` to `payee` and stamp the issue time."""

    if not payee or not payee.strip():
        raise EmptyIdentifier("cannot issue a credential for an empty payee")
    validate_fence(fence)
    credential = GeoCredential(payee=payee, fence=fence, issued_at=now or utc_now())
    logger.info(
        "credential_issued",
        payee=payee,
        lat=fence.center.lat,
        lon=fence.center.lon,
        radius_m=fence.radius_m,
    )
    return credential


def serialize(credential: GeoCredential) -> bytes:
    """Deterministic, order-stable encoding of `{payee, fence}`."""

    body = {
        "v": PAYLOAD_VERSION,
        "payee": credential.payee,
        "fence": {
            "lat": float(credential.fence.center.lat),
            "lon": float(credential.fence.center.lon),
            "radius_m": float(credential.fence.radius_m),
        },
    }
    text = json.dumps(body, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return (PAYLOAD_PREFIX + text).encode("utf-8")


def parse(payload: bytes | str) -> tuple[str, GeofenceConstraint]:
    """Inverse of `serialize`: return `(payee, fence)` or raise `InvalidGeofence`."""

    try:
        text = payload.decode("utf-8") if isinstance(payload, bytes) else payload
    except UnicodeDecodeError as exc:
        raise InvalidGeofence("credential payload is not UTF-8") from exc
    if not text.startswith(PAYLOAD_PREFIX):
        raise InvalidGeofence("payload is not a geo credential")
    try:
        body = json.loads(text[len(PAYLOAD_PREFIX):])
        version = body["v"]
        payee = body["payee"]
        raw_fence = body["fence"]
        fence = GeofenceConstraint.around(
            float(raw_fence["lat"]),
            float(raw_fence["lon"]),
            float(raw_fence["radius_m"]),
        )
    except (ValueError, KeyError, TypeError) as exc:
        raise InvalidGeofence(f"malformed credential payload: {exc}") from exc

    if version != PAYLOAD_VERSION:
        raise InvalidGeofence(f"unsupported credential version: {version!r}")
    if not isinstance(payee, str) or not payee:
        raise InvalidGeofence("credential payload has no payee")
    return payee, validate_fence(fence)


def haversine_m(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in meters between two points."""

    lat1, lon1 = math.radians(a.lat), math.radians(a.lon)
    lat2, lon2 = math.radians(b.lat), math.radians(b.lon)
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(min(1.0, h)))


def contains(fence: GeofenceConstraint, point: GeoPoint) -> bool:
    return haversine_m(fence.center, point) <= fence.radius_m


def verify(payload: bytes | str, point: GeoPoint) -> bool:
    """True when `point` lies inside the fence carried by `payload`."""

    _, fence = parse(payload)
    return contains(fence, point)
