"""Modelos del dominio (Pydantic v2).

Por qué Pydantic en el dominio:
- Nos da validación estricta y documentación autocontenida (Field) sin acoplar
  el Core a librerías de I/O.
- Los cuerpos de webhook y las credenciales serializadas se validan con los mismos modelos.

Nota:
- Los rangos de `GeofenceConstraint` y `PaymentEvent` *no* se validan aquí.
  El encoder rechaza geocercas inválidas y el agregador descarta eventos
  inválidos; cada componente define su política de errores.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import NamedTuple

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class GeoPoint(BaseModel):
    """A latitude/longitude pair in decimal degrees."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., description="Latitude in decimal degrees.")
    lon: float = Field(..., description="Longitude in decimal degrees.")

    @classmethod
    def of(cls, lat: float, lon: float) -> "GeoPoint":
        return cls(lat=lat, lon=lon)


class GeofenceConstraint(BaseModel):
    """Circular region where a credential is considered valid."""

    model_config = ConfigDict(frozen=True)

    center: GeoPoint = Field(..., description="Center of the fence.")
    radius_m: float = Field(..., description="Radius in meters (must be > 0 to be issued).")

    @classmethod
    def around(cls, lat: float, lon: float, radius_m: float) -> "GeofenceConstraint":
        return cls(center=GeoPoint(lat=lat, lon=lon), radius_m=radius_m)


class GeoCredential(BaseModel):
    """Geo-restricted credential derived from a payee identifier.

    Lifecycle:
    - Created by `core.services.geofence.issue` after a successful extraction.
    - Never mutated; discarded when the user requests a new scan.
    """

    model_config = ConfigDict(frozen=True)

    payee: str = Field(..., min_length=1, description="Canonical payee identifier (VPA-like handle).")
    fence: GeofenceConstraint
    issued_at: datetime = Field(default_factory=utc_now, description="Issue time (UTC).")


class PaymentEvent(BaseModel):
    """A single geolocated payment observation.

    Produced by an Event Source and consumed exactly once by the aggregator.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    location: GeoPoint
    amount: float = Field(..., description="Payment amount; non-positive amounts are dropped on ingestion.")
    observed_at: datetime = Field(default_factory=utc_now, description="Observation time.")
    payee: str | None = Field(default=None, description="Receiving payee, when known.")
    originator: str | None = Field(
        default=None,
        description="Producer of the event; ordering is only guaranteed per originator.",
    )


class ScannedPayload(BaseModel):
    """Breakdown of a scanned payment payload (e.g. `upi://pay?pa=..&pn=..&am=..`)."""

    raw: str
    payee: str
    payee_name: str | None = None
    amount: float | None = None
    currency: str | None = None
    scheme: str | None = None


class DensityCell(NamedTuple):
    """One grid cell of a density snapshot (cell center + accumulated intensity)."""

    lat: float
    lon: float
    intensity: float


class HeatPoint(NamedTuple):
    """A renderable heatmap point; `weight` is normalized to [0, 1]."""

    lat: float
    lon: float
    weight: float


class DensitySnapshot(NamedTuple):
    """Point-in-time copy of the grid tagged with the aggregator version."""

    version: int
    cells: tuple[DensityCell, ...]
