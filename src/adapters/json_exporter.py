"""Exportación JSON de credenciales y puntos del heatmap.

Por qué JSON:
- Interoperabilidad con front-ends de mapas y otros pipelines.
- Permite guardar/inspeccionar la credencial emitida sin la imagen QR.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable

from core.domain.models import GeoCredential, HeatPoint
from core.services.geofence import serialize


def _write_json(payload: object, output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(
        json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True) + "\n",
        encoding="utf-8",
    )
    return output_path


def export_credential_json(*, credential: GeoCredential, output_path: Path) -> Path:
    """Export the credential plus its deterministic QR payload as UTF-8 JSON."""

    payload = credential.model_dump(mode="json")
    payload["payload"] = serialize(credential).decode("utf-8")
    return _write_json(payload, output_path)


def export_points_json(*, points: Iterable[HeatPoint], output_path: Path) -> Path:
    """Export heatmap points as a list of `{lat, lon, weight}` objects."""

    return _write_json([p._asdict() for p in points], output_path)
