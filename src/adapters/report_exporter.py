"""Exportación de reportes del heatmap.

Por qué está en adapters:
- HTML/CSV son detalles de infraestructura (Jinja2, archivos).
- El Core solo conoce puntos del heatmap y estadísticas del agregador.
"""

from __future__ import annotations

import csv
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.domain.models import GeoCredential, GeofenceConstraint, HeatPoint
from core.services.aggregator import AggregatorStats


_TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"


def _get_env() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(_TEMPLATES_DIR)),
        autoescape=select_autoescape(["html", "xml"]),
    )


def render_heatmap_html(
    *,
    points: Sequence[HeatPoint],
    stats: AggregatorStats | None = None,
    credential: GeoCredential | None = None,
    fence: GeofenceConstraint | None = None,
    title: str = "GeoQR payment heatmap",
) -> str:
    """Render a self-contained HTML page with a Leaflet heat layer.

    The fence circle comes from `fence`, or from `credential.fence` when only a
    credential is given.
    """

    if fence is None and credential is not None:
        fence = credential.fence

    generated_at = datetime.now(timezone.utc).isoformat(timespec="seconds")
    if points:
        center = (
            sum(p.lat for p in points) / len(points),
            sum(p.lon for p in points) / len(points),
        )
    else:
        center = (20.0, 77.0)

    template = _get_env().get_template("heatmap.html")
    return template.render(
        title=title,
        generated_at=generated_at,
        center=center,
        points=points,
        points_json=json.dumps([[p.lat, p.lon, p.weight] for p in points]),
        stats=stats,
        credential=credential,
        fence=fence,
    )


def export_heatmap_html(
    *,
    points: Sequence[HeatPoint],
    output_path: Path,
    stats: AggregatorStats | None = None,
    credential: GeoCredential | None = None,
    fence: GeofenceConstraint | None = None,
) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    html = render_heatmap_html(points=points, stats=stats, credential=credential, fence=fence)
    output_path.write_text(html, encoding="utf-8")
    return output_path


def export_points_csv(*, points: Sequence[HeatPoint], output_path: Path) -> Path:
    """CSV export with a `lat,lon,weight` header, one row per heat point."""

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8", newline="") as fh:
        writer = csv.writer(fh)
        writer.writerow(["lat", "lon", "weight"])
        for p in points:
            writer.writerow([f"{p.lat:.6f}", f"{p.lon:.6f}", f"{p.weight:.6f}"])
    return output_path
