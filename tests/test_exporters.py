"""Tests for file exporters and QR rendering."""

import base64
import csv
import json

from core.domain.models import GeofenceConstraint, HeatPoint
from core.services.aggregator import AggregatorStats
from core.services.geofence import issue, serialize
from adapters.json_exporter import export_credential_json, export_points_json
from adapters.qr_image import export_png, render_png, to_data_uri
from adapters.report_exporter import export_heatmap_html, export_points_csv, render_heatmap_html

from .fixtures import DELHI, T0

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"

POINTS = [HeatPoint(28.65, 77.25, 1.0), HeatPoint(19.05, 72.85, 0.25)]


def _credential():
    return issue("merchant@bank", GeofenceConstraint.around(DELHI.lat, DELHI.lon, 5_000.0), now=T0)


class TestJsonExporter:
    def test_credential_json(self, tmp_path):
        credential = _credential()

        out = export_credential_json(credential=credential, output_path=tmp_path / "out" / "cred.json")
        data = json.loads(out.read_text(encoding="utf-8"))

        assert data["payee"] == "merchant@bank"
        assert data["fence"]["radius_m"] == 5_000.0
        assert data["issued_at"].startswith("2026-01-01T12:00:00")
        assert data["payload"] == serialize(credential).decode("utf-8")

    def test_points_json(self, tmp_path):
        out = export_points_json(points=POINTS, output_path=tmp_path / "points.json")

        assert json.loads(out.read_text(encoding="utf-8")) == [
            {"lat": 28.65, "lon": 77.25, "weight": 1.0},
            {"lat": 19.05, "lon": 72.85, "weight": 0.25},
        ]


class TestReportExporter:
    def test_points_csv(self, tmp_path):
        out = export_points_csv(points=POINTS, output_path=tmp_path / "heat.csv")

        with out.open(encoding="utf-8", newline="") as fh:
            rows = list(csv.reader(fh))

        assert rows[0] == ["lat", "lon", "weight"]
        assert rows[1] == ["28.650000", "77.250000", "1.000000"]
        assert len(rows) == 3

    def test_render_html(self):
        stats = AggregatorStats(ingested=5, rejected=1, evicted=2, retained=3, cells=2, version=6)

        html = render_heatmap_html(points=POINTS, stats=stats, credential=_credential(), title="Test map")

        assert "<title>Test map</title>" in html
        assert "[[28.65, 77.25, 1.0], [19.05, 72.85, 0.25]]" in html
        assert "merchant@bank" in html
        assert "<td>5</td>" in html

    def test_render_html_escapes_payee(self):
        credential = issue("<b>x</b>@bank", GeofenceConstraint.around(1.0, 1.0, 10.0), now=T0)

        html = render_heatmap_html(points=[], credential=credential)

        assert "<b>x</b>@bank" not in html
        assert "&lt;b&gt;x&lt;/b&gt;@bank" in html

    def test_render_html_fence_without_credential(self):
        fence = GeofenceConstraint.around(19.076, 72.8777, 2_500.0)

        html = render_heatmap_html(points=[], fence=fence)

        assert "L.circle([19.076, 72.8777]" in html
        assert "radius: 2500.0" in html
        assert "(2500 m)" in html

    def test_render_html_without_fence_has_no_circle(self):
        assert "L.circle(" not in render_heatmap_html(points=POINTS)

    def test_export_html(self, tmp_path):
        out = export_heatmap_html(points=POINTS, output_path=tmp_path / "report" / "map.html")
        assert out.read_text(encoding="utf-8").lstrip().lower().startswith("<!doctype html>")


class TestQrImage:
    def test_render_png(self):
        assert render_png(b"geoqr:test").startswith(PNG_MAGIC)

    def test_render_text_payload(self):
        assert render_png(serialize(_credential()).decode("utf-8")).startswith(PNG_MAGIC)

    def test_data_uri(self):
        png = render_png(b"geoqr:test")
        uri = to_data_uri(png)

        assert uri.startswith("data:image/png;base64,")
        assert base64.b64decode(uri.split(",", 1)[1]) == png

    def test_export_png(self, tmp_path):
        out = export_png(b"geoqr:test", output_path=tmp_path / "qr" / "code.png")
        assert out.read_bytes().startswith(PNG_MAGIC)
