"""Geo-QR command line.

Commands delegate to `core.services`; this module only parses options,
prints with Rich and turns domain errors into exit codes.
"""

from __future__ import annotations

import time
from datetime import timedelta
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape

from adapters.event_sources import HttpFeedEventSource, SyntheticEventSource
from adapters.json_exporter import export_credential_json, export_points_json
from adapters.qr_image import export_png, render_png, to_data_uri
from adapters.report_exporter import export_heatmap_html, export_points_csv
from cli import doctor
from cli.ui_components import (
    build_credential_panel,
    build_heatmap_table,
    build_payload_table,
    build_stats_table,
    print_banner,
)
from core.config import AppSettings
from core.domain.errors import GeoQRError
from core.domain.models import GeoCredential, GeofenceConstraint, GeoPoint, utc_now
from core.logging_config import configure_logging
from core.services import geofence, identifier
from core.services.aggregator import GridSpec, RetentionReconciler, SpatialAggregator
from core.services.heatmap import HeatmapProjector
from core.services.heatmap_feed import HeatmapFeed, HeatmapUpdate

app = typer.Typer(no_args_is_help=True, help="Geo-locked payment QR credentials and payment heatmaps.")
app.add_typer(doctor.app, name="doctor")

_console = Console()


@app.callback()
def _main(
    log_level: str | None = typer.Option(None, "--log-level", help="Override GEOQR_LOG_LEVEL."),
    log_json: bool = typer.Option(False, "--log-json", help="Emit JSON logs on stderr."),
) -> None:
    settings = AppSettings()
    updates: dict[str, object] = {}
    if log_level:
        updates["log_level"] = log_level
    if log_json:
        updates["log_json"] = True
    configure_logging(settings.model_copy(update=updates) if updates else settings)


def _fail(exc: GeoQRError) -> typer.Exit:
    _console.print(f"[red]{type(exc).__name__}:[/red] {escape(str(exc))}")
    return typer.Exit(code=1)


def _fence(settings: AppSettings, lat: float | None, lon: float | None, radius_m: float | None) -> GeofenceConstraint:
    return GeofenceConstraint.around(
        settings.default_fence_lat if lat is None else lat,
        settings.default_fence_lon if lon is None else lon,
        settings.default_fence_radius_m if radius_m is None else radius_m,
    )


def _issue_from_text(
    raw: str,
    *,
    lat: float | None,
    lon: float | None,
    radius_m: float | None,
    qr_out: Path | None,
    json_out: Path | None,
    data_uri: bool,
) -> GeoCredential:
    settings = AppSettings()
    _console.print(build_payload_table(identifier.describe(raw)))

    payee = identifier.require_identifier(raw)
    credential = geofence.issue(payee, _fence(settings, lat, lon, radius_m))
    payload = geofence.serialize(credential)
    _console.print(build_credential_panel(credential, payload))

    if qr_out:
        export_png(payload, output_path=qr_out)
        _console.print(f"[green]QR image:[/green] {qr_out}")
    if json_out:
        export_credential_json(credential=credential, output_path=json_out)
        _console.print(f"[green]Credential JSON:[/green] {json_out}")
    if data_uri:
        _console.print(to_data_uri(render_png(payload)), soft_wrap=True)
    return credential


@app.command()
def extract(raw: str = typer.Argument(..., help="Raw scanned text (e.g. upi://pay?pa=...).")) -> None:
    """Print the payee identifier extracted from RAW."""

    payee = identifier.extract(raw)
    if not payee.strip():
        _console.print("[yellow]Empty identifier; re-scan the code.[/yellow]")
        raise typer.Exit(code=1)
    _console.print(payee, soft_wrap=True, highlight=False, markup=False)


@app.command()
def describe(raw: str = typer.Argument(..., help="Raw scanned text.")) -> None:
    """Show the payee, name, amount and currency carried by RAW."""

    _console.print(build_payload_table(identifier.describe(raw)))


@app.command()
def issue(
    raw: str = typer.Argument(..., help="Raw scanned text."),
    lat: float | None = typer.Option(None, "--lat", help="Fence center latitude."),
    lon: float | None = typer.Option(None, "--lon", help="Fence center longitude."),
    radius_m: float | None = typer.Option(None, "--radius-m", help="Fence radius in meters."),
    qr_out: Path | None = typer.Option(None, "--qr-out", help="Write the hybrid QR as PNG."),
    json_out: Path | None = typer.Option(None, "--json-out", help="Write the credential as JSON."),
    data_uri: bool = typer.Option(False, "--data-uri", help="Print the QR as a data: URI."),
) -> None:
    """Issue a geo-locked credential (hybrid QR) for the payee in RAW."""

    try:
        _issue_from_text(
            raw, lat=lat, lon=lon, radius_m=radius_m, qr_out=qr_out, json_out=json_out, data_uri=data_uri
        )
    except GeoQRError as exc:
        raise _fail(exc) from exc


@app.command()
def scan(
    image: Path = typer.Argument(..., exists=True, dir_okay=False, help="Image containing a payment QR."),
    lat: float | None = typer.Option(None, "--lat"),
    lon: float | None = typer.Option(None, "--lon"),
    radius_m: float | None = typer.Option(None, "--radius-m"),
    qr_out: Path | None = typer.Option(None, "--qr-out"),
    json_out: Path | None = typer.Option(None, "--json-out"),
) -> None:
    """Decode IMAGE and issue a geo-locked credential for its payee."""

    # Needs the native zbar library; only load it when scanning.
    from adapters.qr_decoder import decode_image  # noqa: PLC0415

    try:
        raw = decode_image(image.read_bytes())
        _issue_from_text(
            raw, lat=lat, lon=lon, radius_m=radius_m, qr_out=qr_out, json_out=json_out, data_uri=False
        )
    except GeoQRError as exc:
        raise _fail(exc) from exc


@app.command()
def verify(
    payload: str = typer.Argument(..., help="Serialized credential (geoqr:{...})."),
    lat: float = typer.Option(..., "--lat"),
    lon: float = typer.Option(..., "--lon"),
) -> None:
    """Check whether a location is inside the credential's fence (exit 2 when outside)."""

    try:
        payee, fence = geofence.parse(payload)
    except GeoQRError as exc:
        raise _fail(exc) from exc

    point = GeoPoint(lat=lat, lon=lon)
    distance = geofence.haversine_m(fence.center, point)
    if geofence.contains(fence, point):
        _console.print(f"[green]INSIDE[/green] {escape(payee)}: {distance:,.0f} m from center")
        return
    _console.print(f"[red]OUTSIDE[/red] {escape(payee)}: {distance:,.0f} m from center (radius {fence.radius_m:,.0f} m)")
    raise typer.Exit(code=2)


def _print_results(aggregator: SpatialAggregator, points: list, *, top: int) -> None:
    _console.print(build_heatmap_table(points, top=top))
    _console.print(build_stats_table(aggregator.stats()))


def _map_fence(settings: AppSettings, payload: str | None) -> GeofenceConstraint:
    """Fence drawn on the HTML map: the credential's when given, else the default one."""

    if payload is None:
        return _fence(settings, None, None, None)
    try:
        _, fence = geofence.parse(payload)
    except GeoQRError as exc:
        raise typer.BadParameter(str(exc), param_hint="--payload") from exc
    return fence


def _export(
    points: list,
    aggregator: SpatialAggregator,
    fence: GeofenceConstraint,
    *,
    html_out: Path | None = None,
    csv_out: Path | None = None,
    json_out: Path | None = None,
) -> None:
    if html_out:
        export_heatmap_html(points=points, output_path=html_out, stats=aggregator.stats(), fence=fence)
        _console.print(f"[green]Heatmap HTML:[/green] {html_out}")
    if csv_out:
        export_points_csv(points=points, output_path=csv_out)
        _console.print(f"[green]Heatmap CSV:[/green] {csv_out}")
    if json_out:
        export_points_json(points=points, output_path=json_out)
        _console.print(f"[green]Heatmap JSON:[/green] {json_out}")


@app.command()
def simulate(
    events: int = typer.Option(200, "--events", min=0, help="Number of synthetic events."),
    seed: int | None = typer.Option(None, "--seed", help="Override GEOQR_SYNTHETIC_SEED."),
    cell_size: float | None = typer.Option(None, "--cell-size", help="Grid cell size in degrees (> 0)."),
    top: int = typer.Option(10, "--top", min=1),
    payload: str | None = typer.Option(None, "--payload", help="Draw this credential's fence on the HTML map."),
    html_out: Path | None = typer.Option(None, "--html-out"),
    csv_out: Path | None = typer.Option(None, "--csv-out"),
    json_out: Path | None = typer.Option(None, "--json-out"),
    no_banner: bool = typer.Option(False, "--no-banner"),
) -> None:
    """Aggregate a deterministic batch of synthetic payments and project the heatmap."""

    settings = AppSettings()
    aggregator = SpatialAggregator.from_settings(settings)
    if cell_size is not None:
        try:
            grid = GridSpec(cell_size_deg=cell_size)
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="--cell-size") from exc
        aggregator = SpatialAggregator(grid, aggregator.retention)
    fence = _map_fence(settings, payload)
    projector = HeatmapProjector.from_settings(settings)

    if not no_banner:
        print_banner(_console)

    start_at = utc_now() - timedelta(seconds=events * settings.synthetic_interval_seconds)
    overrides: dict[str, object] = {"start_at": start_at}
    if seed is not None:
        overrides["seed"] = seed
    source = SyntheticEventSource.from_settings(settings, **overrides)

    subscription = aggregator.follow(source)
    source.pump(events)
    subscription.cancel()
    aggregator.trim()

    points = projector.project(aggregator.snapshot())
    _print_results(aggregator, points, top=top)
    _export(points, aggregator, fence, html_out=html_out, csv_out=csv_out, json_out=json_out)


@app.command()
def watch(
    seconds: float = typer.Option(30.0, "--seconds", min=0.1, help="How long to stream events."),
    refresh: float = typer.Option(1.0, "--refresh", min=0.05, help="Heatmap poll interval."),
    feed_url: str | None = typer.Option(None, "--feed-url", help="Poll this HTTP feed instead of synthetic events."),
    top: int = typer.Option(10, "--top", min=1),
    payload: str | None = typer.Option(None, "--payload", help="Draw this credential's fence on the HTML map."),
    html_out: Path | None = typer.Option(None, "--html-out"),
) -> None:
    """Stream live events into the aggregator and redraw only on changes."""

    settings = AppSettings()
    fence = _map_fence(settings, payload)
    aggregator = SpatialAggregator.from_settings(settings)
    projector = HeatmapProjector.from_settings(settings)

    url = feed_url or settings.feed_url
    source: HttpFeedEventSource | SyntheticEventSource
    if url:
        source = HttpFeedEventSource(url, settings=settings)
    else:
        source = SyntheticEventSource.from_settings(settings)

    def redraw(update: HeatmapUpdate) -> None:
        _console.print(
            f"[dim]v{update.version}[/dim] points={len(update.points)} "
            f"+{len(update.added)} -{len(update.removed)} ~{len(update.changed)}"
        )

    feed = HeatmapFeed(aggregator, projector, on_change=redraw)
    subscription = aggregator.follow(source)
    source.start()
    try:
        with RetentionReconciler(aggregator, settings.trim_interval_seconds):
            deadline = time.monotonic() + seconds
            while time.monotonic() < deadline:
                feed.poll()
                time.sleep(refresh)
    except KeyboardInterrupt:
        _console.print("[yellow]Interrupted.[/yellow]")
    finally:
        subscription.cancel()
        if isinstance(source, HttpFeedEventSource):
            source.close()
        else:
            source.stop()

    feed.poll()
    points = list(feed.points)
    _print_results(aggregator, points, top=top)
    _export(points, aggregator, fence, html_out=html_out)


def run() -> None:
    app()
