"""Doctor command for environment diagnostics."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from adapters.http_client import build_async_client
from adapters.qr_image import render_png
from core.config import AppSettings, write_user_env_vars

app = typer.Typer(no_args_is_help=True, help="Environment diagnostics and configuration checks.")

_console = Console()


async def _check_http(url: str, settings: AppSettings) -> tuple[bool, str]:
    try:
        async with build_async_client(settings) as client:
            response = await client.get(url)
        return True, f"HTTP {response.status_code}"
    except Exception as exc:
        return False, str(exc)


def _check_qr_render() -> tuple[bool, str]:
    """Render a tiny QR to detect qrcode/Pillow issues."""

    try:
        png = render_png(b"geoqr:doctor")
        return png.startswith(b"\x89PNG"), f"{len(png)} bytes"
    except Exception as exc:
        return False, str(exc)


def _check_qr_decoder() -> tuple[bool, str]:
    """pyzbar needs the native zbar library; import it to find out."""

    try:
        from adapters.qr_decoder import decode_image  # noqa: F401, PLC0415

        return True, "OK"
    except Exception as exc:
        return False, str(exc)


@app.command()
def run() -> None:
    """Run baseline diagnostics and show recommended fixes."""

    settings = AppSettings()

    table = Table(title="Geo-QR Doctor")
    table.add_column("Check", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    # Config
    table.add_row("Grid cell size", "OK", f"{settings.cell_size_deg} deg")
    table.add_row(
        "Retention",
        "OK",
        f"max_age={settings.retention_max_age_seconds}s max_events={settings.retention_max_events}",
    )
    table.add_row(
        "Default fence",
        "OK",
        f"{settings.default_fence_lat}, {settings.default_fence_lon} ({settings.default_fence_radius_m:,.0f} m)",
    )

    ok_render, detail_render = _check_qr_render()
    table.add_row("QR render", "OK" if ok_render else "FAIL", detail_render)

    ok_decode, detail_decode = _check_qr_decoder()
    table.add_row("QR decode (zbar)", "OK" if ok_decode else "OPTIONAL", detail_decode)

    if settings.feed_url:
        ok_http, detail_http = asyncio.run(_check_http(settings.feed_url, settings))
        table.add_row("Event feed", "OK" if ok_http else "FAIL", detail_http)
    else:
        table.add_row("Event feed", "OPTIONAL", "No feed URL set -> synthetic events only")

    _console.print(table)

    if not ok_decode:
        _console.print(
            "\n[yellow]Note:[/yellow] Install the zbar system library to enable `geoqr scan`; "
            "`geoqr issue` works with pasted text."
        )


@app.command(name="set-defaults")
def set_defaults() -> None:
    """Interactive setup of the default geofence (stored in the user config .env)."""

    settings = AppSettings()

    lat = typer.prompt("Fence latitude", default=settings.default_fence_lat, type=float)
    lon = typer.prompt("Fence longitude", default=settings.default_fence_lon, type=float)
    radius = typer.prompt("Fence radius (m)", default=settings.default_fence_radius_m, type=float)
    feed_url = typer.prompt("Event feed URL (empty = none)", default="", show_default=False).strip()

    if not -90 <= lat <= 90 or not -180 <= lon <= 180 or radius <= 0:
        raise typer.BadParameter("latitude/longitude out of range or non-positive radius")

    values = {
        "GEOQR_DEFAULT_FENCE_LAT": str(lat),
        "GEOQR_DEFAULT_FENCE_LON": str(lon),
        "GEOQR_DEFAULT_FENCE_RADIUS_M": str(radius),
    }
    if feed_url:
        values["GEOQR_FEED_URL"] = feed_url

    env_path = write_user_env_vars(values)
    _console.print(f"[green]Saved defaults to:[/green] {env_path}")
