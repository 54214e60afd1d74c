"""Componentes de UI para CLI (Rich).

Por qué separar componentes:
- Evita mezclar lógica de comandos con detalles visuales.
- Permite reutilizar tablas/paneles en múltiples comandos.
"""

from __future__ import annotations

from typing import Sequence

from rich.align import Align
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from core.domain.models import GeoCredential, HeatPoint, ScannedPayload
from core.services.aggregator import AggregatorStats


def print_banner(console: Console) -> None:
    """Print the welcome banner (skipped in non-interactive modes)."""

    title = Text("Geo-QR", style="bold yellow")
    subtitle = Text("Geo-locked payment QR • Payment heatmaps", style="dim")
    body = Align.center(Text.assemble(title, "\n", subtitle), vertical="middle")
    console.print(Panel(body, border_style="yellow", padding=(1, 4)))


def build_payload_table(payload: ScannedPayload) -> Table:
    table = Table(title="Scanned payload", show_header=False)
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")
    table.add_row("Payee", Text(payload.payee) if payload.payee else "[red](empty)[/red]")
    table.add_row("Name", Text(payload.payee_name) if payload.payee_name else "-")
    table.add_row("Amount", f"{payload.amount:.2f}" if payload.amount is not None else "-")
    table.add_row("Currency", payload.currency or "-")
    table.add_row("Scheme", payload.scheme or "-")
    return table


def build_credential_panel(credential: GeoCredential, payload: bytes) -> Panel:
    """Panel presenting an issued credential and its QR payload."""

    fence = credential.fence
    body = Text()
    body.append("Payee: ", style="bold")
    body.append(f"{credential.payee}\n")
    body.append("Fence: ", style="bold")
    body.append(f"{fence.center.lat:.5f}, {fence.center.lon:.5f} • {fence.radius_m:,.0f} m\n")
    body.append("Issued: ", style="bold")
    body.append(f"{credential.issued_at.isoformat(timespec='seconds')}\n\n")
    body.append(payload.decode("utf-8"), style="dim")
    return Panel(body, title=Text("Hybrid QR credential", style="bold yellow"), border_style="yellow")


def build_heatmap_table(points: Sequence[HeatPoint], *, top: int = 10) -> Table:
    """Hottest `top` points, highest weight first."""

    table = Table(title="Heatmap")
    table.add_column("Lat", style="cyan", justify="right")
    table.add_column("Lon", style="cyan", justify="right")
    table.add_column("Weight", style="green", justify="right")
    table.add_column("", style="yellow")
    ranked = sorted(points, key=lambda p: (-p.weight, p.lat, p.lon))[:top]
    for p in ranked:
        table.add_row(f"{p.lat:.4f}", f"{p.lon:.4f}", f"{p.weight:.3f}", "█" * max(1, round(p.weight * 20)))
    return table


def build_stats_table(stats: AggregatorStats) -> Table:
    table = Table(title="Aggregator", show_header=False)
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", style="white", justify="right")
    table.add_row("Ingested", str(stats.ingested))
    table.add_row("Rejected", str(stats.rejected))
    table.add_row("Evicted", str(stats.evicted))
    table.add_row("Retained", str(stats.retained))
    table.add_row("Cells", str(stats.cells))
    return table
