"""Configuración del Core.

Por qué aquí:
- Centraliza variables de entorno (pydantic-settings) sin contaminar la CLI.
- Permite que adaptadores (feed HTTP, render de QR) y servicios lean el mismo contrato.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_user_config_dir() -> Path:
    """Per-user configuration directory (cross-platform, no dependencies)."""

    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / "geoqr"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "geoqr"

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "geoqr"
    return Path.home() / ".config" / "geoqr"


def get_user_env_file() -> Path:
    return get_user_config_dir() / ".env"


def _parse_env_lines(text: str) -> dict[str, str]:
    data: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key:
            data[key] = value
    return data


def write_user_env_vars(values: dict[str, str], *, env_path: Path | None = None) -> Path:
    """Write/update variables in the user's global .env."""

    env_path = env_path or get_user_env_file()
    env_path.parent.mkdir(parents=True, exist_ok=True)

    existing: dict[str, str] = {}
    if env_path.exists():
        existing = _parse_env_lines(env_path.read_text(encoding="utf-8"))

    existing.update({k: v for k, v in values.items() if v is not None})

    lines = ["# GeoQR user config (.env)"]
    for key in sorted(existing.keys()):
        lines.append(f"{key}={existing[key]}")
    env_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return env_path


class AppSettings(BaseSettings):
    """Central application configuration.

    Why pydantic-settings:
    - Typing + validation at the edge (env vars) without polluting the Core.
    - A single configuration contract for CLI, services and adapters.
    """

    model_config = SettingsConfigDict(
        env_prefix="GEOQR_",
        extra="ignore",
        case_sensitive=False,
        # Order: project first (dev), then the user's global config.
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
    )

    # Density grid
    cell_size_deg: float = Field(
        default=0.05,
        gt=0,
        le=10,
        description="Grid cell size in degrees used to discretize event locations.",
    )
    retention_max_age_seconds: float | None = Field(
        default=3600.0,
        gt=0,
        description="Events older than this are evicted by the retention pass (None = no age limit).",
    )
    retention_max_events: int | None = Field(
        default=10_000,
        ge=1,
        description="Maximum number of retained events (None = no count limit).",
    )
    trim_interval_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Cadence of the background retention pass (seconds).",
    )

    # Heatmap fallback (default coverage location)
    fallback_lat: float = Field(default=28.7041, ge=-90, le=90)
    fallback_lon: float = Field(default=77.1025, ge=-180, le=180)
    fallback_weight: float = Field(
        default=0.01,
        ge=0,
        le=1,
        description="Weight of the single point returned for an empty grid.",
    )

    # Default geofence attached to scanned payees
    default_fence_lat: float = Field(default=28.7041, ge=-90, le=90)
    default_fence_lon: float = Field(default=77.1025, ge=-180, le=180)
    default_fence_radius_m: float = Field(
        default=100_000.0,
        gt=0,
        description="Default geofence radius in meters.",
    )

    # Event sources
    synthetic_interval_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Emission interval of the synthetic event generator.",
    )
    synthetic_seed: int = Field(default=7, description="Seed of the synthetic event generator.")
    feed_url: str | None = Field(
        default=None,
        description="HTTP endpoint returning a JSON list of payment events.",
    )
    feed_poll_seconds: float = Field(default=5.0, gt=0)
    http_timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        description="Timeout per request (seconds).",
    )
    user_agent: str = Field(
        default="geoqr/0.1 (+https://local)",
        min_length=1,
        description="User-Agent for HTTP feed polling.",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Minimum log level (DEBUG/INFO/WARNING/ERROR).")
    log_json: bool = Field(default=False, description="Render logs as JSON instead of console lines.")
