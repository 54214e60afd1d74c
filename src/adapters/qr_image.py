"""QR image rendering for serialized credentials.

The payload is opaque here: whatever bytes the geofence encoder produced are
embedded as-is. Browser consumers get a `data:image/png;base64,...` URI from
`to_data_uri`.
"""

from __future__ import annotations

import base64
import io
from pathlib import Path

import qrcode
from qrcode.constants import ERROR_CORRECT_M


def render_png(payload: bytes | str, *, box_size: int = 10, border: int = 4) -> bytes:
    """Encode `payload` into a PNG QR image and return its bytes."""

    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def to_data_uri(png: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


def export_png(payload: bytes | str, *, output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(render_png(payload))
    return output_path
