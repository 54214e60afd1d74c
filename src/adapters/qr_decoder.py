"""Decode image bytes into raw QR text (pyzbar + Pillow).

Only the first non-empty symbol is returned; the Core treats the result as an
opaque `RawScanResult`.
"""

from __future__ import annotations

import io

from PIL import Image, UnidentifiedImageError
from pyzbar.pyzbar import decode as decode_zbar

from core.domain.errors import DecodeFailure


def load_image_bytes(image_bytes: bytes) -> Image.Image:
    """Robust loader from raw bytes -> PIL image."""

    try:
        img = Image.open(io.BytesIO(image_bytes))
        img.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise DecodeFailure(f"unreadable image: {exc}") from exc
    if img.mode not in ("RGB", "L"):
        img = img.convert("RGB")
    return img


def decode_image(image_bytes: bytes) -> str:
    """Return the text of the first QR symbol found, or raise `DecodeFailure`."""

    img = load_image_bytes(image_bytes)
    for symbol in decode_zbar(img):
        text = symbol.data.decode("utf-8", errors="replace").strip()
        if text:
            return text
    raise DecodeFailure("no QR code found in image")
