"""Payee identifier extraction from raw scan text.

Raw text comes from any decode mechanism (camera frame, static image, manual
paste) and carries no structural guarantee. The extractor never fails: text
without a `pa=` parameter is used as-is, as a degraded identifier.
"""

from __future__ import annotations

import math
import re
from urllib.parse import unquote

from core.domain.errors import EmptyIdentifier
from core.domain.models import ScannedPayload

PAYEE_KEY = "pa"


def _find_param(raw: str, key: str, *, bounded: bool = False) -> str | None:
    """Return the value of the first `key=` occurrence, up to `&` or end of text.

    `bounded` only accepts the key at the start of the text or right after
    `?`, `&` or `;` (so `am=` does not match inside `name=`).
    """

    if bounded:
        match = re.search(rf"(?:^|[?&;]){re.escape(key)}=", raw)
        if match is None:
            return None
        start = match.end()
    else:
        marker = f"{key}="
        start = raw.find(marker)
        if start < 0:
            return None
        start += len(marker)
    end = raw.find("&", start)
    value = raw[start:] if end < 0 else raw[start:end]
    return unquote(value)


def extract(raw: str) -> str:
    """Extract the canonical payee identifier from `raw`.

    - `pa=` present (case-sensitive, first match wins): its URL-decoded value.
    - otherwise: `raw` unchanged.
    """

    value = _find_param(raw, PAYEE_KEY)
    if value is None:
        return raw
    return value


def require_identifier(raw: str) -> str:
    """`extract` and reject empty results before any credential is issued."""

    payee = extract(raw)
    if not payee.strip():
        raise EmptyIdentifier("scan produced an empty payee identifier; please re-scan")
    return payee


def _parse_amount(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        amount = float(value.strip())
    except ValueError:
        return None
    return amount if math.isfinite(amount) else None


def describe(raw: str) -> ScannedPayload:
    """Break a payment payload down for display (payee, name, amount, currency)."""

    scheme = None
    if "://" in raw:
        scheme = raw.split("://", 1)[0] or None

    name = _find_param(raw, "pn", bounded=True)
    currency = _find_param(raw, "cu", bounded=True)
    return ScannedPayload(
        raw=raw,
        payee=extract(raw),
        payee_name=name or None,
        amount=_parse_amount(_find_param(raw, "am", bounded=True)),
        currency=currency or None,
        scheme=scheme,
    )
