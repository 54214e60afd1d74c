"""Domain errors.

Every error raised by the Core derives from `GeoQRError` so entry-points
(CLI, APIs) can translate them in a single place.
"""

from __future__ import annotations


class GeoQRError(Exception):
    """Base class for recoverable domain failures."""


class EmptyIdentifier(GeoQRError, ValueError):
    """Extraction produced an empty payee identifier; re-scan and retry."""


class InvalidGeofence(GeoQRError, ValueError):
    """Malformed center, non-positive radius or unreadable credential payload."""


class DecodeFailure(GeoQRError):
    """No usable text could be obtained from an image."""
