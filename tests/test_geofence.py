"""Tests for geofence credential issuance and verification."""

import json
import math
from datetime import timedelta

import pytest
from pydantic import ValidationError

from core.domain.errors import EmptyIdentifier, InvalidGeofence
from core.domain.models import GeofenceConstraint
from core.services.geofence import (
    PAYLOAD_PREFIX,
    contains,
    haversine_m,
    issue,
    parse,
    serialize,
    verify,
)

from .fixtures import DELHI, GURGAON, MUMBAI, T0


def _delhi_fence(radius_m: float = 100_000.0) -> GeofenceConstraint:
    return GeofenceConstraint.around(DELHI.lat, DELHI.lon, radius_m)


class TestIssue:
    """Tests for issue()."""

    def test_issue_stamps_time(self):
        """A credential carries payee, fence and an aware issue time."""
        credential = issue("merchant@bank", _delhi_fence(), now=T0)

        assert credential.payee == "merchant@bank"
        assert credential.fence == _delhi_fence()
        assert credential.issued_at == T0

    def test_issue_defaults_to_utc_now(self):
        credential = issue("merchant@bank", _delhi_fence())
        assert credential.issued_at.tzinfo is not None

    def test_issue_is_idempotent(self):
        """Identical inputs serialize to identical bytes; only issued_at differs."""
        first = issue("merchant@bank", _delhi_fence(), now=T0)
        second = issue("merchant@bank", _delhi_fence(), now=T0 + timedelta(minutes=5))

        assert serialize(first) == serialize(second)
        assert first.issued_at != second.issued_at

    @pytest.mark.parametrize(
        "lat, lon, radius_m",
        [
            (28.6, 77.2, 0.0),
            (28.6, 77.2, -1.0),
            (91.0, 77.2, 100.0),
            (28.6, -181.0, 100.0),
            (-90.5, 77.2, 100.0),
            (28.6, 180.5, 100.0),
            (math.nan, 77.2, 100.0),
            (28.6, 77.2, math.inf),
        ],
    )
    def test_invalid_fence_rejected(self, lat, lon, radius_m):
        """Bad radius or coordinates never produce a credential."""
        with pytest.raises(InvalidGeofence):
            issue("merchant@bank", GeofenceConstraint.around(lat, lon, radius_m))

    @pytest.mark.parametrize("lat, lon", [(90.0, 180.0), (-90.0, -180.0), (0.0, 0.0)])
    def test_boundary_coordinates_accepted(self, lat, lon):
        credential = issue("merchant@bank", GeofenceConstraint.around(lat, lon, 0.5))
        assert credential.fence.center.lat == lat

    @pytest.mark.parametrize("payee", ["", "   "])
    def test_empty_payee_rejected(self, payee):
        with pytest.raises(EmptyIdentifier):
            issue(payee, _delhi_fence())

    def test_credential_is_immutable(self):
        credential = issue("merchant@bank", _delhi_fence(), now=T0)
        with pytest.raises(ValidationError):
            credential.payee = "other@bank"


class TestSerialize:
    """Tests for the credential wire format."""

    def test_format(self):
        """Prefixed compact JSON with sorted keys and no issue time."""
        payload = serialize(issue("merchant@bank", _delhi_fence(), now=T0))

        assert payload.startswith(PAYLOAD_PREFIX.encode())
        body = payload[len(PAYLOAD_PREFIX):].decode("utf-8")
        assert body == (
            '{"fence":{"lat":28.6139,"lon":77.209,"radius_m":100000.0},'
            '"payee":"merchant@bank","v":1}'
        )
        assert "issued" not in body

    def test_non_ascii_payee_is_utf8(self):
        payload = serialize(issue("café@ybl", _delhi_fence(), now=T0))
        assert "café@ybl".encode("utf-8") in payload

    def test_different_fences_differ(self):
        a = serialize(issue("merchant@bank", _delhi_fence(100.0), now=T0))
        b = serialize(issue("merchant@bank", _delhi_fence(200.0), now=T0))
        assert a != b


class TestParse:
    """Tests for parse()."""

    def test_parse_inverts_serialize(self):
        credential = issue("merchant@bank", _delhi_fence(), now=T0)

        payee, fence = parse(serialize(credential))

        assert payee == "merchant@bank"
        assert fence == credential.fence

    def test_parse_accepts_text(self):
        payload = serialize(issue("merchant@bank", _delhi_fence(), now=T0)).decode("utf-8")
        assert parse(payload)[0] == "merchant@bank"

    @pytest.mark.parametrize(
        "payload",
        [
            "upi://pay?pa=merchant@bank",
            "geoqr:not-json",
            "geoqr:[]",
            'geoqr:{"v":1,"payee":"m@bank"}',
            'geoqr:{"v":2,"payee":"m@bank","fence":{"lat":1,"lon":1,"radius_m":5}}',
            'geoqr:{"v":1,"payee":"","fence":{"lat":1,"lon":1,"radius_m":5}}',
            'geoqr:{"v":1,"payee":"m@bank","fence":{"lat":1,"lon":1,"radius_m":0}}',
            b"geoqr:\xff\xfe",
        ],
    )
    def test_malformed_payload(self, payload):
        with pytest.raises(InvalidGeofence):
            parse(payload)


class TestContains:
    """Tests for fence membership."""

    def test_haversine_delhi_mumbai(self):
        """Delhi to Mumbai is roughly 1150 km."""
        assert 1_100_000 < haversine_m(DELHI, MUMBAI) < 1_200_000

    def test_haversine_same_point(self):
        assert haversine_m(DELHI, DELHI) == 0.0

    def test_contains(self):
        fence = _delhi_fence(100_000.0)
        assert contains(fence, GURGAON)
        assert not contains(fence, MUMBAI)

    def test_verify_payload(self):
        payload = serialize(issue("merchant@bank", _delhi_fence(50_000.0), now=T0))

        assert verify(payload, GURGAON)
        assert not verify(payload, MUMBAI)

    def test_payload_roundtrip_through_json(self):
        """The payload is plain JSON after its prefix."""
        payload = serialize(issue("merchant@bank", _delhi_fence(), now=T0))
        body = json.loads(payload[len(PAYLOAD_PREFIX):])
        assert body["fence"]["radius_m"] == 100_000.0
