"""Tests for payee identifier extraction."""

from urllib.parse import quote

import pytest

from core.domain.errors import EmptyIdentifier
from core.services.identifier import describe, extract, require_identifier


class TestExtract:
    """Tests for extract()."""

    def test_upi_payload(self):
        """The payee handle is taken from the pa= parameter."""
        assert extract("upi://pay?pa=merchant@bank&am=250") == "merchant@bank"

    def test_pa_at_end_of_text(self):
        """A pa= value runs to the end of the text when no & follows."""
        assert extract("upi://pay?am=250&pa=shop%40okaxis") == "shop@okaxis"

    @pytest.mark.parametrize(
        "payee",
        ["merchant@bank", "a b@upi", "café@ybl", "x+y@paytm", "9876543210@okicici"],
    )
    def test_value_is_url_decoded(self, payee):
        """pa=X&... yields exactly X after URL decoding."""
        raw = f"upi://pay?pa={quote(payee)}&pn=Shop&am=10"
        assert extract(raw) == payee

    @pytest.mark.parametrize(
        "raw",
        [
            "merchant@bank,250",
            "https://example.com/checkout?id=42",
            "BEGIN:VCARD\nFN:Jane\nEND:VCARD",
            "just some text",
        ],
    )
    def test_without_pa_returns_text_unchanged(self, raw):
        """Text without pa= is used as a degraded identifier."""
        assert extract(raw) == raw

    def test_first_match_wins(self):
        """Only the first pa= occurrence is used."""
        assert extract("upi://pay?pa=first@bank&pa=second@bank") == "first@bank"

    def test_key_is_case_sensitive(self):
        """PA= is not the payee key."""
        assert extract("upi://pay?PA=merchant@bank") == "upi://pay?PA=merchant@bank"

    def test_empty_input(self):
        """Empty input yields an empty identifier, never an error."""
        assert extract("") == ""

    def test_empty_pa_value(self):
        """An empty pa= value extracts as empty."""
        assert extract("upi://pay?pa=&am=1") == ""

    def test_is_pure(self):
        """Same raw text, same identifier."""
        raw = "upi://pay?pa=merchant@bank&am=250"
        assert extract(raw) == extract(raw)


class TestRequireIdentifier:
    """Tests for require_identifier()."""

    def test_returns_identifier(self):
        assert require_identifier("upi://pay?pa=merchant@bank") == "merchant@bank"

    @pytest.mark.parametrize("raw", ["", "   ", "upi://pay?pa=&am=1"])
    def test_rejects_empty(self, raw):
        """Empty identifiers must be rejected before issuance."""
        with pytest.raises(EmptyIdentifier):
            require_identifier(raw)

    def test_empty_identifier_is_value_error(self):
        with pytest.raises(ValueError):
            require_identifier("")


class TestDescribe:
    """Tests for describe()."""

    def test_full_upi_payload(self):
        payload = describe("upi://pay?pa=merchant@bank&pn=Chai%20Point&am=250.50&cu=INR")

        assert payload.payee == "merchant@bank"
        assert payload.payee_name == "Chai Point"
        assert payload.amount == 250.5
        assert payload.currency == "INR"
        assert payload.scheme == "upi"

    def test_missing_fields_are_none(self):
        payload = describe("merchant@bank")

        assert payload.payee == "merchant@bank"
        assert payload.payee_name is None
        assert payload.amount is None
        assert payload.currency is None
        assert payload.scheme is None

    def test_amount_key_not_matched_inside_other_keys(self):
        """am= inside name= is not the amount."""
        payload = describe("upi://pay?pa=m@bank&name=42")
        assert payload.amount is None

    def test_unparsable_amount(self):
        assert describe("upi://pay?pa=m@bank&am=abc").amount is None
