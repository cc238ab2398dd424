"""Tests for charge references and the expiry countdown."""

from datetime import datetime, timedelta, timezone

import pytest

from pix_poller.engine.countdown import as_utc, format_countdown, resolve_expiry, seconds_left
from pix_poller.gateway.base import ChargeReference, PixCharge
from pix_poller.models.enums import IdKind

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class TestChargeReference:
    def test_requires_an_id(self):
        with pytest.raises(ValueError):
            ChargeReference()
        with pytest.raises(ValueError):
            ChargeReference(internal_id="", external_id="")

    def test_parse_external(self):
        ref = ChargeReference.parse("pix_char_9f2c")
        assert ref.external_id == "pix_char_9f2c"
        assert ref.internal_id is None
        assert ref.lookup_id().kind is IdKind.EXTERNAL

    def test_parse_internal(self):
        ref = ChargeReference.parse(" 42 ")
        assert ref.internal_id == "42"
        assert ref.payment_id == 42
        assert ref.lookup_id().kind is IdKind.INTERNAL

    def test_for_charge_prefers_gateway_id(self):
        charge = PixCharge(payment_id=7, status="pending", amount=10.0, base_amount=10.0, external_id="pix_char_x")
        ref = ChargeReference.for_charge(charge)
        assert ref.lookup_id().value == "pix_char_x"
        assert ref.payment_id == 7

    def test_for_charge_without_gateway_id(self):
        charge = PixCharge(payment_id=7, status="pending", amount=10.0, base_amount=10.0)
        assert ChargeReference.for_charge(charge).lookup_id().value == "7"

    def test_late_fee(self):
        charge = PixCharge(payment_id=7, status="pending", amount=162.5, base_amount=150.0)
        assert charge.has_late_fee
        assert charge.late_fee == 12.5


class TestCountdown:
    def test_default_expiry_is_thirty_minutes(self):
        assert resolve_expiry(None, NOW) == NOW + timedelta(minutes=30)

    def test_given_expiry_wins(self):
        expiry = NOW + timedelta(minutes=5)
        assert resolve_expiry(expiry, NOW) == expiry

    def test_seconds_left_floors(self):
        assert seconds_left(NOW + timedelta(seconds=90, milliseconds=900), NOW) == 90

    def test_seconds_left_never_negative(self):
        assert seconds_left(NOW - timedelta(minutes=1), NOW) == 0

    @pytest.mark.parametrize(
        "seconds, text",
        [(0, "00:00"), (59, "00:59"), (61, "01:01"), (1800, "30:00"), (3725, "62:05"), (-5, "00:00")],
    )
    def test_format(self, seconds, text):
        assert format_countdown(seconds) == text

    def test_as_utc(self):
        naive = datetime(2026, 3, 2, 12, 0)
        assert as_utc(naive) == NOW
        assert as_utc(NOW) is NOW
