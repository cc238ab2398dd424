"""Tests for the local payment record store."""

import pytest

from pix_poller.gateway.base import ChargeReference, StatusResult


def paid(status="paid", amount=162.5):
    return StatusResult(charge_id="pix_char_abc123", status=status, amount=amount, base_amount=150.0)


@pytest.mark.asyncio
async def test_save_and_get(store, sample_charge):
    await store.save_charge(sample_charge)

    record = await store.get(42)
    assert record.external_id == "pix_char_abc123"
    assert record.status == "pending"
    assert record.amount == 162.5
    assert record.base_amount == 150.0
    assert record.pix_copy_paste == "000201...6304ABCD"
    assert record.paid_at is None

    by_external = await store.find_by_external_id("pix_char_abc123")
    assert by_external.payment_id == 42


@pytest.mark.asyncio
async def test_save_again_overwrites(store, sample_charge):
    await store.save_charge(sample_charge)
    sample_charge.copy_paste = "000201...NEW"
    await store.save_charge(sample_charge)

    record = await store.get(42)
    assert record.pix_copy_paste == "000201...NEW"


@pytest.mark.asyncio
async def test_mark_paid_by_internal_id(store, sample_charge):
    await store.save_charge(sample_charge)
    await store.mark_paid(ChargeReference(internal_id="42", external_id="pix_char_abc123"), paid())

    record = await store.get(42)
    assert record.status == "paid"
    assert record.paid_at is not None


@pytest.mark.asyncio
async def test_mark_paid_by_external_id_only(store, sample_charge):
    await store.save_charge(sample_charge)
    await store.mark_paid(ChargeReference(external_id="pix_char_abc123"), paid("confirmed"))

    record = await store.get(42)
    assert record.status == "confirmed"


@pytest.mark.asyncio
async def test_mark_paid_creates_missing_record(store):
    await store.mark_paid(ChargeReference(internal_id="77"), paid())

    record = await store.get(77)
    assert record.status == "paid"
    assert record.amount == 162.5


@pytest.mark.asyncio
async def test_mark_paid_last_writer_wins(store, sample_charge):
    await store.save_charge(sample_charge)
    ref = ChargeReference.for_charge(sample_charge)
    await store.mark_paid(ref, paid(amount=162.5))
    await store.mark_paid(ref, paid("confirmed", amount=170.0))

    record = await store.get(42)
    assert record.status == "confirmed"
    assert record.amount == 170.0


@pytest.mark.asyncio
async def test_set_status(store, sample_charge):
    await store.save_charge(sample_charge)

    assert await store.set_status(42, "cancelled") is True
    assert await store.set_status(999, "cancelled") is False
    assert (await store.get(42)).status == "cancelled"


@pytest.mark.asyncio
async def test_audit_trail_in_order(store, sample_charge):
    await store.save_charge(sample_charge)
    await store.record_event("poller_started", payment_id=42, details={"lookup": "external"})
    await store.mark_paid(ChargeReference.for_charge(sample_charge), paid())

    events = await store.list_events(42)

    assert [e["action"] for e in events] == ["charge_opened", "poller_started", "payment_confirmed"]
    assert events[0]["details"]["amount"] == 162.5
    assert events[2]["details"] == {"status": "paid", "amount": 162.5}
