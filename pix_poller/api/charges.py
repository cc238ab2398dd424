"""
PIX charge endpoints (the payment view's backend).

POST   /charges/{id}/pix      - Open the payment view: reuse or create the PIX charge and start polling.
GET    /charges/{id}          - Charge details, countdown and live polling state.
GET    /charges/lookup/{ref}  - Same, by payment id or `pix_char_` charge id.
POST   /charges/{id}/refresh  - Manual status check (subject to the de-dup window).
DELETE /charges/{id}/watch    - Close the payment view (stops polling).
POST   /charges/{id}/cancel   - Cancel the charge on the backend.
GET    /charges/{id}/trace    - Audit trail for the payment.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import BaseModel

from pix_poller.config import settings
from pix_poller.engine.backoff import GatewayError, with_retry
from pix_poller.engine.countdown import as_utc, format_countdown, resolve_expiry, seconds_left
from pix_poller.engine.poller import PaymentStatusPoller
from pix_poller.engine.registry import PollerRegistry
from pix_poller.gateway.base import ChargeReference, PixCharge, compute_late_fee
from pix_poller.models.enums import ChargeStatus
from pix_poller.models.payment import PaymentRecord

logger = logging.getLogger("pix_poller.api")

router = APIRouter(prefix="/charges", tags=["charges"])


def get_registry(request: Request) -> PollerRegistry:
    return request.app.state.registry


class PollingView(BaseModel):
    phase: str
    lookup: str
    last_status: Optional[str]
    interval_ms: int
    consecutive_failures: int
    checks: int


class ChargeView(BaseModel):
    payment_id: int
    external_id: Optional[str]
    status: str
    amount: float
    base_amount: float
    late_fee: float
    has_late_fee: bool
    due_date: Optional[str]
    description: Optional[str]
    pix_qr_code: Optional[str]
    pix_copy_paste: Optional[str]
    expires_at: str
    seconds_left: int
    countdown: str
    polling: Optional[PollingView] = None


class RefreshResponse(BaseModel):
    checked: bool
    polling: PollingView


class AuditEntry(BaseModel):
    id: int
    action: str
    details: Optional[dict] = None
    timestamp: Optional[str]


def _polling_view(poller: PaymentStatusPoller) -> PollingView:
    return PollingView(
        phase=poller.phase.value,
        lookup=poller.lookup.kind.value,
        last_status=poller.state.last_status,
        interval_ms=poller.state.current_interval_ms,
        consecutive_failures=poller.state.consecutive_failures,
        checks=poller.state.checks,
    )


def _charge_view(record: PaymentRecord, poller: Optional[PaymentStatusPoller]) -> ChargeView:
    now = datetime.now(timezone.utc)
    if poller is not None:
        expires_at = poller.expires_at
    else:
        expires_at = resolve_expiry(as_utc(record.expires_at) if record.expires_at else None, now)
    remaining = seconds_left(expires_at, now)
    fee = compute_late_fee(record.amount, record.base_amount)

    status = record.status
    if poller is not None and poller.state.last_status:
        status = poller.state.last_status

    return ChargeView(
        payment_id=record.payment_id,
        external_id=record.external_id,
        status=status,
        amount=record.amount,
        base_amount=record.base_amount,
        late_fee=fee,
        has_late_fee=fee > 0,
        due_date=record.due_date,
        description=record.description,
        pix_qr_code=record.pix_qr_code,
        pix_copy_paste=record.pix_copy_paste,
        expires_at=expires_at.isoformat(),
        seconds_left=remaining,
        countdown=format_countdown(remaining),
        polling=_polling_view(poller) if poller is not None else None,
    )


async def _open_charge(registry: PollerRegistry, payment_id: int) -> PixCharge:
    """Reuse the payment's existing PIX charge, generating one if there is none."""
    try:
        return await with_retry(
            registry.gateway.get_pix_charge, payment_id, max_retries=settings.api_retry_attempts
        )
    except GatewayError as e:
        logger.info("No reusable PIX charge for payment %s (%s); generating", payment_id, e)

    try:
        return await registry.gateway.generate_pix_charge(payment_id)
    except GatewayError as e:
        status = 404 if e.status_code == 404 else 502
        raise HTTPException(status_code=status, detail=f"Could not generate PIX charge: {e}")


@router.post("/{payment_id}/pix", response_model=ChargeView, status_code=201)
async def open_charge(payment_id: int, registry: PollerRegistry = Depends(get_registry)):
    """
    Open the payment view for a payment.

    Fetches (or creates) the PIX charge, stores it locally and starts the
    status poller. Opening the same payment twice restarts its poller.
    """
    charge = await _open_charge(registry, payment_id)
    if charge.has_late_fee:
        logger.info("Payment %s is overdue: late fee %.2f on %.2f", payment_id, charge.late_fee, charge.base_amount)
    record = await registry.store.save_charge(charge)
    poller = await registry.watch(charge)
    return _charge_view(record, poller)


@router.get("/lookup/{reference}", response_model=ChargeView)
async def lookup_charge(reference: str, registry: PollerRegistry = Depends(get_registry)):
    """Find a charge by its payment id or by its `pix_char_` charge id."""
    try:
        ref = ChargeReference.parse(reference)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if ref.external_id:
        record = await registry.store.find_by_external_id(ref.external_id)
    elif ref.payment_id is not None:
        record = await registry.store.get(ref.payment_id)
    else:
        raise HTTPException(status_code=400, detail=f"Not a payment or charge id: {reference}")

    if not record:
        raise HTTPException(status_code=404, detail=f"Charge not found: {reference}")
    return _charge_view(record, registry.get(record.payment_id))


@router.get("/{payment_id}", response_model=ChargeView)
async def get_charge(payment_id: int, registry: PollerRegistry = Depends(get_registry)):
    record = await registry.store.get(payment_id)
    if not record:
        raise HTTPException(status_code=404, detail=f"Payment not found: {payment_id}")
    return _charge_view(record, registry.get(payment_id))


@router.post("/{payment_id}/refresh", response_model=RefreshResponse)
async def refresh_charge(payment_id: int, registry: PollerRegistry = Depends(get_registry)):
    """Check the status right away instead of waiting for the next scheduled check."""
    poller = registry.get(payment_id)
    if poller is None:
        raise HTTPException(status_code=404, detail=f"Payment is not being watched: {payment_id}")
    checked = await poller.check_now()
    return RefreshResponse(checked=checked, polling=_polling_view(poller))


@router.delete("/{payment_id}/watch", status_code=204)
async def dismiss_charge(payment_id: int, registry: PollerRegistry = Depends(get_registry)):
    if not await registry.dismiss(payment_id):
        raise HTTPException(status_code=404, detail=f"Payment is not being watched: {payment_id}")
    return Response(status_code=204)


@router.post("/{payment_id}/cancel")
async def cancel_charge(payment_id: int, registry: PollerRegistry = Depends(get_registry)):
    try:
        message = await registry.gateway.cancel_pix_charge(payment_id)
    except GatewayError as e:
        status = 404 if e.status_code == 404 else 502
        raise HTTPException(status_code=status, detail=f"Could not cancel PIX charge: {e}")

    await registry.dismiss(payment_id)
    await registry.store.set_status(payment_id, ChargeStatus.CANCELLED.value)
    return {"payment_id": payment_id, "message": message}


@router.get("/{payment_id}/trace", response_model=list[AuditEntry])
async def get_charge_trace(payment_id: int, registry: PollerRegistry = Depends(get_registry)):
    """Every audit entry recorded for the payment, oldest first."""
    record = await registry.store.get(payment_id)
    if not record:
        raise HTTPException(status_code=404, detail=f"Payment not found: {payment_id}")
    return [AuditEntry(**event) for event in await registry.store.list_events(payment_id)]
