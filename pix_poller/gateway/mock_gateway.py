"""
Mock payment gateway for demos and tests.

Simulates the backend's behaviour:
  - Configurable latency (default 100ms)
  - Configurable failure rate for status lookups (default 5%)
  - Optional scripted status sequence, so a charge can be walked through
    pending -> processing -> paid deterministically
  - Realistic gateway charge ids (pix_char_...)
"""

import asyncio
import random
import uuid
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from pix_poller.config import settings
from pix_poller.engine.backoff import PermanentError
from pix_poller.gateway.base import (
    EXTERNAL_ID_PREFIX,
    PaymentGateway,
    PixCharge,
    StatusCheck,
    StatusError,
    StatusOk,
    StatusResult,
)
from pix_poller.models.enums import ChargeStatus, IdKind

# Scripted step producing a failed lookup instead of a status
FAIL = None


class MockPaymentGateway(PaymentGateway):
    """
    In-process gateway.

    With a script, each status lookup consumes the next step (a status
    string, or FAIL for a transport error); the last step repeats once the
    script is exhausted. Without a script, lookups report the charge's
    stored status, failing at random with `failure_rate`.
    """

    def __init__(
        self,
        script: Optional[Iterable[Optional[str]]] = None,
        failure_rate: Optional[float] = None,
        latency_ms: Optional[int] = None,
        amount: float = 150.0,
        base_amount: Optional[float] = None,
    ):
        self._script = list(script) if script is not None else None
        self._failure_rate = failure_rate if failure_rate is not None else settings.mock_failure_rate
        self._latency_ms = latency_ms if latency_ms is not None else settings.mock_latency_ms
        self._amount = amount
        self._base_amount = base_amount if base_amount is not None else amount
        self._charges: dict[int, PixCharge] = {}
        self.calls: list[tuple[IdKind, str]] = []

    @property
    def name(self) -> str:
        return "mock"

    async def _simulate_latency(self) -> None:
        if self._latency_ms > 0:
            jitter = random.uniform(0.5, 1.5)
            await asyncio.sleep(self._latency_ms * jitter / 1000)

    def _next_step(self, charge_id: str) -> Optional[str]:
        if self._script is not None:
            if not self._script:
                return FAIL
            if len(self._script) > 1:
                return self._script.pop(0)
            return self._script[0]

        if random.random() < self._failure_rate:
            return FAIL
        for charge in self._charges.values():
            if charge_id in (str(charge.payment_id), charge.external_id):
                return charge.status
        return ChargeStatus.PENDING.value

    async def _check(self, kind: IdKind, charge_id: str) -> StatusCheck:
        self.calls.append((kind, charge_id))
        await self._simulate_latency()

        status = self._next_step(charge_id)
        if status is FAIL:
            return StatusError(reason="Mock transient error: service temporarily unavailable", status_code=503)
        return StatusOk(
            StatusResult(
                charge_id=charge_id,
                status=status,
                amount=self._amount,
                base_amount=self._base_amount,
                description="Pagamento semanal",
            )
        )

    async def check_status_by_internal_id(self, payment_id: str) -> StatusCheck:
        return await self._check(IdKind.INTERNAL, payment_id)

    async def check_status_by_external_id(self, external_id: str) -> StatusCheck:
        return await self._check(IdKind.EXTERNAL, external_id)

    async def generate_pix_charge(self, payment_id: int) -> PixCharge:
        await self._simulate_latency()
        code = uuid.uuid4().hex
        charge = PixCharge(
            payment_id=payment_id,
            external_id=f"{EXTERNAL_ID_PREFIX}{code[:16]}",
            status=ChargeStatus.PENDING.value,
            amount=self._amount,
            base_amount=self._base_amount,
            description=f"Pagamento semanal #{payment_id}",
            qr_code=f"00020126580014br.gov.bcb.pix0136{code}",
            copy_paste=f"00020126580014br.gov.bcb.pix0136{code}5204000053039865802BR",
            created_at=datetime.now(timezone.utc).isoformat(),
            expires_at=datetime.now(timezone.utc) + timedelta(minutes=settings.charge_default_ttl_minutes),
        )
        self._charges[payment_id] = charge
        return charge

    async def get_pix_charge(self, payment_id: int) -> PixCharge:
        await self._simulate_latency()
        charge = self._charges.get(payment_id)
        if charge is None:
            raise PermanentError(f"No PIX charge for payment {payment_id}", status_code=404)
        return charge

    async def cancel_pix_charge(self, payment_id: int) -> str:
        charge = await self.get_pix_charge(payment_id)
        charge.status = ChargeStatus.CANCELLED.value
        return "Pagamento cancelado com sucesso"

    def settle(self, payment_id: int, status: str = ChargeStatus.PAID.value) -> None:
        """Mark a generated charge as settled out-of-band (the payer scanned the QR)."""
        self._charges[payment_id].status = status
