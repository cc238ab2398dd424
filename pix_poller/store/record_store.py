"""
Local payment record store.

Holds the last known status, amounts and expiry of each PIX payment the
client has opened, plus the audit trail. The status poller writes here
once, when it observes a terminal-success status; that write is a single
UPDATE (last writer wins), never a read-modify-write.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pix_poller.audit.logger import log_event
from pix_poller.gateway.base import ChargeReference, PixCharge, StatusResult
from pix_poller.models.payment import AuditLog, PaymentRecord

logger = logging.getLogger("pix_poller.store")


class PaymentRecordStore:
    """Async access to PaymentRecord rows and their audit entries."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def save_charge(self, charge: PixCharge) -> PaymentRecord:
        """Insert or overwrite the record for a freshly opened charge."""
        async with self._session_factory() as session:
            record = await session.merge(
                PaymentRecord(
                    payment_id=charge.payment_id,
                    external_id=charge.external_id,
                    amount=charge.amount,
                    base_amount=charge.base_amount,
                    status=charge.status,
                    due_date=charge.due_date,
                    description=charge.description,
                    pix_qr_code=charge.qr_code,
                    pix_copy_paste=charge.copy_paste,
                    expires_at=charge.expires_at,
                )
            )
            await log_event(
                session,
                "charge_opened",
                payment_id=charge.payment_id,
                external_id=charge.external_id,
                details={
                    "status": charge.status,
                    "amount": charge.amount,
                    "base_amount": charge.base_amount,
                    "expires_at": charge.expires_at.isoformat() if charge.expires_at else None,
                },
            )
            await session.commit()
            return record

    async def get(self, payment_id: int) -> Optional[PaymentRecord]:
        async with self._session_factory() as session:
            return await session.get(PaymentRecord, payment_id)

    async def find_by_external_id(self, external_id: str) -> Optional[PaymentRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(PaymentRecord).where(PaymentRecord.external_id == external_id)
            )
            return result.scalar_one_or_none()

    async def mark_paid(self, charge: ChargeReference, result: StatusResult) -> None:
        """Record a terminal-success status observed by the poller."""
        now = datetime.now(timezone.utc)
        values = {
            "status": result.status,
            "amount": result.amount,
            "base_amount": result.base_amount,
            "paid_at": now,
            "updated_at": now,
        }
        payment_id = charge.payment_id
        if payment_id is not None:
            where = PaymentRecord.payment_id == payment_id
        else:
            where = PaymentRecord.external_id == charge.external_id

        async with self._session_factory() as session:
            res = await session.execute(update(PaymentRecord).where(where).values(**values))
            if res.rowcount == 0:
                if payment_id is None:
                    logger.warning("No local record for charge %s; confirmation not stored", charge.label())
                else:
                    session.add(
                        PaymentRecord(
                            payment_id=payment_id,
                            external_id=charge.external_id,
                            due_date=result.due_date,
                            description=result.description,
                            **values,
                        )
                    )

            await log_event(
                session,
                "payment_confirmed",
                payment_id=payment_id,
                external_id=charge.external_id,
                details={"status": result.status, "amount": result.amount},
            )
            await session.commit()

    async def set_status(self, payment_id: int, status: str) -> bool:
        """Overwrite the stored status. Returns False if the payment is unknown."""
        async with self._session_factory() as session:
            res = await session.execute(
                update(PaymentRecord)
                .where(PaymentRecord.payment_id == payment_id)
                .values(status=status, updated_at=datetime.now(timezone.utc))
            )
            await log_event(session, "status_set", payment_id=payment_id, details={"status": status})
            await session.commit()
            return res.rowcount > 0

    async def record_event(
        self,
        action: str,
        payment_id: Optional[int] = None,
        external_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        async with self._session_factory() as session:
            await log_event(session, action, payment_id=payment_id, external_id=external_id, details=details)
            await session.commit()

    async def list_events(self, payment_id: int) -> list[dict[str, Any]]:
        """Audit trail of a payment, oldest first, with details decoded."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(AuditLog)
                .where(AuditLog.payment_id == payment_id)
                .order_by(AuditLog.timestamp.asc(), AuditLog.id.asc())
            )
            logs = result.scalars().all()

        events = []
        for log in logs:
            details = None
            if log.details:
                try:
                    details = json.loads(log.details)
                except (json.JSONDecodeError, TypeError):
                    details = {"raw": log.details}
            events.append({
                "id": log.id,
                "action": log.action,
                "details": details,
                "timestamp": log.timestamp.isoformat() if log.timestamp else None,
            })
        return events
