"""
Append-only audit trail for payment events seen by this client.

Every event that changes what we know about a payment gets an entry with:
  - Payment ID / gateway charge ID
  - Action (what happened)
  - Details (status, amounts, error messages)
  - Timestamp (UTC)

Entries are never modified or deleted.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from pix_poller.models.payment import AuditLog

logger = logging.getLogger("pix_poller.audit")


async def log_event(
    session: AsyncSession,
    action: str,
    payment_id: Optional[int] = None,
    external_id: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
) -> AuditLog:
    """
    Create an audit log entry in the caller's transaction.

    Args:
        session: Database session.
        action: What happened (e.g. "charge_opened", "payment_confirmed").
        payment_id: Internal payment id, when known.
        external_id: Gateway charge id, when known.
        details: Arbitrary context (serialized to JSON).

    Returns:
        The created AuditLog record.
    """
    entry = AuditLog(
        payment_id=payment_id,
        external_id=external_id,
        action=action,
        details=json.dumps(details, default=str) if details else None,
        timestamp=datetime.now(timezone.utc),
    )
    session.add(entry)
    logger.info(
        "AUDIT | payment=%s charge=%s action=%s | %s",
        payment_id if payment_id is not None else "-",
        external_id or "-",
        action,
        json.dumps(details, default=str)[:200] if details else "",
    )
    return entry
