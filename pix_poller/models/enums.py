"""Enumerations for the PIX charge domain model."""

from enum import Enum


class ChargeStatus(str, Enum):
    """Gateway-defined lifecycle states of a PIX charge."""

    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


TERMINAL_SUCCESS = frozenset({ChargeStatus.PAID.value, ChargeStatus.CONFIRMED.value})
TERMINAL_FAILURE = frozenset(
    {ChargeStatus.FAILED.value, ChargeStatus.CANCELLED.value, ChargeStatus.EXPIRED.value}
)


class IdKind(str, Enum):
    """Identifier namespaces a charge can be looked up by."""

    INTERNAL = "internal"  # Backend payment record id
    EXTERNAL = "external"  # Gateway-issued id (pix_char_...)


class PollerPhase(str, Enum):
    """Lifecycle states of a status poller."""

    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"
