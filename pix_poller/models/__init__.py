from pix_poller.models.enums import (
    TERMINAL_FAILURE,
    TERMINAL_SUCCESS,
    ChargeStatus,
    IdKind,
    PollerPhase,
)
from pix_poller.models.payment import AuditLog, Base, PaymentRecord

__all__ = [
    "Base",
    "PaymentRecord",
    "AuditLog",
    "ChargeStatus",
    "IdKind",
    "PollerPhase",
    "TERMINAL_SUCCESS",
    "TERMINAL_FAILURE",
]
