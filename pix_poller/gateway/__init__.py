from pix_poller.gateway.base import (
    EXTERNAL_ID_PREFIX,
    ChargeId,
    ChargeReference,
    PaymentGateway,
    PixCharge,
    StatusCheck,
    StatusError,
    StatusOk,
    StatusResult,
)

__all__ = [
    "EXTERNAL_ID_PREFIX",
    "ChargeId",
    "ChargeReference",
    "PaymentGateway",
    "PixCharge",
    "StatusCheck",
    "StatusError",
    "StatusOk",
    "StatusResult",
]
