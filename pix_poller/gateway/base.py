"""
Payment gateway interface.

The backend API exposes two status lookups, one per identifier namespace:
internal payment record ids and gateway-issued charge ids (prefixed with
`pix_char_`). Status lookups return a StatusOk / StatusError value instead
of raising, so the poller can treat failures as ordinary state. The
charge lifecycle calls (generate, fetch, cancel) raise GatewayError like
any other one-shot backend call.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from pix_poller.models.enums import IdKind

EXTERNAL_ID_PREFIX = "pix_char_"


@dataclass(frozen=True)
class ChargeId:
    """An identifier tagged with the namespace it belongs to."""

    kind: IdKind
    value: str


@dataclass(frozen=True)
class ChargeReference:
    """
    Both identifiers a charge may be known by, plus which one to look up.

    When both are present the preferred kind wins (external by default);
    when only one is present it is used regardless of preference.
    """

    internal_id: Optional[str] = None
    external_id: Optional[str] = None
    prefer: IdKind = IdKind.EXTERNAL

    def __post_init__(self):
        if not self.internal_id and not self.external_id:
            raise ValueError("ChargeReference needs an internal or an external id")

    def lookup_id(self) -> ChargeId:
        if self.internal_id and self.external_id:
            if self.prefer is IdKind.INTERNAL:
                return ChargeId(IdKind.INTERNAL, self.internal_id)
            return ChargeId(IdKind.EXTERNAL, self.external_id)
        if self.external_id:
            return ChargeId(IdKind.EXTERNAL, self.external_id)
        return ChargeId(IdKind.INTERNAL, self.internal_id)

    @property
    def payment_id(self) -> Optional[int]:
        """Internal id as the integer key used by the record store."""
        if self.internal_id and self.internal_id.isdigit():
            return int(self.internal_id)
        return None

    def label(self) -> str:
        return self.external_id or self.internal_id or "-"

    @classmethod
    def parse(cls, raw: str) -> "ChargeReference":
        """Build a reference from a bare id string coming from the outside world."""
        raw = (raw or "").strip()
        if raw.startswith(EXTERNAL_ID_PREFIX):
            return cls(external_id=raw)
        return cls(internal_id=raw)

    @classmethod
    def for_charge(cls, charge: "PixCharge") -> "ChargeReference":
        return cls(internal_id=str(charge.payment_id), external_id=charge.external_id or None)


@dataclass
class StatusResult:
    """Parsed answer of a status lookup."""

    charge_id: str
    status: str
    amount: float
    base_amount: float
    due_date: Optional[str] = None
    description: Optional[str] = None


@dataclass
class StatusOk:
    result: StatusResult


@dataclass
class StatusError:
    reason: str
    status_code: Optional[int] = None


StatusCheck = Union[StatusOk, StatusError]


def compute_late_fee(amount: float, base_amount: float) -> float:
    """Interest charged on top of the base amount, zero when paid on time."""
    return round(max(0.0, amount - base_amount), 2)


@dataclass
class PixCharge:
    """A PIX charge as returned by the generate/fetch endpoints."""

    payment_id: int
    status: str
    amount: float  # With late fee, when one applies
    base_amount: float
    external_id: Optional[str] = None
    due_date: Optional[str] = None
    description: str = ""
    qr_code: Optional[str] = None
    copy_paste: Optional[str] = None
    created_at: Optional[str] = None
    expires_at: Optional[datetime] = None

    @property
    def late_fee(self) -> float:
        return compute_late_fee(self.amount, self.base_amount)

    @property
    def has_late_fee(self) -> bool:
        return self.late_fee > 0


class PaymentGateway(ABC):
    """Abstract base class for the backend payment API."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Gateway identifier (e.g. 'http', 'mock')."""
        ...

    @abstractmethod
    async def check_status_by_internal_id(self, payment_id: str) -> StatusCheck:
        """Status of a charge looked up by backend payment id. Never raises."""
        ...

    @abstractmethod
    async def check_status_by_external_id(self, external_id: str) -> StatusCheck:
        """Status of a charge looked up by gateway charge id. Never raises."""
        ...

    @abstractmethod
    async def generate_pix_charge(self, payment_id: int) -> PixCharge:
        """
        Create (or re-issue) the PIX charge for a payment.

        Raises:
            GatewayError: On any failure.
        """
        ...

    @abstractmethod
    async def get_pix_charge(self, payment_id: int) -> PixCharge:
        """Fetch the existing PIX charge of a payment. Raises GatewayError."""
        ...

    @abstractmethod
    async def cancel_pix_charge(self, payment_id: int) -> str:
        """Cancel the PIX charge of a payment, returning the backend message."""
        ...

    async def close(self) -> None:
        return None
