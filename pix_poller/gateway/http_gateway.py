"""
HTTP gateway for the rental backend's payment endpoints.

Endpoints used:
  POST /pix/generate               create a PIX charge for a payment
  GET  /pix/qrcode/{payment_id}    existing charge (QR + copy-paste code)
  POST /pix/cancel/{payment_id}    cancel the charge
  GET  /payments/{payment_id}      status by internal id
  GET  /pix/check-status/{ext_id}  status by gateway charge id

The backend reports the amount with late-payment interest separately
(`amount_with_interest`); when present it is the amount to pay.
"""

import logging
from datetime import datetime
from typing import Any, Optional

import httpx
from pydantic import AliasChoices, BaseModel, Field, ValidationError

from pix_poller.config import settings
from pix_poller.engine.backoff import GatewayError, error_for_status
from pix_poller.engine.countdown import as_utc
from pix_poller.gateway.base import (
    PaymentGateway,
    PixCharge,
    StatusCheck,
    StatusError,
    StatusOk,
    StatusResult,
)

logger = logging.getLogger("pix_poller.gateway")

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


class StatusPayload(BaseModel):
    status: str = Field(min_length=1)
    payment_id: Optional[int] = None
    id: Optional[int] = None
    abacate_pay_id: Optional[str] = None
    amount: float = 0.0
    amount_with_interest: Optional[float] = None
    base_amount: Optional[float] = None
    due_date: Optional[str] = None
    description: Optional[str] = None

    model_config = {"extra": "ignore"}


class ChargePayload(StatusPayload):
    payment_id: int
    qr_code: Optional[str] = None
    copy_paste_code: Optional[str] = None
    created_at: Optional[str] = None
    expires_at: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("expires_at", "expiration_date")
    )


def _payable_amount(payload: StatusPayload) -> float:
    return payload.amount_with_interest or payload.amount


def parse_status_payload(data: Any, charge_id: str) -> StatusCheck:
    """Turn a status response body into StatusOk, or StatusError if malformed."""
    if not isinstance(data, dict):
        return StatusError(reason=f"malformed status payload: {type(data).__name__}")
    try:
        payload = StatusPayload.model_validate(data)
    except ValidationError as e:
        return StatusError(reason=f"malformed status payload: {e.error_count()} error(s)")

    return StatusOk(
        StatusResult(
            charge_id=charge_id,
            status=payload.status,
            amount=_payable_amount(payload),
            base_amount=payload.base_amount or payload.amount,
            due_date=payload.due_date,
            description=payload.description,
        )
    )


def parse_charge_payload(data: Any) -> PixCharge:
    if not isinstance(data, dict):
        raise GatewayError(f"Malformed charge payload: {type(data).__name__}", retriable=False)
    try:
        payload = ChargePayload.model_validate(data)
    except ValidationError as e:
        raise GatewayError(f"Malformed charge payload: {e}", retriable=False) from e

    return PixCharge(
        payment_id=payload.payment_id,
        external_id=payload.abacate_pay_id,
        status=payload.status,
        amount=_payable_amount(payload),
        base_amount=payload.base_amount or payload.amount,
        due_date=payload.due_date,
        description=payload.description or "",
        qr_code=payload.qr_code,
        copy_paste=payload.copy_paste_code,
        created_at=payload.created_at,
        expires_at=as_utc(payload.expires_at) if payload.expires_at else None,
    )


class HttpPaymentGateway(PaymentGateway):
    """Gateway backed by the rental backend REST API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._token = token if token is not None else settings.api_token
        timeout_ms = timeout_ms if timeout_ms is not None else settings.api_timeout_ms
        self.http = http_client or httpx.AsyncClient(
            base_url=base_url or settings.api_base_url,
            timeout=timeout_ms / 1000,
            headers=DEFAULT_HEADERS,
        )

    @property
    def name(self) -> str:
        return "http"

    async def close(self) -> None:
        await self.http.aclose()

    def _headers(self) -> dict[str, str]:
        token = (self._token or "").strip()
        if not token:
            return {}
        return {"Authorization": f"Bearer {token}"}

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """
        Perform a request and return the decoded JSON body.

        Raises:
            GatewayError: Transport failure, non-2xx status or non-JSON body.
        """
        try:
            r = await self.http.request(method, path, headers=self._headers(), **kwargs)
        except httpx.TimeoutException as e:
            raise GatewayError(f"Timeout calling {method} {path}", status_code=408) from e
        except httpx.HTTPError as e:
            raise GatewayError(f"Transport error calling {method} {path}: {e}") from e

        if not r.is_success:
            raise error_for_status(
                r.status_code,
                f"{method} {path} returned {r.status_code}: {_error_message(r)}",
                retry_after=r.headers.get("Retry-After"),
            )
        try:
            return r.json()
        except ValueError as e:
            raise GatewayError(f"{method} {path} returned a non-JSON body") from e

    async def _check(self, path: str, charge_id: str) -> StatusCheck:
        try:
            data = await self._request("GET", path)
        except GatewayError as e:
            # 404 is expected while the backend has not registered the charge yet
            if e.status_code != 404:
                logger.warning("Status lookup %s failed: %s", path, e)
            return StatusError(reason=str(e), status_code=e.status_code)
        return parse_status_payload(data, charge_id)

    async def check_status_by_internal_id(self, payment_id: str) -> StatusCheck:
        return await self._check(f"/payments/{payment_id}", payment_id)

    async def check_status_by_external_id(self, external_id: str) -> StatusCheck:
        return await self._check(f"/pix/check-status/{external_id}", external_id)

    async def generate_pix_charge(self, payment_id: int) -> PixCharge:
        logger.info("Generating PIX charge for payment %s", payment_id)
        data = await self._request("POST", "/pix/generate", json={"payment_id": payment_id})
        return parse_charge_payload(data)

    async def get_pix_charge(self, payment_id: int) -> PixCharge:
        data = await self._request("GET", f"/pix/qrcode/{payment_id}")
        return parse_charge_payload(data)

    async def cancel_pix_charge(self, payment_id: int) -> str:
        logger.info("Cancelling PIX charge for payment %s", payment_id)
        data = await self._request("POST", f"/pix/cancel/{payment_id}")
        if isinstance(data, dict) and data.get("message"):
            return str(data["message"])
        return "Pagamento cancelado com sucesso"


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)[:200]
    return str(body)[:200]
