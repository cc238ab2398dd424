"""Gateway factory (returns the implementation selected in settings)."""

from pix_poller.config import settings
from pix_poller.gateway.base import PaymentGateway
from pix_poller.gateway.http_gateway import HttpPaymentGateway
from pix_poller.gateway.mock_gateway import MockPaymentGateway


def get_gateway() -> PaymentGateway:
    name = (settings.gateway or "http").strip().lower()
    if name == "mock":
        return MockPaymentGateway()
    if name == "http":
        return HttpPaymentGateway()
    raise ValueError(f"Unknown gateway: {settings.gateway!r} (expected 'http' or 'mock')")
