"""
PIX Poller - payment confirmation service for the vehicle rental client.

Opens PIX charges against the rental backend and watches each one until
the payer settles it, the charge fails or expires, or the payment view is
closed.

Start the server:
    uvicorn pix_poller.main:app --reload

Use the in-process mock gateway instead of the backend:
    GATEWAY=mock uvicorn pix_poller.main:app
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from pix_poller.api.charges import router as charges_router
from pix_poller.api.health import router as health_router
from pix_poller.config import settings
from pix_poller.database import async_session, init_db
from pix_poller.engine.registry import PollerRegistry
from pix_poller.gateway.factory import get_gateway
from pix_poller.store.record_store import PaymentRecordStore

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database and gateway on startup; stop every poller on shutdown."""
    await init_db()
    gateway = get_gateway()
    app.state.registry = PollerRegistry(gateway, PaymentRecordStore(async_session))
    yield
    app.state.registry.shutdown()
    await gateway.close()


app = FastAPI(
    title="PIX Poller",
    description=(
        "Client-side PIX payment confirmation for vehicle rental invoices. "
        "Opens charges, polls their status with adaptive intervals and "
        "backoff, and records confirmations locally with an audit trail."
    ),
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(charges_router, prefix="/api")
