"""Shared test fixtures."""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from pix_poller.gateway.base import PixCharge
from pix_poller.models.payment import Base
from pix_poller.store.record_store import PaymentRecordStore


class FakeClock:
    """Clock the tests move by hand."""

    def __init__(self):
        self.ms = 1_000_000.0
        self.wall = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

    def monotonic_ms(self) -> float:
        return self.ms

    def now(self) -> datetime:
        return self.wall

    def advance(self, ms: float) -> None:
        self.ms += ms
        self.wall += timedelta(milliseconds=ms)


class Recorder:
    """Collects poller callbacks."""

    def __init__(self):
        self.statuses: list[str] = []
        self.completed = 0
        self.events: list[tuple[str, dict]] = []

    def on_status_change(self, status: str) -> None:
        self.statuses.append(status)

    def on_completed(self) -> None:
        self.completed += 1

    def on_event(self, event: str, details: dict) -> None:
        self.events.append((event, details))


async def settle(poller) -> None:
    """Wait for the poller's latest spawned check cycle to finish."""
    task = poller._check_task
    if task is not None:
        await task


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def recorder():
    return Recorder()


@pytest_asyncio.fixture
async def store():
    """Record store over a fresh in-memory database for each test."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield PaymentRecordStore(session_factory)

    await engine.dispose()


@pytest.fixture
def sample_charge():
    return PixCharge(
        payment_id=42,
        external_id="pix_char_abc123",
        status="pending",
        amount=162.5,
        base_amount=150.0,
        due_date="2026-03-02T00:00:00Z",
        description="Pagamento semanal",
        qr_code="000201...",
        copy_paste="000201...6304ABCD",
        expires_at=datetime(2026, 3, 2, 12, 30, tzinfo=timezone.utc),
    )
