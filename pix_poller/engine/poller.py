"""
PIX payment confirmation poller.

A charge is paid out-of-band (the payer scans a QR code in their bank app),
so the client learns about settlement by asking the backend repeatedly.
One PaymentStatusPoller watches one charge:

  1. start() runs a check immediately, then each finished check arms the
     single timer for the next one
  2. processing -> fast interval, pending -> medium interval
  3. failed checks stretch the interval (capped exponential backoff) and
     are never raised to the caller
  4. paid/confirmed -> stop, update the record store, fire on_completed once
  5. failed/cancelled/expired from the gateway -> stop, no completion
  6. the charge's expires_at passing -> stop silently

Checks closer together than the de-dup window are skipped, and a response
that arrives after stop() is discarded.
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from pix_poller.config import settings
from pix_poller.engine.backoff import backoff_interval_ms, clamp_interval, interval_for_status
from pix_poller.engine.countdown import as_utc, resolve_expiry
from pix_poller.gateway.base import (
    ChargeReference,
    PaymentGateway,
    StatusCheck,
    StatusError,
    StatusOk,
    StatusResult,
)
from pix_poller.models.enums import TERMINAL_FAILURE, TERMINAL_SUCCESS, IdKind, PollerPhase
from pix_poller.store.record_store import PaymentRecordStore

logger = logging.getLogger("pix_poller.poller")

StatusCallback = Callable[[str], Any]
CompletedCallback = Callable[[], Any]
EventHook = Callable[[str, dict[str, Any]], None]


@dataclass(frozen=True)
class PollerConfig:
    pending_interval_ms: int = 5000
    processing_interval_ms: int = 2000
    max_interval_ms: int = 30000
    growth_factor: float = 1.5
    dedup_window_ms: int = 2000
    request_timeout_ms: int = 2000

    def __post_init__(self):
        if not 0 < self.processing_interval_ms <= self.pending_interval_ms <= self.max_interval_ms:
            raise ValueError(
                "Expected 0 < processing_interval_ms <= pending_interval_ms <= max_interval_ms, got "
                f"{self.processing_interval_ms}/{self.pending_interval_ms}/{self.max_interval_ms}"
            )
        if self.growth_factor < 1:
            raise ValueError(f"growth_factor must be >= 1, got {self.growth_factor}")
        if self.dedup_window_ms < 0 or self.request_timeout_ms <= 0:
            raise ValueError("dedup_window_ms must be >= 0 and request_timeout_ms > 0")

    @classmethod
    def from_settings(cls) -> "PollerConfig":
        return cls(
            pending_interval_ms=settings.poll_pending_interval_ms,
            processing_interval_ms=settings.poll_processing_interval_ms,
            max_interval_ms=settings.poll_max_interval_ms,
            growth_factor=settings.poll_backoff_growth,
            dedup_window_ms=settings.poll_dedup_window_ms,
            request_timeout_ms=settings.poll_request_timeout_ms,
        )


class SystemClock:
    """Monotonic milliseconds for spacing checks, UTC wall time for expiry."""

    def monotonic_ms(self) -> float:
        return time.monotonic() * 1000

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


@dataclass
class PollState:
    """Mutable polling state. Only the owning poller writes to it."""

    current_interval_ms: int
    consecutive_failures: int = 0
    last_checked_at_ms: Optional[float] = None
    last_status: Optional[str] = None
    next_delay_ms: Optional[int] = None
    checks: int = 0


class PaymentStatusPoller:
    """Watches a single PIX charge until it settles, fails, expires or is stopped."""

    def __init__(
        self,
        gateway: PaymentGateway,
        charge: ChargeReference,
        *,
        expires_at: Optional[datetime] = None,
        config: Optional[PollerConfig] = None,
        store: Optional[PaymentRecordStore] = None,
        on_status_change: Optional[StatusCallback] = None,
        on_completed: Optional[CompletedCallback] = None,
        on_event: Optional[EventHook] = None,
        clock: Any = None,
    ):
        self._gateway = gateway
        self.charge = charge
        self.lookup = charge.lookup_id()
        self.config = config or PollerConfig.from_settings()
        self._clock = clock or SystemClock()
        self._store = store
        self._on_status_change = on_status_change
        self._on_completed = on_completed
        self._on_event = on_event

        # Only a caller-supplied expiry ends polling; the default is for display
        self._hard_expiry = expires_at is not None
        if expires_at is not None:
            expires_at = as_utc(expires_at)
        self.expires_at = resolve_expiry(expires_at, self._clock.now())

        self.state = PollState(current_interval_ms=self.config.pending_interval_ms)
        self.phase = PollerPhase.IDLE
        self._timer: Optional[asyncio.TimerHandle] = None
        self._check_task: Optional[asyncio.Task] = None
        self._checking = False
        self._stopped = False

    @property
    def is_running(self) -> bool:
        return self.phase is PollerPhase.RUNNING

    @property
    def scheduled(self) -> bool:
        """True while a next check is armed."""
        return self._timer is not None

    def start(self) -> None:
        """Check now, then keep checking. No-op unless the poller is idle."""
        if self.phase is not PollerPhase.IDLE:
            return
        self.phase = PollerPhase.RUNNING
        self._emit("poller_started", {
            "lookup": self.lookup.kind.value,
            "id": self.lookup.value,
            "expires_at": self.expires_at.isoformat(),
        })
        self._spawn_check()

    def stop(self) -> None:
        """Cancel the pending check. Safe to call repeatedly or before start()."""
        self._stopped = True
        self._cancel_timer()
        if self.phase in (PollerPhase.IDLE, PollerPhase.RUNNING):
            self.phase = PollerPhase.STOPPED
            self._emit("poller_stopped", {"checks": self.state.checks})

    async def check_now(self) -> bool:
        """
        Run one status-check cycle.

        Returns False when the cycle was skipped: the poller is not running,
        a check is in flight, or the previous check started less than the
        de-dup window ago.
        """
        if self.phase is not PollerPhase.RUNNING:
            return False

        now_ms = self._clock.monotonic_ms()
        last = self.state.last_checked_at_ms
        if self._checking or (last is not None and now_ms - last < self.config.dedup_window_ms):
            logger.debug("Skipping status check for %s (in flight or too soon)", self.charge.label())
            if not self._checking and self._timer is None:
                self._arm(int(self.config.dedup_window_ms - (now_ms - last)))
            return False

        self.state.last_checked_at_ms = now_ms
        self.state.checks += 1
        self._checking = True
        try:
            outcome = await self._fetch()
        finally:
            self._checking = False

        if self.phase is not PollerPhase.RUNNING:
            logger.debug("Discarding status response for %s after stop", self.charge.label())
            return True

        if isinstance(outcome, StatusOk):
            await self._handle_success(outcome.result)
        else:
            self._handle_failure(outcome)
        return True

    async def _fetch(self) -> StatusCheck:
        if self.lookup.kind is IdKind.EXTERNAL:
            call = self._gateway.check_status_by_external_id(self.lookup.value)
        else:
            call = self._gateway.check_status_by_internal_id(self.lookup.value)

        try:
            return await asyncio.wait_for(call, timeout=self.config.request_timeout_ms / 1000)
        except asyncio.TimeoutError:
            return StatusError(reason=f"status check timed out after {self.config.request_timeout_ms}ms")
        except Exception as e:
            logger.exception("Gateway %s raised during status check", self._gateway.name)
            return StatusError(reason=f"unexpected gateway error: {e}")

    async def _handle_success(self, result: StatusResult) -> None:
        state = self.state
        state.consecutive_failures = 0
        state.last_status = result.status
        state.current_interval_ms = clamp_interval(
            interval_for_status(
                result.status,
                state.current_interval_ms,
                self.config.pending_interval_ms,
                self.config.processing_interval_ms,
            ),
            self.config.processing_interval_ms,
            self.config.max_interval_ms,
        )
        self._emit("status_checked", {"status": result.status, "interval_ms": state.current_interval_ms})

        await self._notify(self._on_status_change, result.status)
        if self.phase is not PollerPhase.RUNNING:
            return

        if result.status in TERMINAL_SUCCESS:
            await self._complete(result)
        elif result.status in TERMINAL_FAILURE:
            self._finish(PollerPhase.FAILED, {"status": result.status})
        elif self._expired():
            self._finish(PollerPhase.EXPIRED, {"last_status": result.status})
        else:
            self._arm(state.current_interval_ms)

    def _handle_failure(self, error: StatusError) -> None:
        state = self.state
        state.consecutive_failures += 1
        state.current_interval_ms = backoff_interval_ms(
            self.config.pending_interval_ms,
            state.consecutive_failures,
            self.config.growth_factor,
            self.config.max_interval_ms,
        )
        logger.warning(
            "Status check for %s failed (%d in a row): %s; next check in %dms",
            self.charge.label(),
            state.consecutive_failures,
            error.reason,
            state.current_interval_ms,
        )
        self._emit("status_check_failed", {
            "reason": error.reason,
            "status_code": error.status_code,
            "failures": state.consecutive_failures,
            "interval_ms": state.current_interval_ms,
        })

        if self._expired():
            self._finish(PollerPhase.EXPIRED, {"failures": state.consecutive_failures})
        else:
            self._arm(state.current_interval_ms)

    async def _complete(self, result: StatusResult) -> None:
        self._finish(PollerPhase.COMPLETED, {"status": result.status, "amount": result.amount})
        if self._store is not None:
            try:
                await self._store.mark_paid(self.charge, result)
            except Exception:
                logger.exception("Failed to update local record for charge %s", self.charge.label())
        # stop() may land while the store write is pending
        if self._stopped:
            logger.debug("Not signalling completion of %s, poller was stopped", self.charge.label())
            return
        await self._notify(self._on_completed)

    def _finish(self, phase: PollerPhase, details: dict[str, Any]) -> None:
        self._cancel_timer()
        self.phase = phase
        self._emit(f"poller_{phase.value}", details)

    def _expired(self) -> bool:
        return self._hard_expiry and self._clock.now() >= self.expires_at

    def _arm(self, delay_ms: int) -> None:
        """Replace any pending timer with one firing after `delay_ms`."""
        self._cancel_timer()
        delay_ms = max(0, delay_ms)
        self.state.next_delay_ms = delay_ms
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay_ms / 1000, self._on_timer)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        if self.phase is PollerPhase.RUNNING:
            self._spawn_check()

    def _spawn_check(self) -> None:
        task = asyncio.get_running_loop().create_task(self.check_now())
        task.add_done_callback(self._on_check_done)
        self._check_task = task

    def _on_check_done(self, task: asyncio.Task) -> None:
        """Keep polling alive when a cycle dies on an unexpected error."""
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return
        logger.error("Status check cycle for %s crashed", self.charge.label(), exc_info=error)
        if self.phase is PollerPhase.RUNNING and self._timer is None:
            self._arm(self.state.current_interval_ms)

    async def _notify(self, callback: Optional[Callable[..., Any]], *args: Any) -> None:
        if callback is None:
            return
        try:
            outcome = callback(*args)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.exception("Poller callback %r for charge %s raised", callback, self.charge.label())

    def _emit(self, event: str, details: dict[str, Any]) -> None:
        logger.info("POLL | charge=%s event=%s | %s", self.charge.label(), event, details)
        if self._on_event is None:
            return
        try:
            self._on_event(event, details)
        except Exception:
            logger.exception("Poller event hook raised for %s", event)
