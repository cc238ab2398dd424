"""
Registry of active payment views.

Each open payment view owns exactly one poller. Opening the same payment
again replaces (and stops) the previous poller; dismissing the view stops
it. Finished pollers stay registered so their final state can still be
read until the view is dismissed.
"""

import logging
from typing import Any, Callable, Optional

from pix_poller.engine.poller import EventHook, PaymentStatusPoller, PollerConfig
from pix_poller.gateway.base import ChargeReference, PaymentGateway, PixCharge
from pix_poller.store.record_store import PaymentRecordStore

logger = logging.getLogger("pix_poller.registry")


class PollerRegistry:
    def __init__(
        self,
        gateway: PaymentGateway,
        store: PaymentRecordStore,
        config: Optional[PollerConfig] = None,
        on_event: Optional[EventHook] = None,
        clock: Any = None,
    ):
        self.gateway = gateway
        self.store = store
        self._config = config
        self._on_event = on_event
        self._clock = clock
        self._pollers: dict[int, PaymentStatusPoller] = {}

    def __len__(self) -> int:
        return len(self._pollers)

    @property
    def active_count(self) -> int:
        return sum(1 for p in self._pollers.values() if p.is_running)

    def get(self, payment_id: int) -> Optional[PaymentStatusPoller]:
        return self._pollers.get(payment_id)

    async def watch(
        self,
        charge: PixCharge,
        on_completed: Optional[Callable[[], Any]] = None,
    ) -> PaymentStatusPoller:
        """Start polling a charge, replacing any poller already watching it."""
        previous = self._pollers.pop(charge.payment_id, None)
        if previous is not None:
            previous.stop()

        poller = PaymentStatusPoller(
            self.gateway,
            ChargeReference.for_charge(charge),
            expires_at=charge.expires_at,
            config=self._config,
            store=self.store,
            on_completed=on_completed,
            on_event=self._on_event,
            clock=self._clock,
        )
        self._pollers[charge.payment_id] = poller
        await self.store.record_event(
            "poller_started",
            payment_id=charge.payment_id,
            external_id=charge.external_id,
            details={"lookup": poller.lookup.kind.value, "replaced": previous is not None},
        )
        poller.start()
        logger.info("Watching payment %s (%d pollers registered)", charge.payment_id, len(self._pollers))
        return poller

    async def dismiss(self, payment_id: int) -> bool:
        """Stop and forget the poller of a payment view. False if none was registered."""
        poller = self._pollers.pop(payment_id, None)
        if poller is None:
            return False
        poller.stop()
        await self.store.record_event(
            "poller_dismissed",
            payment_id=payment_id,
            details={"phase": poller.phase.value, "checks": poller.state.checks},
        )
        return True

    def shutdown(self) -> None:
        """Stop every poller; used when the application exits."""
        for poller in self._pollers.values():
            poller.stop()
        logger.info("Stopped %d pollers", len(self._pollers))
        self._pollers.clear()
