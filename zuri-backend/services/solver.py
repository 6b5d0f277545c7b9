"""
Solver (solver loop).

Independently scheduled reconciler that turns posted intents into executed payouts.

Per tick:
1. Resolve payouts that timed out on earlier ticks, then retry ledger marks left
   over from earlier ticks (payout done, mark failed).
2. Fetch open intents from the intent ledger.
3. For each intent: claim it, execute the payout, mark it fulfilled, and settle
   the matching payment (if this service owns it) to PAID.

At-most-once payout: an intent is claimed before the payout starts, so a slow
payout can never be picked up again by a later tick. The claim is released only
when the payout itself failed. A payout that times out keeps its claim and is
parked until its thread finishes; its outcome decides between marking and
releasing, so a slow rail is never paid twice. Intents naming chains or assets
this service cannot pay are left open for other solvers.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, TypeVar

from domain.assets import UnsupportedAssetError
from domain.intent import FulfillmentIntent
from domain.payment import PaymentStatus
from providers.base import PayoutOrder, PayoutOutcomeUnknownError, call_with_timeout, submit_with_timeout
from repositories.intent_ledger import IntentNotFoundError
from repositories.payment_repository import StaleRecordError
from services.context import PaymentContext

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class SolverReport:
    """Outcome counts for one solver tick."""
    open_intents: int = 0
    paid: int = 0
    failed: int = 0
    skipped: int = 0


@dataclass(frozen=True)
class _PendingMark:
    intent: FulfillmentIntent
    payout_tx_reference: str


@dataclass(frozen=True)
class _InFlightPayout:
    intent: FulfillmentIntent
    future: "Future[str]"


class Solver:
    def __init__(self, context: PaymentContext) -> None:
        self.context = context
        self._pending_marks: Dict[str, _PendingMark] = {}
        self._in_flight: Dict[str, _InFlightPayout] = {}
        self._payout_pool = ThreadPoolExecutor(thread_name_prefix="solver-payout")

    @property
    def pending_marks(self) -> int:
        return len(self._pending_marks)

    @property
    def in_flight_payouts(self) -> int:
        return len(self._in_flight)

    def shutdown(self) -> None:
        """Stop accepting payouts; payouts already running are left to finish."""
        self._payout_pool.shutdown(wait=False)

    async def run_once(self) -> SolverReport:
        report = SolverReport()
        self._resolve_in_flight()
        await self._retry_pending_marks()

        try:
            intents = await self._call("Open intent listing", self.context.ledger.list_open_intents)
        except Exception:
            logger.exception("Failed to list open intents")
            return report

        report.open_intents = len(intents)
        for intent in intents:
            try:
                payout_reference = await self.fulfill(intent)
            except Exception:
                report.failed += 1
                logger.exception("Failed to fulfill intent %s", intent.intent_id)
                continue
            if payout_reference is None:
                report.skipped += 1
            else:
                report.paid += 1

        if intents:
            logger.info(
                "Solver tick: %d open, %d paid, %d failed, %d skipped",
                report.open_intents, report.paid, report.failed, report.skipped,
            )
        return report

    async def fulfill(self, intent: FulfillmentIntent) -> Optional[str]:
        """
        Pay one intent and mark it fulfilled.

        Returns the payout tx reference, or None if the intent was skipped
        (already fulfilled, claimed elsewhere, or not payable by this service).

        Raises:
            PayoutOutcomeUnknownError: the payout timed out; the intent stays claimed
            Whatever else the payout executor raised; the intent is released and stays open.
        """
        if intent.fulfilled:
            return None

        try:
            order = PayoutOrder.from_intent(intent)
        except UnsupportedAssetError as e:
            logger.debug("Skipping intent %s: %s", intent.intent_id, e)
            return None

        ledger = self.context.ledger
        if not ledger.claim(intent.intent_id):
            logger.debug("Intent %s already claimed", intent.intent_id)
            return None

        try:
            executor = self.context.executor_for(order.asset)
            logger.info(
                "Paying intent %s: %s %s to %s on %s via %s",
                intent.intent_id, order.amount, order.asset.value, order.dest_address,
                order.chain.value, executor.name,
            )
            payout_reference = await submit_with_timeout(
                self._payout_pool,
                "Payout",
                self.context.settings.external_call_timeout_seconds,
                executor.send_payout,
                order,
            )
        except PayoutOutcomeUnknownError as e:
            self._in_flight[intent.intent_id] = _InFlightPayout(intent, e.future)
            logger.error("Intent %s: %s; keeping the claim until the payout finishes", intent.intent_id, e)
            raise
        except Exception:
            ledger.release(intent.intent_id)
            raise

        self._pending_marks[intent.intent_id] = _PendingMark(intent, payout_reference)
        try:
            await self._complete(intent, payout_reference)
        except Exception:
            logger.exception(
                "Intent %s paid in %s but not marked fulfilled; retrying next tick",
                intent.intent_id, payout_reference,
            )
        return payout_reference

    def _resolve_in_flight(self) -> None:
        for intent_id, in_flight in list(self._in_flight.items()):
            future = in_flight.future
            if not future.done():
                logger.warning("Payout for intent %s is still running; intent stays claimed", intent_id)
                continue
            del self._in_flight[intent_id]
            error = None if future.cancelled() else future.exception()
            if future.cancelled() or error is not None:
                logger.error("Timed-out payout for intent %s failed (%s); releasing it", intent_id, error)
                self.context.ledger.release(intent_id)
                continue
            payout_reference = future.result()
            logger.info("Timed-out payout for intent %s landed in %s", intent_id, payout_reference)
            self._pending_marks[intent_id] = _PendingMark(in_flight.intent, payout_reference)

    async def _retry_pending_marks(self) -> None:
        for intent_id, pending in list(self._pending_marks.items()):
            try:
                await self._complete(pending.intent, pending.payout_tx_reference)
            except IntentNotFoundError:
                logger.error("Intent %s vanished from the ledger; dropping its pending mark", intent_id)
                self._pending_marks.pop(intent_id, None)
            except Exception:
                logger.exception("Retrying mark for intent %s failed", intent_id)

    async def _complete(self, intent: FulfillmentIntent, payout_reference: str) -> None:
        marked = await self._call(
            "Intent fulfillment", self.context.ledger.mark_fulfilled, intent.intent_id, payout_reference
        )
        self._pending_marks.pop(intent.intent_id, None)
        if not marked:
            logger.warning("Intent %s was already fulfilled", intent.intent_id)
        self._settle_payment(intent, payout_reference)

    def _settle_payment(self, intent: FulfillmentIntent, payout_reference: str) -> None:
        payments = self.context.payments
        record = payments.get(intent.payment_id)
        if record is None:
            logger.info("Intent %s belongs to no local payment (%s)", intent.intent_id, intent.payment_id)
            return
        if record.status is PaymentStatus.PAID:
            return
        if record.status is not PaymentStatus.INTENT_POSTED:
            logger.warning(
                "Payment %s is %s; not settling intent %s",
                record.payment_id, record.status.value, intent.intent_id,
            )
            return

        try:
            payments.transition(
                record.payment_id,
                PaymentStatus.PAID,
                expected_status=PaymentStatus.INTENT_POSTED,
                payout_tx_reference=payout_reference,
            )
        except StaleRecordError as e:
            logger.info("Payment %s settled concurrently: %s", record.payment_id, e)
            return
        logger.info("Payment %s paid in %s", record.payment_id, payout_reference)

    async def _call(self, label: str, fn: Callable[..., T], *args: Any) -> T:
        return await call_with_timeout(
            label, self.context.settings.external_call_timeout_seconds, fn, *args
        )
