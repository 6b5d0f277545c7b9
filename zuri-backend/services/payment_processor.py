"""
Payment processor (worker loop).

Each tick scans the payments that are past CREATED and not yet terminal and moves
every one of them forward by at most one step:

    WAITING_FOR_FUNDING  verify the funding tx           -> FUNDED (or stay)
    FUNDED               burn, if the policy burns       -> PRIVACY_BURNED
    FUNDED / BURNED      post the fulfillment intent     -> INTENT_POSTED
    INTENT_POSTED        solver mode: adopt a fulfilled intent's payout -> PAID
                         worker mode: pay, mark the intent fulfilled    -> PAID

Failure handling per payment:
- not funded yet / intent still open: no-op, retried next tick
- TransientProviderError: no-op, retried next tick
- StaleRecordError: someone else moved the payment; skipped
- step timeout or any other exception: ERROR with the diagnostic text; a timed-out
  worker-mode payout keeps its intent claimed so it is never sent twice

One payment failing never stops the rest of the pass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar
from uuid import uuid4

from domain.assets import format_amount, resolve_dest_chain, to_atomic
from domain.intent import FulfillmentIntent
from domain.payment import PaymentInvariantError, PaymentRecord, PaymentStatus
from domain.time import utc_now
from providers.base import (
    DepositCheck,
    PayoutOrder,
    StepTimeoutError,
    TransientProviderError,
    call_with_timeout,
)
from repositories.intent_ledger import IntentNotFoundError
from repositories.payment_repository import StaleRecordError
from services.context import PaymentContext
from settings import BurnPolicy, PayoutMode

logger = logging.getLogger(__name__)

T = TypeVar("T")

ACTIVE_STATUSES = (
    PaymentStatus.WAITING_FOR_FUNDING,
    PaymentStatus.FUNDED,
    PaymentStatus.PRIVACY_BURNED,
    PaymentStatus.INTENT_POSTED,
)


@dataclass
class ProcessingReport:
    """Outcome counts for one processor tick."""
    scanned: int = 0
    advanced: int = 0
    failed: int = 0
    deferred: int = 0


class PaymentProcessor:
    def __init__(self, context: PaymentContext) -> None:
        self.context = context

    @property
    def timeout_seconds(self) -> float:
        return self.context.settings.external_call_timeout_seconds

    async def run_once(self) -> ProcessingReport:
        """Run one pass over every active payment."""

        report = ProcessingReport()
        for record in self.context.payments.list_by_status(*ACTIVE_STATUSES):
            report.scanned += 1
            outcome = await self.process_payment(record)
            if outcome is None:
                report.deferred += 1
            elif outcome.status is PaymentStatus.ERROR:
                report.failed += 1
            else:
                report.advanced += 1

        if report.scanned:
            logger.debug(
                "Processor tick: %d scanned, %d advanced, %d failed, %d deferred",
                report.scanned, report.advanced, report.failed, report.deferred,
            )
        return report

    async def process_payment(self, record: PaymentRecord) -> Optional[PaymentRecord]:
        """
        Advance one payment by at most one step.

        Returns the updated record, or None when nothing changed this tick.
        Never raises for failures of the payment itself.
        """
        try:
            return await self._advance(record)
        except TransientProviderError as e:
            logger.warning(
                "Payment %s (%s): transient failure, retrying next tick: %s",
                record.payment_id, record.status.value, e,
            )
            return None
        except StaleRecordError as e:
            logger.info("Payment %s changed concurrently, skipping: %s", record.payment_id, e)
            return None
        except Exception as e:
            logger.exception("Payment %s failed in %s", record.payment_id, record.status.value)
            return self._fail(record, e)

    async def _advance(self, record: PaymentRecord) -> Optional[PaymentRecord]:
        if record.status is PaymentStatus.WAITING_FOR_FUNDING:
            return await self._check_funding(record)
        if record.status is PaymentStatus.FUNDED:
            if self.context.settings.burn_policy is BurnPolicy.BURN_THEN_INTENT:
                return await self._burn(record)
            return await self._post_intent(record)
        if record.status is PaymentStatus.PRIVACY_BURNED:
            return await self._post_intent(record)
        if record.status is PaymentStatus.INTENT_POSTED:
            if self.context.settings.payout_mode is PayoutMode.WORKER:
                return await self._pay_out(record)
            return await self._reconcile_paid(record)
        return None

    async def _check_funding(self, record: PaymentRecord) -> Optional[PaymentRecord]:
        if not record.funding_tx_reference:
            logger.debug("Payment %s has no funding tx yet", record.payment_id)
            return None

        verifier = self.context.verifier_for(record.pay_asset)
        check = DepositCheck(
            tx_reference=record.funding_tx_reference,
            collector_address=record.collector_address,
            asset=record.pay_asset,
            expected_amount=record.funding_amount_with_fee,
        )
        confirmed = await self._call("Deposit verification", verifier.verify_deposit, check)
        if not confirmed:
            logger.debug(
                "Payment %s: funding tx %s not confirmed yet", record.payment_id, record.funding_tx_reference
            )
            return None

        updated = self.context.payments.transition(
            record.payment_id, PaymentStatus.FUNDED, expected_status=PaymentStatus.WAITING_FOR_FUNDING
        )
        logger.info(
            "Payment %s funded: %s %s confirmed in %s",
            record.payment_id, record.funding_amount_with_fee, record.pay_asset.value, record.funding_tx_reference,
        )
        return updated

    async def _burn(self, record: PaymentRecord) -> PaymentRecord:
        privacy_layer = self.context.privacy_layer
        result = await self._call(
            "Privacy burn",
            privacy_layer.burn,
            str(record.payment_id),
            format_amount(record.funding_amount),
        )
        updated = self.context.payments.transition(
            record.payment_id,
            PaymentStatus.PRIVACY_BURNED,
            expected_status=PaymentStatus.FUNDED,
            privacy_burn_reference=result.tx_reference,
        )
        logger.info("Payment %s burned via %s: %s", record.payment_id, privacy_layer.name, result.tx_reference)
        return updated

    async def _post_intent(self, record: PaymentRecord) -> PaymentRecord:
        dest_chain = record.dest_chain or resolve_dest_chain(
            record.dest_asset, None, self.context.settings.default_dest_chains
        )
        intent = FulfillmentIntent(
            intent_id=str(uuid4()),
            payment_id=str(record.payment_id),
            dest_chain=dest_chain.value,
            dest_asset=record.dest_asset.value,
            dest_address=record.recipient,
            amount_atomic=to_atomic(record.dest_amount, record.dest_decimals),
            decimals=record.dest_decimals,
            created_at=utc_now(),
            privacy_burn_reference=record.privacy_burn_reference or "",
        )
        ledger_reference = await self._call("Intent creation", self.context.ledger.create_intent, intent)

        try:
            updated = self.context.payments.transition(
                record.payment_id,
                PaymentStatus.INTENT_POSTED,
                expected_status=record.status,
                dest_chain=dest_chain,
                intent_id=intent.intent_id,
                intent_ledger_tx_reference=ledger_reference,
            )
        except StaleRecordError:
            self._hold_orphaned_intent(record, intent, ledger_reference)
            raise
        logger.info(
            "Payment %s posted intent %s (%s %s on %s) in %s",
            record.payment_id, intent.intent_id, intent.amount, intent.dest_asset,
            intent.dest_chain, ledger_reference,
        )
        return updated

    def _hold_orphaned_intent(self, record: PaymentRecord, intent: FulfillmentIntent, ledger_reference: str) -> None:
        """
        Keep an intent whose payment moved on mid-post from being paid here.

        The intent is claimed for the lifetime of this process and its id is
        written to the payment when the payment has none yet.
        """
        self.context.ledger.claim(intent.intent_id)
        try:
            self.context.payments.update(
                record.payment_id,
                intent_id=intent.intent_id,
                intent_ledger_tx_reference=ledger_reference,
            )
            outcome = "recorded on the payment"
        except PaymentInvariantError:
            outcome = "payment already carries another intent"
        logger.error(
            "Payment %s moved while intent %s was being posted; intent held back from payout (%s)",
            record.payment_id, intent.intent_id, outcome,
        )

    async def _reconcile_paid(self, record: PaymentRecord) -> Optional[PaymentRecord]:
        """Solver mode: adopt the payout of an intent the solver already fulfilled."""

        intent = await self._call("Intent lookup", self.context.ledger.get_intent, record.intent_id)
        if intent is None or not intent.fulfilled or not intent.payout_tx_reference:
            logger.debug("Payment %s: intent %s still open", record.payment_id, record.intent_id)
            return None

        updated = self.context.payments.transition(
            record.payment_id,
            PaymentStatus.PAID,
            expected_status=PaymentStatus.INTENT_POSTED,
            payout_tx_reference=intent.payout_tx_reference,
        )
        logger.info("Payment %s paid in %s", record.payment_id, intent.payout_tx_reference)
        return updated

    async def _pay_out(self, record: PaymentRecord) -> Optional[PaymentRecord]:
        """
        Worker mode: pay the intent directly, then mark it fulfilled.

        The payout reference is stored on the payment before the ledger is marked,
        so a failed mark is retried next tick without paying again.
        """
        ledger = self.context.ledger

        if not record.payout_tx_reference:
            intent = await self._call("Intent lookup", ledger.get_intent, record.intent_id)
            if intent is None:
                raise IntentNotFoundError(f"Intent not found: {record.intent_id}")
            if intent.fulfilled and intent.payout_tx_reference:
                return await self._reconcile_paid(record)

            order = PayoutOrder.from_intent(intent)
            if not ledger.claim(intent.intent_id):
                logger.debug("Intent %s is claimed elsewhere", intent.intent_id)
                return None
            try:
                executor = self.context.executor_for(order.asset)
                payout_reference = await self._call("Payout", executor.send_payout, order)
            except StepTimeoutError:
                # The payout thread may still land it; the claim is never released.
                raise
            except Exception:
                ledger.release(intent.intent_id)
                raise
            record = self.context.payments.update(
                record.payment_id,
                expected_status=PaymentStatus.INTENT_POSTED,
                payout_tx_reference=payout_reference,
            )
            logger.info(
                "Payment %s paid out %s %s to %s in %s",
                record.payment_id, order.amount, order.asset.value, order.dest_address, payout_reference,
            )

        await self._call(
            "Intent fulfillment", ledger.mark_fulfilled, record.intent_id, record.payout_tx_reference
        )
        updated = self.context.payments.transition(
            record.payment_id, PaymentStatus.PAID, expected_status=PaymentStatus.INTENT_POSTED
        )
        logger.info("Payment %s paid in %s", record.payment_id, record.payout_tx_reference)
        return updated

    def _fail(self, record: PaymentRecord, error: Exception) -> Optional[PaymentRecord]:
        message = str(error) or type(error).__name__
        try:
            return self.context.payments.transition(
                record.payment_id,
                PaymentStatus.ERROR,
                expected_status=record.status,
                error=message,
            )
        except StaleRecordError as e:
            logger.warning("Payment %s not marked ERROR, it moved on: %s", record.payment_id, e)
            return None

    async def _call(self, label: str, fn: Callable[..., T], *args: Any) -> T:
        return await call_with_timeout(label, self.timeout_seconds, fn, *args)
