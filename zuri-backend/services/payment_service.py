"""
Payment service for the API-facing payment operations.

Handles:
- createPayment: validate the request, quote the funding side, allocate a fresh
  collector address and persist a CREATED record
- attachFundingTx: record the user's funding transaction (WAITING_FOR_FUNDING)
- getPaymentStatus / listPayments: read-only projections

Everything after attach is driven by the payment processor and the solver.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Union
from uuid import UUID, uuid4

from domain.assets import (
    AmountLike,
    AmountPrecisionError,
    Asset,
    Chain,
    UnsupportedAssetError,
    resolve_dest_chain,
    to_atomic,
)
from domain.payment import PaymentRecord, PaymentStatus
from domain.time import utc_now
from providers.collectors import is_valid_address
from repositories.payment_repository import PaymentNotFoundError, StaleRecordError
from services.context import PaymentContext
from services.pricing_service import calculate_funding_quote

logger = logging.getLogger(__name__)


class PaymentValidationError(ValueError):
    """Raised when a payment request is rejected before anything is stored."""
    pass


class FundingConflictError(RuntimeError):
    """Raised when a funding transaction cannot be attached in the payment's current state."""
    pass


def create_payment(
    context: PaymentContext,
    recipient: str,
    dest_asset: Union[str, Asset],
    dest_amount: AmountLike,
    pay_asset: Union[str, Asset],
    dest_chain: Optional[Union[str, Chain]] = None,
) -> PaymentRecord:
    """
    Create a payment in CREATED status.

    Args:
        context: Application context
        recipient: Destination-chain address of the payee
        dest_asset: Asset the recipient receives
        dest_amount: Payout amount in human units (string or Decimal)
        pay_asset: Asset the user funds the payment with
        dest_chain: Optional explicit destination chain (must match dest_asset's family)

    Returns:
        The stored PaymentRecord

    Raises:
        PaymentValidationError: bad asset, amount, chain or recipient address
        CollectorPoolExhaustedError: no unused collector address left for pay_asset
    """
    try:
        dest = Asset.parse(dest_asset)
        pay = Asset.parse(pay_asset)
        chain = resolve_dest_chain(dest, dest_chain, context.settings.default_dest_chains)
    except UnsupportedAssetError as e:
        raise PaymentValidationError(str(e)) from e

    recipient = (recipient or "").strip()
    if not recipient:
        raise PaymentValidationError("recipient is required")
    if not is_valid_address(dest.family, recipient):
        raise PaymentValidationError(
            f"recipient is not a valid {dest.family.value} address: {recipient}"
        )

    settings = context.settings
    dest_decimals = settings.asset_decimals.get(dest, dest.spec.decimals)
    try:
        quote = calculate_funding_quote(
            dest,
            dest_amount,
            pay,
            usd_prices=settings.usd_prices,
            fee_rate=settings.fee_rate,
        )
    except (AmountPrecisionError, ValueError) as e:
        raise PaymentValidationError(str(e)) from e

    # Reject amounts the ledger could not carry now, not several ticks later.
    try:
        to_atomic(quote.dest_amount, dest_decimals)
    except AmountPrecisionError as e:
        raise PaymentValidationError(f"destAmount: {e}") from e

    collector = context.collectors.allocate(pay.family)
    now = utc_now()
    record = PaymentRecord(
        payment_id=uuid4(),
        recipient=recipient,
        pay_asset=pay,
        funding_amount=quote.funding_amount,
        funding_amount_with_fee=quote.funding_amount_with_fee,
        fee=quote.fee,
        collector_address=collector,
        dest_asset=dest,
        dest_amount=quote.dest_amount,
        dest_decimals=dest_decimals,
        dest_chain=chain,
        created_at=now,
        updated_at=now,
    )
    context.payments.add(record)

    logger.info(
        "Payment %s created: %s %s on %s to %s, funded with %s %s at %s",
        record.payment_id, record.dest_amount, dest.value, chain.value, recipient,
        record.funding_amount_with_fee, pay.value, collector,
    )
    return record


def attach_funding_tx(
    context: PaymentContext,
    payment_id: Union[UUID, str],
    funding_tx_reference: str,
) -> PaymentRecord:
    """
    Attach the user's funding transaction to a payment.

    Policy:
    - CREATED: the reference is stored and the payment moves to WAITING_FOR_FUNDING.
    - WAITING_FOR_FUNDING with the same reference: idempotent success, no change.
    - Anything else: FundingConflictError, record untouched.

    Raises:
        PaymentValidationError: empty reference
        PaymentNotFoundError: unknown payment id
        FundingConflictError: see policy above
    """
    reference = (funding_tx_reference or "").strip()
    if not reference:
        raise PaymentValidationError("fundingTxReference is required")

    current = context.payments.require(payment_id)

    if current.status is PaymentStatus.CREATED:
        try:
            updated = context.payments.transition(
                current.payment_id,
                PaymentStatus.WAITING_FOR_FUNDING,
                expected_status=PaymentStatus.CREATED,
                funding_tx_reference=reference,
            )
        except StaleRecordError:
            # Lost a race with a concurrent attach; judge against what won.
            return _check_reattach(context.payments.require(current.payment_id), reference)
        logger.info("Funding tx %s attached to payment %s", reference, updated.payment_id)
        return updated

    return _check_reattach(current, reference)


def _check_reattach(record: PaymentRecord, reference: str) -> PaymentRecord:
    if record.status is PaymentStatus.WAITING_FOR_FUNDING and record.funding_tx_reference == reference:
        logger.debug("Funding tx %s re-attached to payment %s", reference, record.payment_id)
        return record
    if record.funding_tx_reference and record.funding_tx_reference != reference:
        raise FundingConflictError(
            f"Payment {record.payment_id} already has funding tx {record.funding_tx_reference}"
        )
    raise FundingConflictError(
        f"Payment {record.payment_id} is {record.status.value}; funding tx can no longer be attached"
    )


def get_payment(context: PaymentContext, payment_id: Union[UUID, str]) -> PaymentRecord:
    """
    Raises:
        PaymentNotFoundError: unknown payment id
    """
    return context.payments.require(payment_id)


def list_payments(context: PaymentContext) -> List[PaymentRecord]:
    return context.payments.list_all()


__all__ = [
    "FundingConflictError",
    "PaymentNotFoundError",
    "PaymentValidationError",
    "attach_funding_tx",
    "create_payment",
    "get_payment",
    "list_payments",
]
