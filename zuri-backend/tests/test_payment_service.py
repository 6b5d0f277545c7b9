"""
Tests for `services/payment_service.py`.

Covers contract rules:
- createPayment validates before storing anything and persists a CREATED record.
- Two identical create requests give two ids and two collector addresses.
- attachFundingTx moves CREATED -> WAITING_FOR_FUNDING and echoes the reference.
- Re-attaching the same reference is idempotent; anything else is a conflict.
- Collector pools are never reused; an empty pool refuses new payments.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from domain.assets import Asset, Chain, ChainFamily
from domain.payment import PaymentStatus
from providers.base import CollectorPoolExhaustedError
from providers.collectors import PooledCollectorAllocator
from repositories.payment_repository import PaymentNotFoundError
from services.payment_service import (
    FundingConflictError,
    PaymentValidationError,
    attach_funding_tx,
    create_payment,
    get_payment,
    list_payments,
)

ETH_RECIPIENT = "0x8ba1f109551bd432803012645ac136ddd64dba72"
SOL_RECIPIENT = "So11111111111111111111111111111111111111112"


def test_create_payment_persists_created_record(context) -> None:
    """Verify the happy-path create returns a stored CREATED record with fee breakdown."""

    record = create_payment(context, ETH_RECIPIENT, "ETH", "0.1", "ETH")

    assert record.status is PaymentStatus.CREATED
    assert record.collector_address
    assert record.funding_amount_with_fee == Decimal("0.100100")
    assert record.dest_decimals == 18
    assert record.dest_chain is Chain.ETHEREUM_SEPOLIA
    assert get_payment(context, record.payment_id) == record


def test_identical_requests_create_distinct_payments(context) -> None:
    """Verify ids and collector addresses are never shared."""

    first = create_payment(context, ETH_RECIPIENT, "ETH", "0.1", "ETH")
    second = create_payment(context, ETH_RECIPIENT, "ETH", "0.1", "ETH")

    assert first.payment_id != second.payment_id
    assert first.collector_address != second.collector_address
    assert len(list_payments(context)) == 2


def test_collector_is_on_the_funding_chain(context) -> None:
    """Verify the collector belongs to the pay asset's family, the recipient to the destination's."""

    record = create_payment(context, SOL_RECIPIENT, "SOL", "1.5", "ETH")

    assert record.pay_asset is Asset.ETH
    assert record.collector_address.startswith("0x")
    assert record.dest_chain is Chain.SOLANA_DEVNET
    assert record.dest_decimals == 9


@pytest.mark.parametrize(
    "recipient, dest_asset, dest_amount, pay_asset, dest_chain",
    [
        ("", "ETH", "0.1", "ETH", None),
        ("not-an-address", "ETH", "0.1", "ETH", None),
        (ETH_RECIPIENT, "SOL", "1", "ETH", None),
        (ETH_RECIPIENT, "DOGE", "1", "ETH", None),
        (ETH_RECIPIENT, "ETH", "0", "ETH", None),
        (ETH_RECIPIENT, "ETH", "-0.1", "ETH", None),
        (ETH_RECIPIENT, "ETH", "abc", "ETH", None),
        (ETH_RECIPIENT, "ETH", "0.1", "XRP", None),
        (ETH_RECIPIENT, "ETH", "0.1", "ETH", "solana-devnet"),
        (SOL_RECIPIENT, "USDC_SOL", "1.0000001", "USDC_SOL", None),
    ],
)
def test_invalid_requests_are_rejected_before_storing(
    context, recipient, dest_asset, dest_amount, pay_asset, dest_chain
) -> None:
    """Verify validation errors never create a payment."""

    with pytest.raises(PaymentValidationError):
        create_payment(context, recipient, dest_asset, dest_amount, pay_asset, dest_chain)

    assert list_payments(context) == []


def test_attach_then_read_echoes_reference(context) -> None:
    """Verify attach round-trip: WAITING_FOR_FUNDING with the exact reference."""

    record = create_payment(context, ETH_RECIPIENT, "ETH", "0.1", "ETH")

    attach_funding_tx(context, str(record.payment_id), "0xabc")
    stored = get_payment(context, record.payment_id)

    assert stored.status is PaymentStatus.WAITING_FOR_FUNDING
    assert stored.funding_tx_reference == "0xabc"


def test_reattaching_same_reference_is_idempotent(context) -> None:
    """Verify a repeated attach with the same reference succeeds without change."""

    record = create_payment(context, ETH_RECIPIENT, "ETH", "0.1", "ETH")
    first = attach_funding_tx(context, record.payment_id, "0xabc")

    again = attach_funding_tx(context, record.payment_id, "0xabc")

    assert again == first


def test_attaching_a_different_reference_conflicts(context) -> None:
    """Verify the funding reference is set at most once."""

    record = create_payment(context, ETH_RECIPIENT, "ETH", "0.1", "ETH")
    attach_funding_tx(context, record.payment_id, "0xabc")

    with pytest.raises(FundingConflictError):
        attach_funding_tx(context, record.payment_id, "0xdef")

    assert get_payment(context, record.payment_id).funding_tx_reference == "0xabc"


def test_attaching_after_funding_conflicts(context) -> None:
    """Verify a payment past WAITING_FOR_FUNDING no longer accepts attaches."""

    record = create_payment(context, ETH_RECIPIENT, "ETH", "0.1", "ETH")
    attach_funding_tx(context, record.payment_id, "0xabc")
    context.payments.transition(record.payment_id, PaymentStatus.FUNDED)

    with pytest.raises(FundingConflictError):
        attach_funding_tx(context, record.payment_id, "0xabc")


def test_attach_validation_and_not_found(context) -> None:
    """Verify empty references and unknown ids are reported."""

    record = create_payment(context, ETH_RECIPIENT, "ETH", "0.1", "ETH")

    with pytest.raises(PaymentValidationError):
        attach_funding_tx(context, record.payment_id, "   ")
    with pytest.raises(PaymentNotFoundError):
        attach_funding_tx(context, "00000000-0000-0000-0000-000000000099", "0xabc")


def test_pooled_collectors_are_used_once(context) -> None:
    """Verify pool addresses are handed out once and exhaustion refuses creation."""

    pool = [
        "0x0000000000000000000000000000000000000001",
        "0x0000000000000000000000000000000000000002",
    ]
    context.collectors = PooledCollectorAllocator({ChainFamily.ETHEREUM: pool})

    first = create_payment(context, ETH_RECIPIENT, "ETH", "0.1", "ETH")
    second = create_payment(context, ETH_RECIPIENT, "ETH", "0.1", "ETH")

    assert {first.collector_address.lower(), second.collector_address.lower()} == set(pool)
    with pytest.raises(CollectorPoolExhaustedError):
        create_payment(context, ETH_RECIPIENT, "ETH", "0.1", "ETH")
    assert len(list_payments(context)) == 2
