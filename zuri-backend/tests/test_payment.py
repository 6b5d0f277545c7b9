"""
Tests for `domain/payment.py`.

Covers contract rules:
- Status only moves forward along the lifecycle; PAID and ERROR are terminal.
- PRIVACY_BURNED may be skipped (FUNDED -> INTENT_POSTED) but nothing else can.
- error is present iff status is ERROR; PAID requires a payout reference.
- payment_id, collector_address and created_at never change; settlement
  references are set at most once.
- Every mutation refreshes updated_at, which never moves backwards.
- PRIVACY_BURNED is shown to clients as COLLECTED.
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID

import pytest

from domain.assets import Asset, Chain
from domain.payment import (
    InvalidTransitionError,
    PaymentInvariantError,
    PaymentRecord,
    PaymentStatus,
)

T0 = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _record(**overrides) -> PaymentRecord:
    fields = dict(
        payment_id=UUID("00000000-0000-0000-0000-000000000001"),
        recipient="0x8ba1f109551bd432803012645ac136ddd64dba72",
        pay_asset=Asset.ETH,
        funding_amount=Decimal("0.100000"),
        funding_amount_with_fee=Decimal("0.100100"),
        fee=Decimal("0.000100"),
        collector_address="0x0000000000000000000000000000000000000abc",
        dest_asset=Asset.ETH,
        dest_amount=Decimal("0.1"),
        dest_decimals=18,
        dest_chain=Chain.ETHEREUM_SEPOLIA,
        created_at=T0,
        updated_at=T0,
    )
    fields.update(overrides)
    return PaymentRecord(**fields)


def test_happy_path_walks_every_state_in_order() -> None:
    """Verify the full burn-then-intent lifecycle is accepted."""

    record = _record()
    record = record.transition(PaymentStatus.WAITING_FOR_FUNDING, funding_tx_reference="0xabc")
    record = record.transition(PaymentStatus.FUNDED)
    record = record.transition(PaymentStatus.PRIVACY_BURNED, privacy_burn_reference="burn-1")
    record = record.transition(
        PaymentStatus.INTENT_POSTED, intent_id="intent-1", intent_ledger_tx_reference="local:intent-1"
    )
    record = record.transition(PaymentStatus.PAID, payout_tx_reference="0xpaid")

    assert record.status is PaymentStatus.PAID
    assert record.is_terminal
    assert record.funding_tx_reference == "0xabc"
    assert record.payout_tx_reference == "0xpaid"


def test_burn_step_can_be_skipped() -> None:
    """Verify FUNDED may move directly to INTENT_POSTED (intent-only policy)."""

    record = _record(status=PaymentStatus.FUNDED, funding_tx_reference="0xabc")

    posted = record.transition(PaymentStatus.INTENT_POSTED, intent_id="intent-1")

    assert posted.status is PaymentStatus.INTENT_POSTED
    assert posted.privacy_burn_reference is None


@pytest.mark.parametrize(
    "start, target",
    [
        (PaymentStatus.CREATED, PaymentStatus.FUNDED),
        (PaymentStatus.WAITING_FOR_FUNDING, PaymentStatus.INTENT_POSTED),
        (PaymentStatus.FUNDED, PaymentStatus.WAITING_FOR_FUNDING),
        (PaymentStatus.INTENT_POSTED, PaymentStatus.FUNDED),
    ],
)
def test_skipping_or_regressing_is_rejected(start: PaymentStatus, target: PaymentStatus) -> None:
    """Verify status never skips a required step and never regresses."""

    with pytest.raises(InvalidTransitionError):
        _record(status=start).transition(target)


def test_terminal_states_allow_no_transition() -> None:
    """Verify PAID and ERROR are terminal."""

    paid = _record(status=PaymentStatus.PAID, payout_tx_reference="0xpaid")
    failed = _record(status=PaymentStatus.ERROR, error="boom")

    for record in (paid, failed):
        for target in PaymentStatus:
            with pytest.raises(InvalidTransitionError):
                record.transition(target, error="again")


def test_error_is_reachable_from_every_non_terminal_state() -> None:
    """Verify ERROR can be entered from any non-terminal state, with a message."""

    for status in PaymentStatus:
        if status.is_terminal:
            continue
        failed = _record(status=status).transition(PaymentStatus.ERROR, error="verifier exploded")
        assert failed.status is PaymentStatus.ERROR
        assert failed.error == "verifier exploded"


def test_error_text_required_iff_status_is_error() -> None:
    """Verify the error field invariant in both directions."""

    with pytest.raises(PaymentInvariantError):
        _record().transition(PaymentStatus.ERROR)
    with pytest.raises(PaymentInvariantError):
        _record().transition(PaymentStatus.WAITING_FOR_FUNDING, error="nope")
    with pytest.raises(PaymentInvariantError):
        _record(status=PaymentStatus.ERROR)
    with pytest.raises(PaymentInvariantError):
        _record(error="stray")


def test_paid_requires_payout_reference() -> None:
    """Verify PAID cannot be reached without a payout tx reference."""

    with pytest.raises(PaymentInvariantError):
        _record(status=PaymentStatus.INTENT_POSTED).transition(PaymentStatus.PAID)


def test_immutable_fields_cannot_change() -> None:
    """Verify identity, collector and creation time are fixed."""

    record = _record()

    with pytest.raises(PaymentInvariantError):
        record.with_changes(collector_address="0x0000000000000000000000000000000000000def")
    with pytest.raises(PaymentInvariantError):
        record.with_changes(created_at=T0 + timedelta(days=1))
    with pytest.raises(FrozenInstanceError):
        record.status = PaymentStatus.PAID  # type: ignore[misc]


def test_funding_reference_is_set_once() -> None:
    """Verify a set-once field accepts the same value again but never a different one."""

    record = _record().transition(PaymentStatus.WAITING_FOR_FUNDING, funding_tx_reference="0xabc")

    assert record.with_changes(funding_tx_reference="0xabc").funding_tx_reference == "0xabc"
    with pytest.raises(PaymentInvariantError):
        record.with_changes(funding_tx_reference="0xdef")


def test_updated_at_refreshes_and_never_goes_back() -> None:
    """Verify mutations move updated_at forward only."""

    record = _record()
    later = record.transition(PaymentStatus.WAITING_FOR_FUNDING, at=T0 + timedelta(seconds=5))
    earlier_clock = later.transition(PaymentStatus.FUNDED, at=T0 + timedelta(seconds=1))

    assert later.updated_at == T0 + timedelta(seconds=5)
    assert earlier_clock.updated_at == T0 + timedelta(seconds=5)
    assert earlier_clock.created_at == T0


def test_timestamps_must_be_utc() -> None:
    """Verify naive or offset timestamps are rejected."""

    with pytest.raises(ValueError):
        _record(created_at=datetime(2025, 1, 1), updated_at=datetime(2025, 1, 1))
    with pytest.raises(ValueError):
        _record().with_changes(at=datetime(2025, 1, 2, tzinfo=timezone(timedelta(hours=2))))


def test_public_label_aliases_privacy_burned() -> None:
    """Verify only PRIVACY_BURNED is renamed at the boundary."""

    assert PaymentStatus.PRIVACY_BURNED.public_label == "COLLECTED"
    assert PaymentStatus.FUNDED.public_label == "FUNDED"
    assert PaymentStatus.PAID.public_label == "PAID"


def test_rank_orders_the_happy_path() -> None:
    """Verify rank reflects the lifecycle order."""

    ranks = [s.rank for s in (
        PaymentStatus.CREATED,
        PaymentStatus.WAITING_FOR_FUNDING,
        PaymentStatus.FUNDED,
        PaymentStatus.PRIVACY_BURNED,
        PaymentStatus.INTENT_POSTED,
        PaymentStatus.PAID,
    )]
    assert ranks == sorted(ranks)
