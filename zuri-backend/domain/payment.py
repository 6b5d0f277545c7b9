"""
Domain: Payment record and lifecycle state machine.

Contract excerpts implemented here:
- A payment progresses CREATED -> WAITING_FOR_FUNDING -> FUNDED -> [PRIVACY_BURNED]
  -> INTENT_POSTED -> PAID. ERROR is reachable from any non-terminal state.
- PAID and ERROR are terminal. Status never regresses.
- PRIVACY_BURNED is optional: FUNDED may move directly to INTENT_POSTED when the
  configured burn policy skips the privacy burn.
- payment_id, collector_address and created_at never change after creation.
- funding_tx_reference is set at most once.
- error is present iff status is ERROR.
- Every mutation produces a new record with a refreshed updated_at.

This module contains only pure domain entities: no I/O and no locking. Serialized
writes are the repository's job.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, FrozenSet, Mapping, Optional
from uuid import UUID

from .assets import Asset, Chain
from .time import require_utc_timestamp, utc_now


class InvalidTransitionError(ValueError):
    """Raised when a status change is not allowed by the lifecycle."""
    pass


class PaymentInvariantError(ValueError):
    """Raised when a change would break a record invariant (immutable or set-once field)."""
    pass


class PaymentStatus(str, Enum):
    CREATED = "CREATED"
    WAITING_FOR_FUNDING = "WAITING_FOR_FUNDING"
    FUNDED = "FUNDED"
    PRIVACY_BURNED = "PRIVACY_BURNED"
    INTENT_POSTED = "INTENT_POSTED"
    PAID = "PAID"
    ERROR = "ERROR"

    @property
    def is_terminal(self) -> bool:
        return self in (PaymentStatus.PAID, PaymentStatus.ERROR)

    @property
    def rank(self) -> int:
        """Position along the happy path; ERROR ranks after everything."""
        return _RANKS[self]

    def can_transition_to(self, target: "PaymentStatus") -> bool:
        return target in _ALLOWED_TRANSITIONS[self]

    @property
    def public_label(self) -> str:
        """
        Status as shown to API clients.

        The privacy burn is an internal detail; clients see it as COLLECTED.
        """
        return _PUBLIC_LABELS.get(self, self.value)


_RANKS: Mapping[PaymentStatus, int] = {
    PaymentStatus.CREATED: 0,
    PaymentStatus.WAITING_FOR_FUNDING: 1,
    PaymentStatus.FUNDED: 2,
    PaymentStatus.PRIVACY_BURNED: 3,
    PaymentStatus.INTENT_POSTED: 4,
    PaymentStatus.PAID: 5,
    PaymentStatus.ERROR: 6,
}

_ALLOWED_TRANSITIONS: Mapping[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.CREATED: frozenset({PaymentStatus.WAITING_FOR_FUNDING, PaymentStatus.ERROR}),
    PaymentStatus.WAITING_FOR_FUNDING: frozenset({PaymentStatus.FUNDED, PaymentStatus.ERROR}),
    PaymentStatus.FUNDED: frozenset(
        {PaymentStatus.PRIVACY_BURNED, PaymentStatus.INTENT_POSTED, PaymentStatus.ERROR}
    ),
    PaymentStatus.PRIVACY_BURNED: frozenset({PaymentStatus.INTENT_POSTED, PaymentStatus.ERROR}),
    PaymentStatus.INTENT_POSTED: frozenset({PaymentStatus.PAID, PaymentStatus.ERROR}),
    PaymentStatus.PAID: frozenset(),
    PaymentStatus.ERROR: frozenset(),
}

_PUBLIC_LABELS: Mapping[PaymentStatus, str] = {
    PaymentStatus.PRIVACY_BURNED: "COLLECTED",
}

_IMMUTABLE_FIELDS: FrozenSet[str] = frozenset(
    {"payment_id", "collector_address", "created_at", "status", "updated_at", "error"}
)
_SET_ONCE_FIELDS: FrozenSet[str] = frozenset(
    {
        "funding_tx_reference",
        "privacy_burn_reference",
        "intent_id",
        "intent_ledger_tx_reference",
        "payout_tx_reference",
    }
)


@dataclass(frozen=True, slots=True)
class PaymentRecord:
    """
    Aggregate root for a single cross-chain payment.

    Funding side: what the user deposits to collector_address on the pay asset's chain.
    Destination side: what the recipient receives, in human units of dest_asset.
    Settlement artifacts are filled in progressively by the worker and the solver.
    """

    payment_id: UUID
    recipient: str
    pay_asset: Asset
    funding_amount: Decimal
    funding_amount_with_fee: Decimal
    fee: Decimal
    collector_address: str
    dest_asset: Asset
    dest_amount: Decimal
    dest_decimals: int
    created_at: datetime
    updated_at: datetime
    status: PaymentStatus = PaymentStatus.CREATED
    dest_chain: Optional[Chain] = None
    funding_tx_reference: Optional[str] = None
    privacy_burn_reference: Optional[str] = None
    intent_id: Optional[str] = None
    intent_ledger_tx_reference: Optional[str] = None
    payout_tx_reference: Optional[str] = None
    error: Optional[str] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        require_utc_timestamp("updated_at", self.updated_at)
        if not self.collector_address:
            raise PaymentInvariantError("collector_address is required")
        if self.updated_at < self.created_at:
            raise PaymentInvariantError("updated_at cannot precede created_at")
        if (self.status is PaymentStatus.ERROR) != (self.error is not None):
            raise PaymentInvariantError("error must be set iff status is ERROR")

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def with_changes(self, *, at: Optional[datetime] = None, **changes: Any) -> "PaymentRecord":
        """
        Return a copy with settlement fields changed, keeping the status.

        Immutable fields cannot be changed; set-once fields can be written only while
        empty (writing the identical value again is accepted).
        """

        self._check_changes(changes)
        return dataclasses.replace(self, updated_at=self._next_updated_at(at), **changes)

    def transition(
        self,
        target: PaymentStatus,
        *,
        at: Optional[datetime] = None,
        error: Optional[str] = None,
        **changes: Any,
    ) -> "PaymentRecord":
        """
        Return a copy moved to `target`, together with the fields that change with it.

        Raises:
            InvalidTransitionError: if the lifecycle does not allow current -> target
            PaymentInvariantError: if changes touch immutable or already-set fields
        """

        if not self.status.can_transition_to(target):
            raise InvalidTransitionError(
                f"Illegal payment transition: {self.status.value} -> {target.value}"
            )
        if target is PaymentStatus.ERROR and not error:
            raise PaymentInvariantError("ERROR transition requires an error message")
        if target is not PaymentStatus.ERROR and error is not None:
            raise PaymentInvariantError("error is only allowed with ERROR status")
        if target is PaymentStatus.PAID and not (changes.get("payout_tx_reference") or self.payout_tx_reference):
            raise PaymentInvariantError("PAID requires payout_tx_reference")

        self._check_changes(changes)
        return dataclasses.replace(
            self,
            status=target,
            error=error,
            updated_at=self._next_updated_at(at),
            **changes,
        )

    def _check_changes(self, changes: Mapping[str, Any]) -> None:
        for name, value in changes.items():
            if name in _IMMUTABLE_FIELDS:
                raise PaymentInvariantError(f"{name} cannot be changed directly")
            if name in _SET_ONCE_FIELDS:
                current = getattr(self, name)
                if current is not None and current != value:
                    raise PaymentInvariantError(f"{name} is already set")

    def _next_updated_at(self, at: Optional[datetime]) -> datetime:
        stamp = at or utc_now()
        require_utc_timestamp("updated_at", stamp)
        # Keep updated_at monotonic per record even if the clock steps back.
        return stamp if stamp >= self.updated_at else self.updated_at
