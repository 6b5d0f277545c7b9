"""
Domain: Fulfillment intents.

An intent is the ledger-side request describing a pending payout. It is created by
the payment processor once a payment is funded (and burned, when that policy is on)
and mutated only by the solver, which sets `fulfilled` and `payout_tx_reference`.

The ledger payload uses the field names of the NEAR intents contract.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from .assets import from_atomic
from .time import from_epoch_millis, require_utc_timestamp, to_epoch_millis


@dataclass(frozen=True, slots=True)
class FulfillmentIntent:
    """
    Immutable snapshot of a fulfillment intent.

    dest_chain and dest_asset are kept as plain strings: the ledger is shared with
    other solvers and may carry identifiers this service does not support.
    """

    intent_id: str
    payment_id: str
    dest_chain: str
    dest_asset: str
    dest_address: str
    amount_atomic: int
    decimals: int
    created_at: datetime
    privacy_burn_reference: str = ""
    fulfilled: bool = False
    payout_tx_reference: Optional[str] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        if self.amount_atomic <= 0:
            raise ValueError("amount_atomic must be positive")
        if self.decimals < 0:
            raise ValueError("decimals must be >= 0")

    @property
    def amount(self) -> str:
        """Human-readable payout amount."""
        return from_atomic(self.amount_atomic, self.decimals)

    def fulfilled_with(self, payout_tx_reference: str) -> "FulfillmentIntent":
        if self.fulfilled:
            raise ValueError(f"Intent {self.intent_id} is already fulfilled")
        return dataclasses.replace(
            self, fulfilled=True, payout_tx_reference=payout_tx_reference
        )

    def to_ledger_payload(self) -> Dict[str, Any]:
        return {
            "id": self.intent_id,
            "payment_id": self.payment_id,
            "dest_chain": self.dest_chain,
            "dest_asset": self.dest_asset,
            "dest_address": self.dest_address,
            "amount_atomic": str(self.amount_atomic),
            "decimals": self.decimals,
            "zcash_burn_txid": self.privacy_burn_reference,
            "created_at": str(to_epoch_millis(self.created_at)),
            "fulfilled": self.fulfilled,
            "payout_tx_hash": self.payout_tx_reference,
        }

    @classmethod
    def from_ledger_payload(cls, payload: Mapping[str, Any]) -> "FulfillmentIntent":
        return cls(
            intent_id=str(payload["id"]),
            payment_id=str(payload["payment_id"]),
            dest_chain=str(payload["dest_chain"]),
            dest_asset=str(payload["dest_asset"]),
            dest_address=str(payload["dest_address"]),
            amount_atomic=int(payload["amount_atomic"]),
            decimals=int(payload["decimals"]),
            created_at=from_epoch_millis(int(payload.get("created_at") or 0)),
            privacy_burn_reference=str(payload.get("zcash_burn_txid") or ""),
            fulfilled=bool(payload.get("fulfilled", False)),
            payout_tx_reference=payload.get("payout_tx_hash"),
        )
