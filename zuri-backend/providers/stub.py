"""
Stub collaborators for development and tests.

They keep the real interfaces and return deterministic-looking references, so the
whole payment lifecycle can run without any chain access. Tests drive them directly:
confirm() a funding tx, fail_next() a payout, and inspect `calls`.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import List, Optional, Set

from domain.assets import ChainFamily

from .base import (
    BurnResult,
    DepositCheck,
    DepositVerifier,
    PayoutExecutor,
    PayoutOrder,
    PrivacyLayer,
    ProviderError,
)

logger = logging.getLogger(__name__)


def _millis() -> int:
    return int(time.time() * 1000)


class StubDepositVerifier(DepositVerifier):
    """
    Confirms deposits without touching a chain.

    With auto_confirm=True every attached funding tx is confirmed on the first
    check; otherwise only references passed to confirm() are.
    """

    def __init__(self, family: ChainFamily, *, auto_confirm: bool = True) -> None:
        self._family = family
        self.auto_confirm = auto_confirm
        self._confirmed: Set[str] = set()
        self._failure: Optional[Exception] = None
        self._lock = threading.Lock()
        self.checks: List[DepositCheck] = []

    @property
    def family(self) -> ChainFamily:
        return self._family

    def confirm(self, tx_reference: str) -> None:
        with self._lock:
            self._confirmed.add(tx_reference)

    def fail_with(self, error: Optional[Exception]) -> None:
        """Raise `error` from every check until cleared with None."""
        with self._lock:
            self._failure = error

    def verify_deposit(self, check: DepositCheck) -> bool:
        with self._lock:
            self.checks.append(check)
            if self._failure is not None:
                raise self._failure
            confirmed = self.auto_confirm or check.tx_reference in self._confirmed
        logger.info(
            "[STUB] Deposit %s to %s for %s %s: %s",
            check.tx_reference, check.collector_address, check.expected_amount,
            check.asset.value, "confirmed" if confirmed else "pending",
        )
        return confirmed


class StubPayoutExecutor(PayoutExecutor):
    """Records payouts and returns a synthetic transaction reference."""

    def __init__(self, name: str = "stub") -> None:
        self._name = name
        self._lock = threading.Lock()
        self._failures: List[Exception] = []
        self.orders: List[PayoutOrder] = []

    @property
    def name(self) -> str:
        return self._name

    def fail_next(self, error: Optional[Exception] = None) -> None:
        with self._lock:
            self._failures.append(error or ProviderError("stub payout failure"))

    def send_payout(self, order: PayoutOrder) -> str:
        with self._lock:
            if self._failures:
                raise self._failures.pop(0)
            self.orders.append(order)
            sequence = len(self.orders)
        tx_reference = f"{self._name}-payout-{order.intent_id}-{sequence}"
        logger.info(
            "[STUB] Payout of %s %s to %s on %s: %s",
            order.amount, order.asset.value, order.dest_address, order.chain.value, tx_reference,
        )
        return tx_reference


class StubPrivacyLayer(PrivacyLayer):
    def __init__(self) -> None:
        self.burns: List[str] = []

    @property
    def name(self) -> str:
        return "stub"

    def burn(self, payment_id: str, amount: str) -> BurnResult:
        tx_reference = f"zcash-testnet-burn-{payment_id}-{_millis()}"
        self.burns.append(payment_id)
        logger.info("[STUB] Burning %s ZEC for payment %s: %s", amount, payment_id, tx_reference)
        return BurnResult(tx_reference=tx_reference, amount=amount)
