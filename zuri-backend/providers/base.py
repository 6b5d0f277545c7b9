"""
Abstract collaborator interfaces.

Every chain-facing capability the payment loops need sits behind one of these
narrow interfaces, with a Stub and a Live implementation selected once at startup:

- DepositVerifier: has a funding transaction paid the collector enough?
- PayoutExecutor: send a payout and return its transaction reference.
- PrivacyLayer: perform the shielded burn between funding and payout.
- CollectorAllocator: hand out a fresh deposit address per payment.

Implementations are synchronous (plain `requests` calls); the loops run them in
worker threads so the API is never blocked.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Iterable, TypeVar

from domain.assets import AmountPrecisionError, Asset, Chain, ChainFamily, UnsupportedAssetError, to_atomic
from domain.intent import FulfillmentIntent

T = TypeVar("T")


class ProviderError(RuntimeError):
    """A collaborator returned an unusable or unexpected result. Not retried."""
    pass


class TransientProviderError(ProviderError):
    """
    A collaborator could not be reached (network error, 5xx, RPC transport error).

    The loops leave the payment where it is and retry on the next tick.
    """
    pass


class StepTimeoutError(ProviderError):
    """A collaborator call did not finish within the configured timeout."""
    pass


class CollectorPoolExhaustedError(ProviderError):
    """No unused collector address is left for a chain family."""
    pass


@dataclass(frozen=True, slots=True)
class DepositCheck:
    """What a verifier needs to judge one funding transaction."""
    tx_reference: str
    collector_address: str
    asset: Asset
    expected_amount: Decimal  # fee-inclusive, human units


@dataclass(frozen=True, slots=True)
class PayoutOrder:
    """A payout to execute on the destination chain."""
    intent_id: str
    payment_id: str
    chain: Chain
    asset: Asset
    dest_address: str
    amount: str  # human units
    amount_atomic: int

    @classmethod
    def from_intent(cls, intent: FulfillmentIntent) -> "PayoutOrder":
        """
        Build the payout described by a ledger intent.

        The intent's atomic amount is scaled by its own `decimals`; the order is
        rescaled to the asset's on-chain decimals, which is what executors send.

        Raises:
            UnsupportedAssetError: the intent names a chain or asset this service cannot pay,
                or an amount the asset cannot represent
        """
        chain = Chain.parse(intent.dest_chain)
        asset = Asset.parse(intent.dest_asset)
        if chain.family is not asset.family:
            raise UnsupportedAssetError(
                f"Intent {intent.intent_id} pairs {asset.value} with chain {chain.value}"
            )
        amount = intent.amount
        try:
            amount_atomic = to_atomic(amount, asset.spec.decimals)
        except AmountPrecisionError as e:
            raise UnsupportedAssetError(f"Intent {intent.intent_id}: {e}") from None
        return cls(
            intent_id=intent.intent_id,
            payment_id=intent.payment_id,
            chain=chain,
            asset=asset,
            dest_address=intent.dest_address,
            amount=amount,
            amount_atomic=amount_atomic,
        )


@dataclass(frozen=True, slots=True)
class BurnResult:
    tx_reference: str
    amount: str


class DepositVerifier(ABC):
    """Abstract base class for funding verifiers (one per chain family)."""

    @property
    @abstractmethod
    def family(self) -> ChainFamily:
        ...

    @abstractmethod
    def verify_deposit(self, check: DepositCheck) -> bool:
        """
        Return True iff the funding transaction is confirmed and paid at least
        the expected amount to the collector.

        A transaction that is unknown or not yet mined is "not yet" (False), not
        an error.

        Raises:
            TransientProviderError: the chain could not be queried.
            ProviderError: the node answered with something unusable.
        """
        ...


class PayoutExecutor(ABC):
    """Abstract base class for payout rails."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def send_payout(self, order: PayoutOrder) -> str:
        """Submit the payout and return its transaction reference."""
        ...


class PrivacyLayer(ABC):
    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def burn(self, payment_id: str, amount: str) -> BurnResult:
        """Perform the shielded burn for a funded payment."""
        ...


class CollectorAllocator(ABC):
    @abstractmethod
    def allocate(self, family: ChainFamily) -> str:
        """Return a collector address that has never been handed out before."""
        ...

    def supported_families(self) -> Iterable[ChainFamily]:
        return tuple(ChainFamily)


async def call_with_timeout(label: str, timeout_seconds: float, fn: Callable[..., T], *args: Any) -> T:
    """
    Run a blocking collaborator call in a worker thread.

    The event loop (and with it the API) stays responsive while the call runs.

    Raises:
        StepTimeoutError: the call did not finish within timeout_seconds
    """
    try:
        return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        raise StepTimeoutError(f"{label} timed out after {timeout_seconds:g}s") from None


class PayoutOutcomeUnknownError(StepTimeoutError):
    """
    A payout call timed out while its thread was still running.

    The payout may still land. `future` resolves to the payout reference (or the
    executor's exception) once the thread finishes.
    """

    def __init__(self, message: str, future: "concurrent.futures.Future[str]") -> None:
        super().__init__(message)
        self.future = future


async def submit_with_timeout(
    pool: concurrent.futures.Executor,
    label: str,
    timeout_seconds: float,
    fn: Callable[..., T],
    *args: Any,
) -> T:
    """
    Run a blocking call on `pool` and wait up to timeout_seconds for it.

    Unlike call_with_timeout, the running call is kept track of after a timeout.

    Raises:
        PayoutOutcomeUnknownError: the call did not finish in time; it carries the
            still-running future
    """
    future = pool.submit(fn, *args)
    try:
        return await asyncio.wait_for(asyncio.shield(asyncio.wrap_future(future)), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        raise PayoutOutcomeUnknownError(
            f"{label} timed out after {timeout_seconds:g}s; outcome unknown", future
        ) from None
