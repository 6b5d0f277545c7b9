"""
Application context.

One PaymentContext is built at startup and handed to the API, the payment
processor and the solver. It owns the payment store, the intent ledger client and
the collaborators selected for this process (stub or live). Tests build their own
isolated contexts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from domain.assets import Asset, ChainFamily
from providers.base import (
    CollectorAllocator,
    DepositVerifier,
    PayoutExecutor,
    PrivacyLayer,
    ProviderError,
)
from providers.collectors import PooledCollectorAllocator, StubCollectorAllocator
from providers.ethereum import EthereumDepositVerifier, EthereumPayoutExecutor
from providers.rpc import JsonRpcClient
from providers.shielded import LightClientSidecar, ShieldedPayoutExecutor, ShieldedPrivacyLayer
from providers.solana import SolanaDepositVerifier
from providers.stub import StubDepositVerifier, StubPayoutExecutor, StubPrivacyLayer
from repositories.intent_ledger import InMemoryIntentLedger, IntentLedger, NearIntentLedger
from repositories.payment_repository import PaymentRepository
from settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class PaymentContext:
    settings: Settings
    payments: PaymentRepository
    ledger: IntentLedger
    collectors: CollectorAllocator
    verifiers: Dict[ChainFamily, DepositVerifier]
    executors: Dict[ChainFamily, PayoutExecutor]
    privacy_layer: PrivacyLayer

    def verifier_for(self, asset: Asset) -> DepositVerifier:
        verifier = self.verifiers.get(asset.family)
        if verifier is None:
            raise ProviderError(f"No deposit verifier for {asset.family.value}")
        return verifier

    def executor_for(self, asset: Asset) -> PayoutExecutor:
        executor = self.executors.get(asset.family)
        if executor is None:
            raise ProviderError(f"No payout executor for {asset.family.value}")
        return executor


def build_stub_context(settings: Optional[Settings] = None, *, auto_confirm: bool = True) -> PaymentContext:
    """Context wired entirely with in-process stubs."""

    settings = settings or Settings()
    return PaymentContext(
        settings=settings,
        payments=PaymentRepository(),
        ledger=InMemoryIntentLedger(),
        collectors=StubCollectorAllocator(),
        verifiers={
            family: StubDepositVerifier(family, auto_confirm=auto_confirm) for family in ChainFamily
        },
        executors={family: StubPayoutExecutor(family.value) for family in ChainFamily},
        privacy_layer=StubPrivacyLayer(),
    )


def build_context(settings: Settings) -> PaymentContext:
    """
    Build the context selected by configuration.

    LIVE_PROVIDERS picks stub or live verifiers/executors/collectors; the NEAR ledger
    is used whenever a contract and signer are configured.
    """

    if settings.live_providers:
        context = _build_live_context(settings)
    else:
        logger.warning("LIVE_PROVIDERS is off; deposits and payouts are stubbed")
        context = build_stub_context(settings)

    if settings.near_configured:
        context.ledger = NearIntentLedger(
            rpc_url=settings.near_rpc_url,
            contract_id=settings.near_contract_id,
            account_id=settings.near_account_id or settings.near_contract_id,
            signer_url=settings.near_signer_url,
            signer_api_key=settings.near_signer_api_key,
            timeout_seconds=settings.external_call_timeout_seconds,
        )
        logger.info("Intent ledger: NEAR contract %s", settings.near_contract_id)
    else:
        logger.warning("NEAR_CONTRACT_ID not set; intents are kept in the in-memory ledger")
    return context


def _build_live_context(settings: Settings) -> PaymentContext:
    timeout = settings.external_call_timeout_seconds
    eth_rpc = JsonRpcClient(settings.eth_rpc_url, timeout_seconds=timeout, name="ETH")
    sol_rpc = JsonRpcClient(settings.sol_rpc_url, timeout_seconds=timeout, name="SOL")
    sidecar = LightClientSidecar(
        settings.zcash_light_client_url,
        api_key=settings.zcash_light_client_api_key,
        timeout_seconds=timeout,
    )

    eth_executor = EthereumPayoutExecutor(
        eth_rpc,
        settings.eth_solver_private_key,
        settings.eth_chain_id,
        usdc_contract=settings.eth_usdc_contract,
    )
    logger.info("Solver wallet: %s", eth_executor.address)

    if settings.zcash_burn_address:
        privacy_layer: PrivacyLayer = ShieldedPrivacyLayer(sidecar, settings.zcash_burn_address)
    else:
        logger.warning("ZCASH_BURN_ADDRESS not set; privacy burns remain stubbed")
        privacy_layer = StubPrivacyLayer()

    return PaymentContext(
        settings=settings,
        payments=PaymentRepository(),
        ledger=InMemoryIntentLedger(),
        collectors=PooledCollectorAllocator(
            {
                ChainFamily.ETHEREUM: settings.eth_collector_addresses,
                ChainFamily.SOLANA: settings.sol_collector_addresses,
            }
        ),
        verifiers={
            ChainFamily.ETHEREUM: EthereumDepositVerifier(
                eth_rpc,
                usdc_contract=settings.eth_usdc_contract,
                min_confirmations=settings.eth_min_confirmations,
            ),
            ChainFamily.SOLANA: SolanaDepositVerifier(sol_rpc, usdc_mint=settings.sol_usdc_mint),
        },
        executors={
            ChainFamily.ETHEREUM: eth_executor,
            ChainFamily.SOLANA: ShieldedPayoutExecutor(sidecar),
        },
        privacy_layer=privacy_layer,
    )
