"""
Tests for `settings.py`.

Covers contract rules:
- Stub mode runs with an empty environment.
- Malformed values fail at startup with ConfigurationError.
- Live mode lists every missing provider setting.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from domain.assets import Asset, Chain, ChainFamily
from settings import BurnPolicy, ConfigurationError, PayoutMode, Settings, settings_from_env

LIVE_ENV = {
    "LIVE_PROVIDERS": "true",
    "ETH_RPC_URL": "https://sepolia.example",
    "ETH_SOLVER_PRIVATE_KEY": "0x" + "11" * 32,
    "ETH_USDC_CONTRACT": "0x1c7d4b196cb0c7b01d743fbc6116a902379c7238",
    "ETH_COLLECTOR_ADDRESSES": "0x8ba1f109551bd432803012645ac136ddd64dba72",
    "SOL_RPC_URL": "https://devnet.example",
    "SOL_USDC_MINT": "4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU",
    "SOL_COLLECTOR_ADDRESSES": "So11111111111111111111111111111111111111112",
    "ZCASH_LIGHT_CLIENT_URL": "http://localhost:9067",
    "ZCASH_BURN_ADDRESS": "zs1burn",
}


def test_empty_environment_gives_stub_defaults() -> None:
    """Verify defaults."""

    settings = settings_from_env({})

    assert settings.live_providers is False
    assert settings.processing_interval_seconds == 10.0
    assert settings.fee_rate == Decimal("0.001")
    assert settings.burn_policy is BurnPolicy.BURN_THEN_INTENT
    assert settings.payout_mode is PayoutMode.SOLVER
    assert settings.default_dest_chains[ChainFamily.SOLANA] is Chain.SOLANA_DEVNET
    assert settings.asset_decimals[Asset.USDC] == 6


def test_values_are_parsed() -> None:
    """Verify typed parsing of every value family."""

    settings = settings_from_env(
        {
            "PROCESSING_INTERVAL_SECONDS": "2.5",
            "FEE_RATE": "0.002",
            "BURN_POLICY": "INTENT_ONLY",
            "PAYOUT_MODE": "worker",
            "DEFAULT_DEST_CHAINS": "solana=solana, ethereum=ethereum-mainnet",
            "ASSET_DECIMALS": "SOL=9",
            "ASSET_USD_PRICES": "ETH=2500,SOL=150",
            "ETH_COLLECTOR_ADDRESSES": " 0xabc , ,0xdef",
            "LOG_LEVEL": "debug",
        }
    )

    assert settings.processing_interval_seconds == 2.5
    assert settings.fee_rate == Decimal("0.002")
    assert settings.burn_policy is BurnPolicy.INTENT_ONLY
    assert settings.payout_mode is PayoutMode.WORKER
    assert settings.default_dest_chains[ChainFamily.SOLANA] is Chain.SOLANA_MAINNET
    assert settings.default_dest_chains[ChainFamily.ETHEREUM] is Chain.ETHEREUM_MAINNET
    assert settings.usd_prices[Asset.SOL] == Decimal("150")
    assert settings.usd_prices[Asset.USDC] == Decimal("1")
    assert settings.eth_collector_addresses == ("0xabc", "0xdef")
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize(
    "env",
    [
        {"LIVE_PROVIDERS": "maybe"},
        {"PROCESSING_INTERVAL_SECONDS": "soon"},
        {"PROCESSING_INTERVAL_SECONDS": "0"},
        {"PORT": "http"},
        {"FEE_RATE": "lots"},
        {"FEE_RATE": "1.5"},
        {"BURN_POLICY": "sometimes"},
        {"DEFAULT_DEST_CHAINS": "ethereum=solana-devnet"},
        {"DEFAULT_DEST_CHAINS": "bitcoin=ethereum-sepolia"},
        {"DEFAULT_DEST_CHAINS": "ethereum"},
        {"ASSET_USD_PRICES": "DOGE=1"},
        {"ASSET_USD_PRICES": "SOL=0"},
        {"NEAR_CONTRACT_ID": "intents.testnet"},
    ],
)
def test_invalid_values_raise_configuration_error(env) -> None:
    """Verify startup validation rejects malformed configuration."""

    with pytest.raises(ConfigurationError):
        settings_from_env(env)


def test_live_mode_requires_provider_settings() -> None:
    """Verify all missing live settings are reported together."""

    with pytest.raises(ConfigurationError) as exc_info:
        settings_from_env({"LIVE_PROVIDERS": "true"})

    message = str(exc_info.value)
    assert "ETH_RPC_URL" in message
    assert "SOL_COLLECTOR_ADDRESSES" in message
    assert "ZCASH_BURN_ADDRESS" in message


def test_live_mode_with_complete_settings() -> None:
    """Verify a complete live environment validates."""

    settings = settings_from_env(LIVE_ENV)

    assert settings.live_providers is True
    assert settings.light_client_configured is True


def test_intent_only_does_not_need_a_burn_address() -> None:
    """Verify the burn address is only required when burning."""

    env = dict(LIVE_ENV, BURN_POLICY="intent_only")
    del env["ZCASH_BURN_ADDRESS"]

    assert settings_from_env(env).zcash_burn_address is None


def test_near_configured_needs_contract_and_signer() -> None:
    """Verify the intent ledger falls back to memory unless both are set."""

    assert Settings().near_configured is False
    assert Settings(near_contract_id="intents.testnet", near_signer_url="http://signer").near_configured is True
