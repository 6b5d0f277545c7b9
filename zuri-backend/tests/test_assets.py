"""
Tests for `domain/assets.py`.

Covers contract rules:
- Assets are a closed set; unknown symbols fail when parsed.
- Each asset maps to one chain family, one precision and one default chain.
- Human <-> atomic conversion is exact and never truncates.
- An explicit destination chain must belong to the asset's family.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from domain.assets import (
    AmountPrecisionError,
    Asset,
    Chain,
    ChainFamily,
    UnsupportedAssetError,
    from_atomic,
    parse_amount,
    resolve_dest_chain,
    to_atomic,
)


def test_asset_parse_accepts_known_symbols_case_insensitively() -> None:
    """Verify asset symbols are parsed into the closed enum."""

    assert Asset.parse("eth") is Asset.ETH
    assert Asset.parse(" USDC_SOL ") is Asset.USDC_SOL
    assert Asset.parse(Asset.SOL) is Asset.SOL


def test_asset_parse_rejects_unknown_symbols() -> None:
    """Verify unsupported assets fail at construction time."""

    with pytest.raises(UnsupportedAssetError):
        Asset.parse("DOGE")
    with pytest.raises(UnsupportedAssetError):
        Chain.parse("near")


def test_asset_table_decimals_and_families() -> None:
    """Verify canonical decimals and chain families per asset."""

    assert Asset.ETH.spec.decimals == 18
    assert Asset.USDC.spec.decimals == 6
    assert Asset.SOL.spec.decimals == 9
    assert Asset.USDC_SOL.spec.decimals == 6

    assert Asset.USDC.family is ChainFamily.ETHEREUM
    assert Asset.USDC_SOL.family is ChainFamily.SOLANA
    assert Asset.USDC_SOL.spec.symbol == "USDC"
    assert Chain.SOLANA_MAINNET.family is ChainFamily.SOLANA


def test_sol_amount_round_trips_exactly() -> None:
    """Verify "1.5" SOL -> 1500000000 lamports -> "1.5"."""

    atomic = to_atomic("1.5", 9)

    assert atomic == 1_500_000_000
    assert from_atomic(atomic, 9) == "1.5"


def test_eth_amount_converts_at_18_decimals() -> None:
    """Verify large-precision conversion stays exact."""

    assert to_atomic("0.1", 18) == 100_000_000_000_000_000
    assert to_atomic("123456789.123456789123456789", 18) == 123456789123456789123456789
    assert from_atomic(1, 18) == "0.000000000000000001"


def test_to_atomic_rejects_excess_precision() -> None:
    """Verify amounts not representable at the asset precision fail instead of truncating."""

    with pytest.raises(AmountPrecisionError):
        to_atomic("0.1234567", 6)


@pytest.mark.parametrize("value", ["0", "-1", "abc", "NaN", "Infinity", ""])
def test_parse_amount_rejects_non_positive_and_malformed(value: str) -> None:
    """Verify only positive finite numbers are accepted."""

    with pytest.raises(AmountPrecisionError):
        parse_amount(value)


def test_parse_amount_refuses_floats() -> None:
    """Verify floats are refused to keep amounts exact."""

    with pytest.raises(AmountPrecisionError):
        parse_amount(0.1)  # type: ignore[arg-type]
    assert parse_amount(Decimal("0.10")) == Decimal("0.1")


def test_resolve_dest_chain_defaults_and_family_check() -> None:
    """Verify default chain selection and family validation."""

    assert resolve_dest_chain(Asset.ETH) is Chain.ETHEREUM_SEPOLIA
    assert resolve_dest_chain(Asset.SOL, None, {ChainFamily.SOLANA: Chain.SOLANA_MAINNET}) is Chain.SOLANA_MAINNET
    assert resolve_dest_chain(Asset.USDC, "ethereum-mainnet") is Chain.ETHEREUM_MAINNET

    with pytest.raises(UnsupportedAssetError):
        resolve_dest_chain(Asset.SOL, "ethereum-sepolia")
