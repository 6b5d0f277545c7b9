"""
Tests for `services/pricing_service.py`.

Covers contract rules:
- Fee-inclusive amount equals funding_amount * (1 + fee_rate), rounded to 6 decimals.
- fee == funding_amount_with_fee - funding_amount.
- Cross-asset funding converts through the USD price table.
- A quote that rounds to nothing is refused.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from domain.assets import AmountPrecisionError, Asset
from services.pricing_service import apply_fee, calculate_funding_quote
from settings import DEFAULT_USD_PRICES

FEE = Decimal("0.001")


def test_same_asset_quote_adds_point_one_percent() -> None:
    """Verify the 0.1% fee on a same-asset payment."""

    quote = calculate_funding_quote(Asset.ETH, "0.1", Asset.ETH, usd_prices=DEFAULT_USD_PRICES, fee_rate=FEE)

    assert quote.funding_amount == Decimal("0.100000")
    assert quote.funding_amount_with_fee == Decimal("0.100100")
    assert quote.fee == Decimal("0.000100")
    assert quote.fee == quote.funding_amount_with_fee - quote.funding_amount
    assert not quote.is_expired()


def test_cross_asset_quote_uses_usd_prices() -> None:
    """Verify 1.5 SOL funded with ETH at SOL=20, ETH=3000."""

    quote = calculate_funding_quote(Asset.SOL, "1.5", Asset.ETH, usd_prices=DEFAULT_USD_PRICES, fee_rate=FEE)

    assert quote.funding_amount == Decimal("0.010000")
    assert quote.funding_amount_with_fee == Decimal("0.010010")


def test_stablecoins_convert_one_to_one() -> None:
    """Verify USDC on either chain funds USDC at par."""

    quote = calculate_funding_quote(Asset.USDC, "25", Asset.USDC_SOL, usd_prices=DEFAULT_USD_PRICES, fee_rate=FEE)

    assert quote.funding_amount == Decimal("25.000000")
    assert quote.funding_amount_with_fee == Decimal("25.025000")


def test_apply_fee_rounds_half_up_to_six_decimals() -> None:
    """Verify rounding of the fee-inclusive amount."""

    assert apply_fee(Decimal("0.000500"), FEE) == Decimal("0.000501")
    assert apply_fee(Decimal("1.234567"), FEE) == Decimal("1.235802")


def test_quote_rejects_dust_and_invalid_amounts() -> None:
    """Verify amounts that vanish or are not positive are refused."""

    with pytest.raises(ValueError):
        calculate_funding_quote(Asset.USDC, "0.000001", Asset.ETH, usd_prices=DEFAULT_USD_PRICES, fee_rate=FEE)
    with pytest.raises(AmountPrecisionError):
        calculate_funding_quote(Asset.ETH, "-1", Asset.ETH, usd_prices=DEFAULT_USD_PRICES, fee_rate=FEE)
