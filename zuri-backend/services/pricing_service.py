"""
Pricing service for calculating funding quotes.

Converts a requested destination payout into the amount the user must deposit on
the funding side, including the shielding fee.

Pricing uses a static USD price table (configurable); it is a quoting aid, not an
oracle.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping

from domain.assets import AmountLike, Asset, parse_amount

# Funding amounts are quoted with 6 fractional digits (exact for every supported asset).
FUNDING_QUANTUM = Decimal("0.000001")


@dataclass(frozen=True, slots=True)
class FundingQuote:
    """
    Funding-side breakdown for one payment.

    funding_amount: pay-asset amount worth dest_amount at current prices
    fee: shielding fee, funding_amount_with_fee - funding_amount
    funding_amount_with_fee: what the user must send to the collector
    """
    pay_asset: Asset
    dest_asset: Asset
    dest_amount: Decimal
    funding_amount: Decimal
    fee: Decimal
    funding_amount_with_fee: Decimal
    fee_rate: Decimal
    created_at: datetime
    expires_at: datetime

    def is_expired(self) -> bool:
        """Check if this quote has expired."""
        return datetime.now(timezone.utc) > self.expires_at


def quantize_funding(amount: Decimal) -> Decimal:
    return amount.quantize(FUNDING_QUANTUM, rounding=ROUND_HALF_UP)


def apply_fee(funding_amount: Decimal, fee_rate: Decimal) -> Decimal:
    """Fee-inclusive amount: funding_amount * (1 + fee_rate), rounded to 6 decimals."""
    return quantize_funding(funding_amount * (Decimal("1") + fee_rate))


def calculate_funding_quote(
    dest_asset: Asset,
    dest_amount: AmountLike,
    pay_asset: Asset,
    *,
    usd_prices: Mapping[Asset, Decimal],
    fee_rate: Decimal,
    quote_validity_minutes: int = 15,
) -> FundingQuote:
    """
    Calculate how much of pay_asset funds a payout of dest_amount dest_asset.

    Args:
        dest_asset: Asset the recipient receives
        dest_amount: Human-readable payout amount
        pay_asset: Asset the user deposits
        usd_prices: USD price per asset
        fee_rate: Shielding fee rate (0.001 = 0.1%)
        quote_validity_minutes: How long the quote is shown as valid

    Returns:
        FundingQuote with the fee breakdown

    Raises:
        AmountPrecisionError: dest_amount is not a positive number
        ValueError: the computed funding amount rounds to zero

    Example:
        quote = calculate_funding_quote(Asset.ETH, "0.1", Asset.ETH,
                                        usd_prices=prices, fee_rate=Decimal("0.001"))
        # quote.funding_amount == Decimal("0.100000")
        # quote.funding_amount_with_fee == Decimal("0.100100")
    """
    amount = parse_amount(dest_amount, name="destAmount")

    if pay_asset is dest_asset or usd_prices[pay_asset] == usd_prices[dest_asset]:
        raw_funding = amount
    else:
        raw_funding = amount * usd_prices[dest_asset] / usd_prices[pay_asset]

    funding_amount = quantize_funding(raw_funding)
    if funding_amount <= 0:
        raise ValueError("Funding amount rounds to zero; increase destAmount")

    with_fee = apply_fee(funding_amount, fee_rate)
    now = datetime.now(timezone.utc)

    return FundingQuote(
        pay_asset=pay_asset,
        dest_asset=dest_asset,
        dest_amount=amount,
        funding_amount=funding_amount,
        fee=with_fee - funding_amount,
        funding_amount_with_fee=with_fee,
        fee_rate=fee_rate,
        created_at=now,
        expires_at=now + timedelta(minutes=quote_validity_minutes),
    )


__all__ = [
    "FundingQuote",
    "apply_fee",
    "calculate_funding_quote",
    "quantize_funding",
]
