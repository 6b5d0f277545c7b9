"""
Domain: Assets, chains and exact amount arithmetic.

Contract excerpts implemented here:
- Supported assets form a closed set: ETH, USDC (Ethereum), SOL, USDC_SOL (Solana).
- Each asset maps to exactly one chain family, one canonical decimal precision and
  one default destination chain.
- Destination amounts are placed on the intent ledger as integers scaled by the
  asset's decimals. Conversion is exact; an amount that cannot be represented at
  the asset's precision is rejected, never truncated.

Unsupported asset symbols fail when parsed, not later during processing.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, localcontext
from enum import Enum
from typing import Mapping, Optional, Union

AmountLike = Union[str, int, Decimal]

# Enough digits for any u128 ledger amount at 18 decimals.
_ATOMIC_PRECISION = 80


class UnsupportedAssetError(ValueError):
    """Raised when an asset or chain identifier is not part of the supported set."""
    pass


class AmountPrecisionError(ValueError):
    """Raised when an amount is malformed or not representable at an asset's precision."""
    pass


class ChainFamily(str, Enum):
    ETHEREUM = "ethereum"
    SOLANA = "solana"


class Chain(str, Enum):
    ETHEREUM_SEPOLIA = "ethereum-sepolia"
    ETHEREUM_MAINNET = "ethereum-mainnet"
    SOLANA_DEVNET = "solana-devnet"
    SOLANA_MAINNET = "solana"

    @property
    def family(self) -> ChainFamily:
        if self in (Chain.ETHEREUM_SEPOLIA, Chain.ETHEREUM_MAINNET):
            return ChainFamily.ETHEREUM
        return ChainFamily.SOLANA

    @classmethod
    def parse(cls, value: Union[str, "Chain"]) -> "Chain":
        if isinstance(value, Chain):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnsupportedAssetError(f"Unsupported chain: {value!r}") from None


class Asset(str, Enum):
    ETH = "ETH"
    USDC = "USDC"
    SOL = "SOL"
    USDC_SOL = "USDC_SOL"

    @property
    def spec(self) -> "AssetSpec":
        return ASSET_SPECS[self]

    @property
    def family(self) -> ChainFamily:
        return ASSET_SPECS[self].family

    @classmethod
    def parse(cls, value: Union[str, "Asset"]) -> "Asset":
        if isinstance(value, Asset):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise UnsupportedAssetError(f"Unsupported asset: {value!r}") from None


@dataclass(frozen=True, slots=True)
class AssetSpec:
    """
    Static description of an asset.

    symbol is the ticker shown to users (USDC_SOL is displayed as USDC).
    native is False for token assets (ERC-20 / SPL) that need a contract or mint.
    """

    asset: Asset
    symbol: str
    family: ChainFamily
    decimals: int
    default_chain: Chain
    native: bool


ASSET_SPECS: Mapping[Asset, AssetSpec] = {
    Asset.ETH: AssetSpec(Asset.ETH, "ETH", ChainFamily.ETHEREUM, 18, Chain.ETHEREUM_SEPOLIA, True),
    Asset.USDC: AssetSpec(Asset.USDC, "USDC", ChainFamily.ETHEREUM, 6, Chain.ETHEREUM_SEPOLIA, False),
    Asset.SOL: AssetSpec(Asset.SOL, "SOL", ChainFamily.SOLANA, 9, Chain.SOLANA_DEVNET, True),
    Asset.USDC_SOL: AssetSpec(Asset.USDC_SOL, "USDC", ChainFamily.SOLANA, 6, Chain.SOLANA_DEVNET, False),
}


def resolve_dest_chain(
    asset: Asset,
    requested: Optional[Union[str, Chain]] = None,
    defaults: Optional[Mapping[ChainFamily, Chain]] = None,
) -> Chain:
    """
    Pick the destination chain for an asset.

    An explicit chain must belong to the asset's family. Without one, the configured
    per-family default wins over the asset's built-in default.
    """

    if requested:
        chain = Chain.parse(requested)
        if chain.family is not asset.family:
            raise UnsupportedAssetError(
                f"Chain {chain.value} cannot carry {asset.value} ({asset.family.value} family)"
            )
        return chain
    if defaults and asset.family in defaults:
        return defaults[asset.family]
    return asset.spec.default_chain


def parse_amount(value: AmountLike, *, name: str = "amount") -> Decimal:
    """
    Parse a human-readable amount into a positive, finite Decimal.

    Floats are refused; callers pass strings or Decimals.
    """

    if isinstance(value, float):
        raise AmountPrecisionError(f"{name} must be given as a string, not a float")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise AmountPrecisionError(f"{name} is not a number: {value!r}") from None
    if not amount.is_finite():
        raise AmountPrecisionError(f"{name} must be finite")
    if amount <= 0:
        raise AmountPrecisionError(f"{name} must be positive")
    return amount


def to_atomic(amount: AmountLike, decimals: int) -> int:
    """
    Convert a human amount to integer atomic units.

    Example:
        to_atomic("1.5", 9) == 1500000000

    Raises:
        AmountPrecisionError: if the amount has more fractional digits than decimals
    """

    if decimals < 0:
        raise AmountPrecisionError("decimals must be >= 0")
    value = parse_amount(amount)
    with localcontext() as ctx:
        ctx.prec = _ATOMIC_PRECISION
        scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise AmountPrecisionError(
            f"{value} cannot be represented exactly with {decimals} decimals"
        )
    return int(scaled)


def from_atomic(atomic: int, decimals: int) -> str:
    """
    Convert integer atomic units back to a canonical human-readable string.

    Example:
        from_atomic(1500000000, 9) == "1.5"
    """

    if decimals < 0:
        raise AmountPrecisionError("decimals must be >= 0")
    with localcontext() as ctx:
        ctx.prec = _ATOMIC_PRECISION
        return format_amount(Decimal(int(atomic)).scaleb(-decimals))


def format_amount(value: Decimal) -> str:
    """Render a Decimal without exponent and without trailing zeros."""

    if value == 0:
        return "0"
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text
