"""
Runtime configuration.

Values come from environment variables, with a `.env` file in the zuri-backend
directory loaded first. Everything is validated once at startup: a missing or
malformed value raises ConfigurationError before either loop starts.

Environment variables (all optional in stub mode):
- PROCESSING_INTERVAL_SECONDS, SOLVER_INTERVAL_SECONDS: loop intervals (default 10)
- LIVE_PROVIDERS: "true" to talk to real chains (default false)
- FEE_RATE: shielding fee on the funding amount (default 0.001)
- BURN_POLICY: burn_then_intent | intent_only
- PAYOUT_MODE: solver | worker
- DEFAULT_DEST_CHAINS: e.g. "ethereum=ethereum-sepolia,solana=solana-devnet"
- ASSET_DECIMALS, ASSET_USD_PRICES: e.g. "SOL=9,USDC=6" / "ETH=3000,SOL=20"
- EXTERNAL_CALL_TIMEOUT_SECONDS: per collaborator call (default 30)
- ETH_RPC_URL, ETH_CHAIN_ID, ETH_SOLVER_PRIVATE_KEY, ETH_USDC_CONTRACT,
  ETH_MIN_CONFIRMATIONS, ETH_COLLECTOR_ADDRESSES
- SOL_RPC_URL, SOL_USDC_MINT, SOL_COLLECTOR_ADDRESSES
- ZCASH_LIGHT_CLIENT_URL, ZCASH_LIGHT_CLIENT_API_KEY, ZCASH_BURN_ADDRESS
- NEAR_RPC_URL, NEAR_CONTRACT_ID, NEAR_ACCOUNT_ID, NEAR_SIGNER_URL, NEAR_SIGNER_API_KEY
- LOG_LEVEL, PORT
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

from dotenv import load_dotenv

from domain.assets import ASSET_SPECS, Asset, Chain, ChainFamily, UnsupportedAssetError

ENV_PATH = Path(__file__).parent / ".env"


class ConfigurationError(RuntimeError):
    """Raised at startup when configuration is missing or invalid."""
    pass


class BurnPolicy(str, Enum):
    BURN_THEN_INTENT = "burn_then_intent"
    INTENT_ONLY = "intent_only"


class PayoutMode(str, Enum):
    SOLVER = "solver"
    WORKER = "worker"


DEFAULT_USD_PRICES: Mapping[Asset, Decimal] = {
    Asset.ETH: Decimal("3000"),
    Asset.USDC: Decimal("1"),
    Asset.SOL: Decimal("20"),
    Asset.USDC_SOL: Decimal("1"),
}


@dataclass(frozen=True)
class Settings:
    processing_interval_seconds: float = 10.0
    solver_interval_seconds: float = 10.0
    live_providers: bool = False
    fee_rate: Decimal = Decimal("0.001")
    burn_policy: BurnPolicy = BurnPolicy.BURN_THEN_INTENT
    payout_mode: PayoutMode = PayoutMode.SOLVER
    default_dest_chains: Mapping[ChainFamily, Chain] = field(
        default_factory=lambda: {
            ChainFamily.ETHEREUM: Chain.ETHEREUM_SEPOLIA,
            ChainFamily.SOLANA: Chain.SOLANA_DEVNET,
        }
    )
    asset_decimals: Mapping[Asset, int] = field(
        default_factory=lambda: {asset: spec.decimals for asset, spec in ASSET_SPECS.items()}
    )
    usd_prices: Mapping[Asset, Decimal] = field(default_factory=lambda: dict(DEFAULT_USD_PRICES))
    external_call_timeout_seconds: float = 30.0
    log_level: str = "INFO"
    port: int = 3001

    # Ethereum
    eth_rpc_url: Optional[str] = None
    eth_chain_id: int = 11155111
    eth_solver_private_key: Optional[str] = None
    eth_usdc_contract: Optional[str] = None
    eth_min_confirmations: int = 1
    eth_collector_addresses: Tuple[str, ...] = ()

    # Solana
    sol_rpc_url: Optional[str] = None
    sol_usdc_mint: Optional[str] = None
    sol_collector_addresses: Tuple[str, ...] = ()

    # Zcash light-client sidecar
    zcash_light_client_url: Optional[str] = None
    zcash_light_client_api_key: Optional[str] = None
    zcash_burn_address: Optional[str] = None

    # NEAR intents contract
    near_rpc_url: str = "https://rpc.testnet.near.org"
    near_contract_id: Optional[str] = None
    near_account_id: Optional[str] = None
    near_signer_url: Optional[str] = None
    near_signer_api_key: Optional[str] = None

    @property
    def near_configured(self) -> bool:
        return bool(self.near_contract_id and self.near_signer_url)

    @property
    def light_client_configured(self) -> bool:
        return bool(self.zcash_light_client_url)

    def validate(self) -> "Settings":
        """
        Check cross-field requirements.

        Raises:
            ConfigurationError: listing every problem found
        """

        problems = []
        if self.processing_interval_seconds <= 0:
            problems.append("PROCESSING_INTERVAL_SECONDS must be positive")
        if self.solver_interval_seconds <= 0:
            problems.append("SOLVER_INTERVAL_SECONDS must be positive")
        if self.external_call_timeout_seconds <= 0:
            problems.append("EXTERNAL_CALL_TIMEOUT_SECONDS must be positive")
        if not (Decimal("0") <= self.fee_rate < Decimal("1")):
            problems.append("FEE_RATE must be in [0, 1)")
        for asset, decimals in self.asset_decimals.items():
            if not 0 <= decimals <= 36:
                problems.append(f"ASSET_DECIMALS for {asset.value} must be in [0, 36]")
        for asset in Asset:
            price = self.usd_prices.get(asset)
            if price is None or price <= 0:
                problems.append(f"ASSET_USD_PRICES for {asset.value} must be positive")
        for family, chain in self.default_dest_chains.items():
            if chain.family is not family:
                problems.append(f"DEFAULT_DEST_CHAINS maps {family.value} to {chain.value}")
        if self.near_contract_id and not self.near_signer_url:
            problems.append("NEAR_SIGNER_URL is required when NEAR_CONTRACT_ID is set")

        if self.live_providers:
            required = {
                "ETH_RPC_URL": self.eth_rpc_url,
                "ETH_SOLVER_PRIVATE_KEY": self.eth_solver_private_key,
                "ETH_USDC_CONTRACT": self.eth_usdc_contract,
                "SOL_RPC_URL": self.sol_rpc_url,
                "SOL_USDC_MINT": self.sol_usdc_mint,
                "ZCASH_LIGHT_CLIENT_URL": self.zcash_light_client_url,
            }
            problems.extend(f"{name} is required when LIVE_PROVIDERS is on" for name, value in required.items() if not value)
            if not self.eth_collector_addresses:
                problems.append("ETH_COLLECTOR_ADDRESSES is required when LIVE_PROVIDERS is on")
            if not self.sol_collector_addresses:
                problems.append("SOL_COLLECTOR_ADDRESSES is required when LIVE_PROVIDERS is on")
            if self.burn_policy is BurnPolicy.BURN_THEN_INTENT and not self.zcash_burn_address:
                problems.append("ZCASH_BURN_ADDRESS is required for the burn_then_intent policy")

        if problems:
            raise ConfigurationError("Invalid configuration: " + "; ".join(problems))
        return self


def _get(env: Mapping[str, str], name: str) -> Optional[str]:
    value = env.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = _get(env, name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = _get(env, name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


def _bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = _get(env, name)
    if raw is None:
        return default
    if raw.lower() in ("1", "true", "yes", "on"):
        return True
    if raw.lower() in ("0", "false", "no", "off"):
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {raw!r}")


def _enum(env: Mapping[str, str], name: str, enum_type, default):
    raw = _get(env, name)
    if raw is None:
        return default
    try:
        return enum_type(raw.lower())
    except ValueError:
        allowed = ", ".join(e.value for e in enum_type)
        raise ConfigurationError(f"{name} must be one of: {allowed}") from None


def _pairs(env: Mapping[str, str], name: str) -> Dict[str, str]:
    """Parse "KEY=value,KEY2=value2"."""
    raw = _get(env, name)
    if raw is None:
        return {}
    pairs: Dict[str, str] = {}
    for item in raw.split(","):
        if not item.strip():
            continue
        key, sep, value = item.partition("=")
        if not sep or not key.strip() or not value.strip():
            raise ConfigurationError(f"{name} entries must look like KEY=value, got {item!r}")
        pairs[key.strip()] = value.strip()
    return pairs


def _list(env: Mapping[str, str], name: str) -> Tuple[str, ...]:
    raw = _get(env, name)
    if raw is None:
        return ()
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def settings_from_env(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build validated Settings from a mapping (defaults to os.environ)."""

    env = os.environ if env is None else env
    defaults = Settings()

    try:
        dest_chains = dict(defaults.default_dest_chains)
        for family, chain in _pairs(env, "DEFAULT_DEST_CHAINS").items():
            dest_chains[ChainFamily(family.lower())] = Chain.parse(chain)

        decimals = dict(defaults.asset_decimals)
        for asset, value in _pairs(env, "ASSET_DECIMALS").items():
            decimals[Asset.parse(asset)] = int(value)

        prices = dict(defaults.usd_prices)
        for asset, value in _pairs(env, "ASSET_USD_PRICES").items():
            prices[Asset.parse(asset)] = Decimal(value)

        fee_rate = Decimal(_get(env, "FEE_RATE") or str(defaults.fee_rate))
    except (UnsupportedAssetError, InvalidOperation, ValueError) as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc

    settings = Settings(
        processing_interval_seconds=_float(env, "PROCESSING_INTERVAL_SECONDS", defaults.processing_interval_seconds),
        solver_interval_seconds=_float(env, "SOLVER_INTERVAL_SECONDS", defaults.solver_interval_seconds),
        live_providers=_bool(env, "LIVE_PROVIDERS", defaults.live_providers),
        fee_rate=fee_rate,
        burn_policy=_enum(env, "BURN_POLICY", BurnPolicy, defaults.burn_policy),
        payout_mode=_enum(env, "PAYOUT_MODE", PayoutMode, defaults.payout_mode),
        default_dest_chains=dest_chains,
        asset_decimals=decimals,
        usd_prices=prices,
        external_call_timeout_seconds=_float(
            env, "EXTERNAL_CALL_TIMEOUT_SECONDS", defaults.external_call_timeout_seconds
        ),
        log_level=(_get(env, "LOG_LEVEL") or defaults.log_level).upper(),
        port=_int(env, "PORT", defaults.port),
        eth_rpc_url=_get(env, "ETH_RPC_URL"),
        eth_chain_id=_int(env, "ETH_CHAIN_ID", defaults.eth_chain_id),
        eth_solver_private_key=_get(env, "ETH_SOLVER_PRIVATE_KEY"),
        eth_usdc_contract=_get(env, "ETH_USDC_CONTRACT"),
        eth_min_confirmations=_int(env, "ETH_MIN_CONFIRMATIONS", defaults.eth_min_confirmations),
        eth_collector_addresses=_list(env, "ETH_COLLECTOR_ADDRESSES"),
        sol_rpc_url=_get(env, "SOL_RPC_URL"),
        sol_usdc_mint=_get(env, "SOL_USDC_MINT"),
        sol_collector_addresses=_list(env, "SOL_COLLECTOR_ADDRESSES"),
        zcash_light_client_url=_get(env, "ZCASH_LIGHT_CLIENT_URL"),
        zcash_light_client_api_key=_get(env, "ZCASH_LIGHT_CLIENT_API_KEY"),
        zcash_burn_address=_get(env, "ZCASH_BURN_ADDRESS"),
        near_rpc_url=_get(env, "NEAR_RPC_URL") or defaults.near_rpc_url,
        near_contract_id=_get(env, "NEAR_CONTRACT_ID"),
        near_account_id=_get(env, "NEAR_ACCOUNT_ID"),
        near_signer_url=_get(env, "NEAR_SIGNER_URL"),
        near_signer_api_key=_get(env, "NEAR_SIGNER_API_KEY"),
    )
    return settings.validate()


def load_settings() -> Settings:
    """Load `.env` (without overriding the real environment) and build Settings."""

    load_dotenv(dotenv_path=ENV_PATH)
    return settings_from_env()


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
