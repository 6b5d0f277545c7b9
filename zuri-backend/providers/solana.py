"""
Solana deposit verification over JSON-RPC (`getTransaction`, jsonParsed).

SOL: accepted when parsed transfers to the collector, or failing that the
collector's lamport balance delta, reach the expected amount.
USDC_SOL: accepted when the collector-owned token balance for the USDC mint grew by
at least the expected amount.

A transaction that is missing or failed is "not confirmed", never an error.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from domain.assets import Asset, ChainFamily, to_atomic

from .base import DepositCheck, DepositVerifier, ProviderError
from .rpc import JsonRpcClient

logger = logging.getLogger(__name__)

_DESTINATION_KEYS = ("destination", "dest", "account", "newAccount", "recipient")


def _account_keys(transaction: Dict[str, Any]) -> List[str]:
    keys = ((transaction.get("message") or {}).get("accountKeys")) or []
    return [k if isinstance(k, str) else (k or {}).get("pubkey") for k in keys]


def _sum_transfers_to(instructions: Iterable[Dict[str, Any]], collector: str) -> int:
    total = 0
    for ix in instructions:
        parsed = (ix or {}).get("parsed")
        info = parsed.get("info") if isinstance(parsed, dict) else None
        if not info:
            continue
        dest = next((info[k] for k in _DESTINATION_KEYS if info.get(k)), None)
        if dest != collector:
            continue
        lamports = info.get("lamports", 0)
        try:
            total += int(lamports)
        except (TypeError, ValueError):
            continue
    return total


class SolanaDepositVerifier(DepositVerifier):
    def __init__(
        self,
        rpc: JsonRpcClient,
        *,
        usdc_mint: Optional[str] = None,
        commitment: str = "confirmed",
    ) -> None:
        self.rpc = rpc
        self.usdc_mint = usdc_mint
        self.commitment = commitment

    @property
    def family(self) -> ChainFamily:
        return ChainFamily.SOLANA

    def verify_deposit(self, check: DepositCheck) -> bool:
        if check.asset.family is not ChainFamily.SOLANA:
            raise ProviderError(f"{check.asset.value} is not a Solana asset")

        result = self.rpc.call(
            "getTransaction",
            [
                check.tx_reference,
                {
                    "encoding": "jsonParsed",
                    "commitment": self.commitment,
                    "maxSupportedTransactionVersion": 0,
                },
            ],
        )
        if not result:
            logger.info("[SOL] No transaction result for %s", check.tx_reference)
            return False

        meta = result.get("meta") or {}
        if meta.get("err"):
            logger.warning("[SOL] Transaction %s has error %s", check.tx_reference, meta["err"])
            return False

        expected = to_atomic(check.expected_amount, check.asset.spec.decimals)
        if check.asset is Asset.SOL:
            received = self._lamports_received(result, meta, check.collector_address)
        else:
            received = self._tokens_received(meta, check.collector_address)

        if received >= expected:
            return True
        logger.warning(
            "[SOL] Collector funding insufficient for %s: received %d, expected at least %d",
            check.tx_reference, received, expected,
        )
        return False

    def _lamports_received(self, result: Dict[str, Any], meta: Dict[str, Any], collector: str) -> int:
        transaction = result.get("transaction") or {}
        keys = _account_keys(transaction)
        if collector not in keys:
            logger.warning("[SOL] Collector address %s not found in tx", collector)
            return 0

        top_level = (transaction.get("message") or {}).get("instructions") or []
        inner = [
            ix
            for group in meta.get("innerInstructions") or []
            for ix in (group.get("instructions") or [])
        ]
        transfers = _sum_transfers_to(top_level, collector) + _sum_transfers_to(inner, collector)

        index = keys.index(collector)
        pre = (meta.get("preBalances") or [])
        post = (meta.get("postBalances") or [])
        delta = 0
        if index < len(pre) and index < len(post):
            delta = int(post[index]) - int(pre[index])
        return max(transfers, delta)

    def _tokens_received(self, meta: Dict[str, Any], collector: str) -> int:
        if not self.usdc_mint:
            raise ProviderError("USDC mint address is not configured")

        def balance(entries: Iterable[Dict[str, Any]]) -> int:
            total = 0
            for entry in entries or []:
                if entry.get("mint") != self.usdc_mint or entry.get("owner") != collector:
                    continue
                total += int(((entry.get("uiTokenAmount") or {}).get("amount")) or 0)
            return total

        return balance(meta.get("postTokenBalances")) - balance(meta.get("preTokenBalances"))
