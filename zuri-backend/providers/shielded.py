"""
Zcash light-client sidecar integration.

The sidecar is a separate service wrapping lightwalletd. It exposes:

    POST {base_url}/send-shielded-tx
    {"toAddress": ..., "amountZec": ..., "memo": ...}  ->  {"txId": "..."}

It backs two collaborators:
- ShieldedPrivacyLayer: the privacy burn (shielded send to the burn address).
- ShieldedPayoutExecutor: shielded payouts from the solver's ZEC balance, the rail
  used for Solana-family destinations.
"""

from __future__ import annotations

import logging
from typing import Optional

import requests

from .base import (
    BurnResult,
    PayoutExecutor,
    PayoutOrder,
    PrivacyLayer,
    ProviderError,
    TransientProviderError,
)

logger = logging.getLogger(__name__)


class LightClientSidecar:
    """HTTP wrapper around the light-client sidecar."""

    def __init__(
        self,
        base_url: str,
        *,
        api_key: Optional[str] = None,
        timeout_seconds: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    def send_shielded_tx(self, to_address: str, amount_zec: str, memo: Optional[str] = None) -> str:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            response = self.session.post(
                f"{self.base_url}/send-shielded-tx",
                json={"toAddress": to_address, "amountZec": amount_zec, "memo": memo},
                headers=headers,
                timeout=self.timeout_seconds,
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise TransientProviderError(f"Light client unreachable: {exc}") from exc

        if response.status_code >= 500:
            raise TransientProviderError(
                f"Light client send failed: {response.status_code} {response.reason} {response.text}"
            )
        if not response.ok:
            raise ProviderError(
                f"Light client send failed: {response.status_code} {response.reason} {response.text}"
            )
        tx_id = (response.json() or {}).get("txId")
        if not tx_id:
            raise ProviderError("Light client response missing txId")
        return str(tx_id)


class ShieldedPrivacyLayer(PrivacyLayer):
    def __init__(self, sidecar: LightClientSidecar, burn_address: str) -> None:
        self.sidecar = sidecar
        self.burn_address = burn_address

    @property
    def name(self) -> str:
        return "zcash-light-client"

    def burn(self, payment_id: str, amount: str) -> BurnResult:
        tx_id = self.sidecar.send_shielded_tx(self.burn_address, amount, memo=f"burn:{payment_id}")
        logger.info("[ZEC] Burned %s ZEC for payment %s in %s", amount, payment_id, tx_id)
        return BurnResult(tx_reference=tx_id, amount=amount)


class ShieldedPayoutExecutor(PayoutExecutor):
    def __init__(self, sidecar: LightClientSidecar) -> None:
        self.sidecar = sidecar

    @property
    def name(self) -> str:
        return "zcash-shielded"

    def send_payout(self, order: PayoutOrder) -> str:
        tx_id = self.sidecar.send_shielded_tx(
            order.dest_address, order.amount, memo=f"payout:{order.intent_id}"
        )
        logger.info(
            "[ZEC] Shielded payout %s %s to %s in %s", order.amount, order.asset.value, order.dest_address, tx_id
        )
        return tx_id
