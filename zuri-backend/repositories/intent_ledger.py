"""
Intent ledger clients.

The intent ledger is the single source of truth for "open" versus "fulfilled"
payout intents. Two implementations share one contract:

- InMemoryIntentLedger: process-lifetime store used when no NEAR contract is
  configured, and as the degraded-mode fallback of the NEAR client.
- NearIntentLedger: reads the NEAR intents contract through JSON-RPC view calls
  and writes through a signer sidecar that holds the NEAR account key.

Both expose claim()/release() so the solver can take an intent out of the open set
before it initiates a payout. A claim is in-process only; it keeps two solver ticks
in this process from paying the same intent twice.
"""

from __future__ import annotations

import base64
import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Set

import requests

from domain.intent import FulfillmentIntent
from providers.base import TransientProviderError

logger = logging.getLogger(__name__)

LOCAL_REFERENCE_PREFIX = "local:"


class IntentNotFoundError(LookupError):
    """Raised when an intent id is unknown to the ledger."""
    pass


class IntentLedgerError(RuntimeError):
    """Raised when the ledger returns an unusable response."""
    pass


class IntentLedger(ABC):
    """Contract every intent ledger client implements."""

    @abstractmethod
    def create_intent(self, intent: FulfillmentIntent) -> str:
        """Publish a new intent and return the ledger transaction reference."""
        ...

    @abstractmethod
    def list_open_intents(self) -> List[FulfillmentIntent]:
        """Intents that are neither fulfilled nor claimed in this process."""
        ...

    @abstractmethod
    def mark_fulfilled(self, intent_id: str, payout_tx_reference: str) -> bool:
        """
        Mark an intent fulfilled.

        Returns False without changing anything when it was already fulfilled.
        """
        ...

    @abstractmethod
    def get_intent(self, intent_id: str) -> Optional[FulfillmentIntent]:
        ...

    @abstractmethod
    def claim(self, intent_id: str) -> bool:
        """Take an intent out of the open set. False if already claimed or fulfilled."""
        ...

    @abstractmethod
    def release(self, intent_id: str) -> None:
        """Return a claimed, unfulfilled intent to the open set."""
        ...

    @property
    def is_degraded(self) -> bool:
        return False


class InMemoryIntentLedger(IntentLedger):
    """Thread-safe in-memory ledger; every operation is atomic under one lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._intents: Dict[str, FulfillmentIntent] = {}
        self._order: List[str] = []
        self._claimed: Set[str] = set()

    def create_intent(self, intent: FulfillmentIntent) -> str:
        with self._lock:
            if intent.intent_id in self._intents:
                raise ValueError(f"Intent already exists: {intent.intent_id}")
            self._intents[intent.intent_id] = intent
            self._order.append(intent.intent_id)
        logger.info(
            "Intent %s created for payment %s (%s %s -> %s)",
            intent.intent_id, intent.payment_id, intent.amount, intent.dest_asset, intent.dest_chain,
        )
        return f"{LOCAL_REFERENCE_PREFIX}{intent.intent_id}"

    def list_open_intents(self) -> List[FulfillmentIntent]:
        with self._lock:
            return [
                self._intents[i] for i in self._order
                if not self._intents[i].fulfilled and i not in self._claimed
            ]

    def mark_fulfilled(self, intent_id: str, payout_tx_reference: str) -> bool:
        with self._lock:
            intent = self._intents.get(intent_id)
            if intent is None:
                raise IntentNotFoundError(f"Intent not found: {intent_id}")
            if intent.fulfilled:
                return False
            self._intents[intent_id] = intent.fulfilled_with(payout_tx_reference)
            self._claimed.discard(intent_id)
        logger.info("Intent %s fulfilled by %s", intent_id, payout_tx_reference)
        return True

    def get_intent(self, intent_id: str) -> Optional[FulfillmentIntent]:
        with self._lock:
            return self._intents.get(intent_id)

    def contains(self, intent_id: str) -> bool:
        with self._lock:
            return intent_id in self._intents

    def claim(self, intent_id: str) -> bool:
        with self._lock:
            intent = self._intents.get(intent_id)
            if intent is None or intent.fulfilled or intent_id in self._claimed:
                return False
            self._claimed.add(intent_id)
            return True

    def release(self, intent_id: str) -> None:
        with self._lock:
            self._claimed.discard(intent_id)


class NearIntentLedger(IntentLedger):
    """
    NEAR-backed intent ledger.

    View methods (list_open_intents, get_intent) go through the public RPC node.
    Change methods (create_intent, mark_fulfilled) go through the signer sidecar:

        POST {signer_url}/function-call
        {"contractId": ..., "methodName": ..., "args": {...}, "signerId": ...}
        -> {"txHash": "..."}

    If NEAR cannot be reached when an intent is created, the intent is kept in the
    embedded fallback ledger instead (degraded mode); reads merge both sources.
    """

    def __init__(
        self,
        rpc_url: str,
        contract_id: str,
        account_id: str,
        signer_url: str,
        *,
        signer_api_key: Optional[str] = None,
        timeout_seconds: float = 30.0,
        session: Optional[requests.Session] = None,
        fallback: Optional[InMemoryIntentLedger] = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.contract_id = contract_id
        self.account_id = account_id
        self.signer_url = signer_url.rstrip("/")
        self.signer_api_key = signer_api_key
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()
        self.fallback = fallback or InMemoryIntentLedger()
        self._lock = threading.Lock()
        self._claimed: Set[str] = set()
        self._degraded = False

    @property
    def is_degraded(self) -> bool:
        return self._degraded

    def create_intent(self, intent: FulfillmentIntent) -> str:
        try:
            result = self._function_call("create_intent", {"intent": intent.to_ledger_payload()})
        except TransientProviderError as exc:
            logger.warning(
                "NEAR unreachable (%s); intent %s kept in local fallback ledger", exc, intent.intent_id
            )
            self._degraded = True
            return self.fallback.create_intent(intent)
        self._degraded = False
        tx_hash = result.get("txHash")
        if not tx_hash:
            raise IntentLedgerError("Signer response missing txHash")
        logger.info("Intent %s posted to %s in tx %s", intent.intent_id, self.contract_id, tx_hash)
        return str(tx_hash)

    def list_open_intents(self) -> List[FulfillmentIntent]:
        intents = self.fallback.list_open_intents()
        try:
            rows = self._view("list_open_intents", {})
        except (TransientProviderError, IntentLedgerError) as exc:
            logger.warning("NEAR listing failed (%s); listing local fallback intents only", exc)
            return intents
        with self._lock:
            claimed = set(self._claimed)
        for row in rows or []:
            try:
                intent = FulfillmentIntent.from_ledger_payload(row)
            except (KeyError, TypeError, ValueError) as exc:
                row_id = row.get("id") if isinstance(row, dict) else None
                logger.warning("Skipping malformed intent row %s: %s", row_id, exc)
                continue
            if not intent.fulfilled and intent.intent_id not in claimed:
                intents.append(intent)
        return intents

    def mark_fulfilled(self, intent_id: str, payout_tx_reference: str) -> bool:
        if self.fallback.contains(intent_id):
            return self.fallback.mark_fulfilled(intent_id, payout_tx_reference)
        current = self.get_intent(intent_id)
        if current is None:
            raise IntentNotFoundError(f"Intent not found: {intent_id}")
        if current.fulfilled:
            return False
        self._function_call(
            "mark_fulfilled", {"id": intent_id, "payout_tx_hash": payout_tx_reference}
        )
        with self._lock:
            self._claimed.discard(intent_id)
        return True

    def get_intent(self, intent_id: str) -> Optional[FulfillmentIntent]:
        local = self.fallback.get_intent(intent_id)
        if local is not None:
            return local
        row = self._view("get_intent", {"id": intent_id})
        if not row:
            return None
        return FulfillmentIntent.from_ledger_payload(row)

    def claim(self, intent_id: str) -> bool:
        if self.fallback.contains(intent_id):
            return self.fallback.claim(intent_id)
        with self._lock:
            if intent_id in self._claimed:
                return False
            self._claimed.add(intent_id)
            return True

    def release(self, intent_id: str) -> None:
        if self.fallback.contains(intent_id):
            self.fallback.release(intent_id)
            return
        with self._lock:
            self._claimed.discard(intent_id)

    def _view(self, method_name: str, args: Dict[str, Any]) -> Any:
        body = {
            "jsonrpc": "2.0",
            "id": "zuri",
            "method": "query",
            "params": {
                "request_type": "call_function",
                "finality": "final",
                "account_id": self.contract_id,
                "method_name": method_name,
                "args_base64": base64.b64encode(json.dumps(args).encode()).decode(),
            },
        }
        payload = self._post(self.rpc_url, body, method_name)
        if payload.get("error"):
            raise IntentLedgerError(f"NEAR {method_name} failed: {payload['error']}")
        result = (payload.get("result") or {}).get("result")
        if result is None:
            raise IntentLedgerError(f"NEAR {method_name} returned no result")
        try:
            return json.loads(bytes(result).decode() or "null")
        except (TypeError, ValueError) as exc:
            raise IntentLedgerError(f"NEAR {method_name} returned an undecodable result") from exc

    def _function_call(self, method_name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if self.signer_api_key:
            headers["Authorization"] = f"Bearer {self.signer_api_key}"
        return self._post(
            f"{self.signer_url}/function-call",
            {
                "contractId": self.contract_id,
                "methodName": method_name,
                "args": args,
                "signerId": self.account_id,
            },
            method_name,
            headers=headers,
        )

    def _post(
        self,
        url: str,
        body: Dict[str, Any],
        method_name: str,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        POST to the RPC node or the signer.

        Raises:
            TransientProviderError: connection errors, timeouts, HTTP 429 and 5xx
            IntentLedgerError: other HTTP errors and bodies that are not JSON
        """
        try:
            response = self.session.post(url, json=body, headers=headers, timeout=self.timeout_seconds)
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise TransientProviderError(f"NEAR {method_name} unreachable: {exc}") from exc

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientProviderError(f"NEAR {method_name} failed with HTTP {response.status_code}")
        if response.status_code >= 400:
            raise IntentLedgerError(f"NEAR {method_name} rejected with HTTP {response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            raise IntentLedgerError(f"NEAR {method_name} returned invalid JSON") from exc
