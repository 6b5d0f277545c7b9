"""
Minimal JSON-RPC 2.0 client over `requests`, shared by the Ethereum and Solana
providers.

Error mapping:
- connection errors, timeouts, HTTP 429 and 5xx -> TransientProviderError
- JSON-RPC error objects and malformed bodies   -> ProviderError
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Optional, Sequence

import requests

from .base import ProviderError, TransientProviderError

logger = logging.getLogger(__name__)


class JsonRpcClient:
    def __init__(
        self,
        url: str,
        *,
        timeout_seconds: float = 30.0,
        session: Optional[requests.Session] = None,
        name: str = "rpc",
    ) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()
        self.name = name
        self._ids = itertools.count(1)

    def call(self, method: str, params: Sequence[Any] = ()) -> Any:
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": list(params)}
        try:
            response = self.session.post(self.url, json=body, timeout=self.timeout_seconds)
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise TransientProviderError(f"[{self.name}] {method} unreachable: {exc}") from exc

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientProviderError(
                f"[{self.name}] {method} failed with HTTP {response.status_code}"
            )
        if response.status_code >= 400:
            raise ProviderError(f"[{self.name}] {method} rejected with HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError(f"[{self.name}] {method} returned invalid JSON") from exc

        error = payload.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else error
            raise ProviderError(f"[{self.name}] {method} error: {message}")
        logger.debug("[%s] %s ok", self.name, method)
        return payload.get("result")
