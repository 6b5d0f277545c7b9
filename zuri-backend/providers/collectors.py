"""
Collector address allocation and address format checks.

Every payment gets its own single-use collector (deposit) address:
- StubCollectorAllocator synthesises well-formed addresses for development.
- PooledCollectorAllocator hands out operator-provisioned addresses, each once.
"""

from __future__ import annotations

import logging
import secrets
import threading
from collections import deque
from typing import Deque, Dict, Iterable, Mapping, Set

import base58
from eth_utils import is_address, to_checksum_address

from domain.assets import ChainFamily

from .base import CollectorAllocator, CollectorPoolExhaustedError

logger = logging.getLogger(__name__)


def is_valid_address(family: ChainFamily, address: str) -> bool:
    """
    Check an address is well-formed for a chain family.

    Ethereum: 20-byte hex with 0x prefix (checksum verified when mixed case).
    Solana: base58 string decoding to a 32-byte public key.
    """

    if not address or address != address.strip():
        return False
    if family is ChainFamily.ETHEREUM:
        return bool(is_address(address))
    try:
        return len(base58.b58decode(address)) == 32
    except ValueError:
        return False


def normalize_address(family: ChainFamily, address: str) -> str:
    if family is ChainFamily.ETHEREUM:
        return to_checksum_address(address)
    return address


class StubCollectorAllocator(CollectorAllocator):
    """Random addresses; collisions are checked for and never handed out twice."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._issued: Set[str] = set()

    def allocate(self, family: ChainFamily) -> str:
        with self._lock:
            while True:
                address = self._generate(family)
                if address not in self._issued:
                    self._issued.add(address)
                    return address

    @staticmethod
    def _generate(family: ChainFamily) -> str:
        if family is ChainFamily.ETHEREUM:
            return to_checksum_address("0x" + secrets.token_hex(20))
        return base58.b58encode(secrets.token_bytes(32)).decode()


class PooledCollectorAllocator(CollectorAllocator):
    """
    Serves addresses from configured per-family pools.

    An address leaves the pool when allocated and is never returned to it; an empty
    pool refuses new payments rather than reusing a collector.
    """

    def __init__(self, pools: Mapping[ChainFamily, Iterable[str]]) -> None:
        self._lock = threading.Lock()
        self._pools: Dict[ChainFamily, Deque[str]] = {}
        for family, addresses in pools.items():
            addresses = [a.strip() for a in addresses if a.strip()]
            invalid = [a for a in addresses if not is_valid_address(family, a)]
            if invalid:
                raise ValueError(f"Invalid {family.value} collector addresses: {invalid}")
            unique = list(dict.fromkeys(normalize_address(family, a) for a in addresses))
            self._pools[family] = deque(unique)

    def allocate(self, family: ChainFamily) -> str:
        with self._lock:
            pool = self._pools.get(family)
            if not pool:
                raise CollectorPoolExhaustedError(
                    f"No unused {family.value} collector address available"
                )
            address = pool.popleft()
            remaining = len(pool)
        if remaining < 5:
            logger.warning("%s collector pool running low: %d left", family.value, remaining)
        return address

    def remaining(self, family: ChainFamily) -> int:
        with self._lock:
            return len(self._pools.get(family, ()))

    def supported_families(self) -> Iterable[ChainFamily]:
        return tuple(self._pools)
