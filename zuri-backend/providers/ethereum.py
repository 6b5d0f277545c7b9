"""
Ethereum deposit verification and payouts over JSON-RPC.

Deposits:
- ETH: the transaction must be mined with status 1, sent to the collector, and carry
  at least the expected value.
- USDC: the receipt must contain ERC-20 Transfer logs from the USDC contract to the
  collector adding up to at least the expected amount.

Payouts are signed locally with the solver key (eth-account) and submitted with
eth_sendRawTransaction.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional

from eth_abi import encode
from eth_account import Account
from eth_utils import keccak, to_checksum_address, to_hex

from domain.assets import Asset, ChainFamily, to_atomic

from .base import DepositCheck, DepositVerifier, PayoutExecutor, PayoutOrder, ProviderError
from .rpc import JsonRpcClient

logger = logging.getLogger(__name__)

TRANSFER_TOPIC = "0x" + keccak(text="Transfer(address,address,uint256)").hex()
ERC20_TRANSFER_SELECTOR = keccak(text="transfer(address,uint256)")[:4]

NATIVE_TRANSFER_GAS = 21_000


def _hex_to_int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    return int(str(value), 16)


def _topic_address(topic: str) -> str:
    """Last 20 bytes of a 32-byte indexed topic, lowercased with 0x."""
    return "0x" + topic[-40:].lower()


class EthereumDepositVerifier(DepositVerifier):
    def __init__(
        self,
        rpc: JsonRpcClient,
        *,
        usdc_contract: Optional[str] = None,
        min_confirmations: int = 1,
    ) -> None:
        self.rpc = rpc
        self.usdc_contract = usdc_contract.lower() if usdc_contract else None
        self.min_confirmations = max(1, min_confirmations)

    @property
    def family(self) -> ChainFamily:
        return ChainFamily.ETHEREUM

    def verify_deposit(self, check: DepositCheck) -> bool:
        if check.asset.family is not ChainFamily.ETHEREUM:
            raise ProviderError(f"{check.asset.value} is not an Ethereum asset")

        tx = self.rpc.call("eth_getTransactionByHash", [check.tx_reference])
        if not tx:
            logger.info("Funding tx %s not found yet", check.tx_reference)
            return False
        receipt = self.rpc.call("eth_getTransactionReceipt", [check.tx_reference])
        if not receipt:
            logger.info("Funding tx %s not mined yet", check.tx_reference)
            return False
        if _hex_to_int(receipt.get("status")) != 1:
            logger.warning("Funding tx %s reverted", check.tx_reference)
            return False
        if not self._has_confirmations(receipt):
            return False

        expected = to_atomic(check.expected_amount, check.asset.spec.decimals)
        collector = check.collector_address.lower()

        if check.asset is Asset.ETH:
            to_address = (tx.get("to") or "").lower()
            received = _hex_to_int(tx.get("value"))
            if to_address != collector:
                logger.warning("Funding tx %s pays %s, not collector %s", check.tx_reference, to_address, collector)
                return False
        else:
            received = self._token_received(receipt, collector)

        if received < expected:
            logger.warning(
                "Funding tx %s underpays collector: received %d, expected %d atomic units",
                check.tx_reference, received, expected,
            )
            return False
        return True

    def _token_received(self, receipt: Dict[str, Any], collector: str) -> int:
        if not self.usdc_contract:
            raise ProviderError("USDC contract address is not configured")
        total = 0
        for log in receipt.get("logs") or []:
            topics = log.get("topics") or []
            if (log.get("address") or "").lower() != self.usdc_contract:
                continue
            if len(topics) < 3 or topics[0].lower() != TRANSFER_TOPIC:
                continue
            if _topic_address(topics[2]) == collector:
                total += _hex_to_int(log.get("data") or "0x0")
        return total

    def _has_confirmations(self, receipt: Dict[str, Any]) -> bool:
        if self.min_confirmations <= 1:
            return True
        mined_in = _hex_to_int(receipt.get("blockNumber"))
        head = _hex_to_int(self.rpc.call("eth_blockNumber"))
        return head - mined_in + 1 >= self.min_confirmations


class EthereumPayoutExecutor(PayoutExecutor):
    """Sends ETH or USDC from the solver wallet."""

    def __init__(
        self,
        rpc: JsonRpcClient,
        private_key: str,
        chain_id: int,
        *,
        usdc_contract: Optional[str] = None,
    ) -> None:
        self.rpc = rpc
        self.account = Account.from_key(private_key)
        self.chain_id = chain_id
        self.usdc_contract = to_checksum_address(usdc_contract) if usdc_contract else None
        # One payout at a time per wallet keeps nonces sequential.
        self._nonce_lock = threading.Lock()

    @property
    def name(self) -> str:
        return "ethereum"

    @property
    def address(self) -> str:
        return self.account.address

    def send_payout(self, order: PayoutOrder) -> str:
        if order.asset.family is not ChainFamily.ETHEREUM:
            raise ProviderError(f"Cannot pay {order.asset.value} from an Ethereum wallet")
        recipient = to_checksum_address(order.dest_address)

        with self._nonce_lock:
            tx = self._build_transaction(order, recipient)
            signed = self.account.sign_transaction(tx)
            tx_hash = self.rpc.call("eth_sendRawTransaction", [to_hex(signed.raw_transaction)])

        if not tx_hash:
            raise ProviderError("eth_sendRawTransaction returned no hash")
        logger.info(
            "Payout %s %s to %s submitted in %s (intent %s)",
            order.amount, order.asset.value, recipient, tx_hash, order.intent_id,
        )
        return str(tx_hash)

    def _build_transaction(self, order: PayoutOrder, recipient: str) -> Dict[str, Any]:
        nonce = _hex_to_int(self.rpc.call("eth_getTransactionCount", [self.address, "pending"]))
        gas_price = _hex_to_int(self.rpc.call("eth_gasPrice"))
        base: Dict[str, Any] = {
            "nonce": nonce,
            "gasPrice": gas_price,
            "chainId": self.chain_id,
        }

        if order.asset is Asset.ETH:
            return {**base, "to": recipient, "value": order.amount_atomic, "gas": NATIVE_TRANSFER_GAS}

        if not self.usdc_contract:
            raise ProviderError("USDC contract address is not configured")
        data = to_hex(ERC20_TRANSFER_SELECTOR + encode(["address", "uint256"], [recipient, order.amount_atomic]))
        gas = _hex_to_int(
            self.rpc.call(
                "eth_estimateGas",
                [{"from": self.address, "to": self.usdc_contract, "data": data}],
            )
        )
        return {**base, "to": self.usdc_contract, "value": 0, "data": data, "gas": gas}
