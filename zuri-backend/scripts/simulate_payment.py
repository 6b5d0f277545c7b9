#!/usr/bin/env python3
"""
Drive one payment through a running backend (stub mode).

Demonstrates:
1. Quote calculation
2. Payment creation
3. Funding tx attach
4. Polling status until PAID or ERROR

Usage:
    python scripts/simulate_payment.py [--base-url http://localhost:3001]
        [--dest-asset SOL] [--dest-amount 1.5] [--pay-asset ETH] [--recipient ADDRESS]
"""

from __future__ import annotations

import argparse
import secrets
import sys
import time

import requests

DEFAULT_RECIPIENTS = {
    "ETH": "0x8ba1f109551bd432803012645ac136ddd64dba72",
    "USDC": "0x8ba1f109551bd432803012645ac136ddd64dba72",
    "SOL": "So11111111111111111111111111111111111111112",
    "USDC_SOL": "So11111111111111111111111111111111111111112",
}


def print_section(title: str) -> None:
    """Print a section header."""
    print()
    print("=" * 80)
    print(title)
    print("=" * 80)


def post(base_url: str, path: str, body: dict) -> dict:
    response = requests.post(f"{base_url}{path}", json=body, timeout=10)
    if not response.ok:
        raise SystemExit(f"POST {path} failed: {response.status_code} {response.text}")
    return response.json()


def simulate(base_url: str, dest_asset: str, dest_amount: str, pay_asset: str, recipient: str,
             timeout_seconds: float) -> int:
    print_section(f"SIMULATING PAYMENT: {dest_amount} {dest_asset} funded with {pay_asset}")

    print("\n1. Requesting quote...")
    quote = post(base_url, "/api/quote", {
        "destAsset": dest_asset, "destAmount": dest_amount, "payAsset": pay_asset,
    })
    print(f"   Funding amount: {quote['fundingAmount']} {pay_asset}")
    print(f"   Fee: {quote['fee']} {pay_asset}")
    print(f"   Total to send: {quote['fundingAmountWithFee']} {pay_asset}")

    print("\n2. Creating payment...")
    payment = post(base_url, "/api/create-payment-intent", {
        "recipient": recipient,
        "destAsset": dest_asset,
        "destAmount": dest_amount,
        "payAsset": pay_asset,
    })
    payment_id = payment["paymentId"]
    print(f"   Payment ID: {payment_id}")
    print(f"   Collector: {payment['collectorAddress']}")
    print(f"   Destination chain: {payment['destChain']}")

    print("\n3. Attaching funding tx...")
    funding_tx = "0x" + secrets.token_hex(32)
    attached = post(base_url, "/api/attach-funding-tx", {
        "paymentId": payment_id, "fundingTxReference": funding_tx,
    })
    print(f"   Funding tx: {funding_tx}")
    print(f"   Status: {attached['status']}")

    print("\n4. Waiting for the loops...")
    deadline = time.monotonic() + timeout_seconds
    last_status = None
    status = {}
    while time.monotonic() < deadline:
        response = requests.get(
            f"{base_url}/api/payment-status", params={"paymentId": payment_id}, timeout=10
        )
        response.raise_for_status()
        status = response.json()
        if status["status"] != last_status:
            last_status = status["status"]
            print(f"   -> {last_status}")
        if last_status in ("PAID", "ERROR"):
            break
        time.sleep(1)

    print_section("RESULT")
    print(f"   Status: {status.get('status')}")
    print(f"   Privacy burn: {status.get('privacyBurnReference')}")
    print(f"   Intent: {status.get('intentId')} ({status.get('intentLedgerTxReference')})")
    print(f"   Payout tx: {status.get('payoutTxReference')}")
    if status.get("error"):
        print(f"   Error: {status['error']}")
    return 0 if status.get("status") == "PAID" else 1


def main() -> int:
    parser = argparse.ArgumentParser(description="Drive one payment through the backend")
    parser.add_argument("--base-url", default="http://localhost:3001")
    parser.add_argument("--dest-asset", default="ETH")
    parser.add_argument("--dest-amount", default="0.1")
    parser.add_argument("--pay-asset", default="ETH")
    parser.add_argument("--recipient", default=None)
    parser.add_argument("--timeout", type=float, default=120.0, help="Seconds to wait for PAID")
    args = parser.parse_args()

    dest_asset = args.dest_asset.upper()
    recipient = args.recipient or DEFAULT_RECIPIENTS.get(dest_asset)
    if recipient is None:
        parser.error(f"--recipient is required for {dest_asset}")

    return simulate(args.base_url.rstrip("/"), dest_asset, args.dest_amount, args.pay_asset.upper(),
                    recipient, args.timeout)


if __name__ == "__main__":
    sys.exit(main())
