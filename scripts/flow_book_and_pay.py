#!/usr/bin/env python3
"""
Complete apply, approve and pay flow script.

DO NOT ADD BUSINESS LOGIC HERE.
This script only orchestrates API calls.
All rules live in the backend.

Usage:
    python scripts/flow_book_and_pay.py --stay-id bali-2025 --wallet 0x... --email guest@example.com \
        --tx-hash 0x... --amount 300 --chain-id 42161

Flow:
    1. Apply for the stay (WAITLISTED)
    2. Approve as admin (PENDING, payment window opens)
    3. Lock payment details
    4. Submit the on-chain transaction hash
    5. Poll until verification resolves
"""

import argparse
import json
import os
import sys
import time

import httpx

BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")
ADMIN_KEY = os.getenv("ADMIN_API_KEY", "change-me-admin-key")


def api_request(method: str, endpoint: str, data: dict | None = None, admin: bool = False) -> dict:
    """Make an API request."""
    headers = {"X-Admin-Key": ADMIN_KEY} if admin else {}
    url = f"{BASE_URL}{endpoint}"

    if method == "GET":
        response = httpx.get(url, headers=headers, timeout=10.0, follow_redirects=True)
    elif method == "POST":
        response = httpx.post(url, headers=headers, json=data or {}, timeout=10.0, follow_redirects=True)
    else:
        raise ValueError(f"Unknown method: {method}")

    return {"status": response.status_code, "data": response.json() if response.text else {}}


def print_step(step: int, title: str):
    """Print step header."""
    print(f"\n{'='*60}")
    print(f"STEP {step}: {title}")
    print("="*60)


def print_result(result: dict, fields: list[str] | None = None):
    """Print result, optionally filtering fields."""
    if result["status"] >= 400:
        print(f"ERROR ({result['status']}): {json.dumps(result['data'], indent=2)}")
        return False

    print(f"Status: {result['status']}")
    if fields:
        filtered = {k: result["data"].get(k) for k in fields if k in result["data"]}
        print(json.dumps(filtered, indent=2))
    else:
        print(json.dumps(result["data"], indent=2))
    return True


def main():
    parser = argparse.ArgumentParser(description="Complete apply and pay flow")
    parser.add_argument("--stay-id", required=True, help="Stay slug")
    parser.add_argument("--wallet", required=True, help="Guest wallet address")
    parser.add_argument("--email", required=True, help="Guest email")
    parser.add_argument("--name", default="Test Guest", help="Guest display name")
    parser.add_argument("--token", default="USDC", choices=["USDC", "USDT"])
    parser.add_argument("--amount", required=True, help="Amount in token units, e.g. 300")
    parser.add_argument("--chain-id", type=int, default=42161)
    parser.add_argument("--tx-hash", help="Transaction hash; omit to stop after locking")
    parser.add_argument("--poll-seconds", type=int, default=60)
    args = parser.parse_args()

    # Step 1: Apply
    print_step(1, "Apply for stay")
    apply_result = api_request("POST", f"/api/v1/stays/{args.stay_id}/apply", {
        "wallet_address": args.wallet,
        "email": args.email,
        "display_name": args.name,
    })
    if not print_result(apply_result):
        sys.exit(1)
    booking_id = apply_result["data"]["booking_id"]

    # Step 2: Approve
    print_step(2, "Approve as admin")
    approve_result = api_request("POST", f"/api/v1/admin/bookings/{booking_id}/approve", {}, admin=True)
    if not print_result(approve_result, ["status", "expires_at", "email_sent", "email_error"]):
        sys.exit(1)

    # Step 3: Lock payment
    print_step(3, "Lock payment details")
    lock_result = api_request("POST", "/api/v1/bookings/lock-payment", {
        "booking_id": booking_id,
        "payment_token": args.token,
        "payment_amount": args.amount,
        "chain_id": args.chain_id,
    })
    if not print_result(lock_result):
        sys.exit(1)
    print(f"\nSend {args.amount} {args.token} to {lock_result['data']['treasury_address']}")
    print(f"Token contract: {lock_result['data']['token_address']}")

    if not args.tx_hash:
        print("\n" + "="*60)
        print(f"LOCKED - rerun with --tx-hash once paid (booking {booking_id})")
        print("="*60)
        return

    # Step 4: Submit transaction
    print_step(4, "Submit transaction hash")
    submit_result = api_request("POST", "/api/v1/payments/submit-payment", {
        "booking_id": booking_id,
        "tx_hash": args.tx_hash,
        "chain_id": args.chain_id,
        "payment_token": args.token,
    })
    if not print_result(submit_result):
        sys.exit(1)

    # Step 5: Poll
    print_step(5, "Wait for verification")
    deadline = time.time() + args.poll_seconds
    state = {}
    while time.time() < deadline:
        state = api_request("GET", f"/api/v1/bookings/{booking_id}/status")["data"]
        if state.get("status") != "PENDING":
            break
        time.sleep(3)
    print(json.dumps(state, indent=2))

    print("\n" + "="*60)
    print(f"FLOW COMPLETE: {booking_id} is {state.get('status')}")
    print("="*60)


if __name__ == "__main__":
    main()
