#!/usr/bin/env python3
"""
Happy-path booking flow against a running server.

DO NOT ADD BUSINESS LOGIC HERE.
This script only orchestrates API calls.
All rules live in the backend.

Usage:
    python scripts/flow_book_and_pay.py --customer-token <JWT> --admin-token <JWT>
    python scripts/flow_book_and_pay.py --customer-token <JWT> --admin-token <JWT> \
        --service-type Accommodation --amount 120 --currency USD

Tokens come from scripts/issue_token.py (use --grant-all for the admin).

Flow:
    1. Create draft booking (customer)
    2. Submit booking
    3. Set price (admin)
    4. Confirm price (customer)
    5. Prepare payment
    6. Mark paid (admin)
    7. Check that the price can no longer be changed
    8. Confirm booking (admin)
"""

import argparse
import json
import sys
import uuid

import httpx

BASE_URL = "http://localhost:8000"


def api_request(token: str, method: str, endpoint: str, data: dict | None = None) -> dict:
    """Make authenticated API request."""
    headers = {"Authorization": f"Bearer {token}"}
    response = httpx.request(
        method,
        f"{BASE_URL}{endpoint}",
        headers=headers,
        json=data if method != "GET" else None,
        timeout=10.0,
        follow_redirects=True,
    )
    return {"status": response.status_code, "data": response.json() if response.text else {}}


def print_step(step: int, title: str):
    print(f"\n{'='*60}")
    print(f"STEP {step}: {title}")
    print("=" * 60)


def print_result(result: dict, fields: list[str] | None = None) -> bool:
    """Print result, optionally filtering fields."""
    if result["status"] >= 400:
        print(f"ERROR ({result['status']}): {json.dumps(result['data'], indent=2)}")
        return False

    print(f"Status: {result['status']}")
    data = result["data"]
    if fields:
        data = {k: data.get(k) for k in fields if k in data}
    print(json.dumps(data, indent=2))
    return True


def require(ok: bool):
    if not ok:
        sys.exit(1)


def main():
    parser = argparse.ArgumentParser(description="Book, price and pay for a service")
    parser.add_argument("--customer-token", required=True)
    parser.add_argument("--admin-token", required=True)
    parser.add_argument("--service-type", default="Accommodation")
    parser.add_argument("--amount", default="120.00")
    parser.add_argument("--currency", default="USD")
    args = parser.parse_args()

    print_step(1, "Create draft booking")
    result = api_request(args.customer_token, "POST", "/api/v1/bookings", {
        "service_type": args.service_type,
        "service_details": {"note": "created by flow_book_and_pay"},
    })
    require(print_result(result, ["id", "booking_number", "status"]))
    booking_id = result["data"]["id"]

    print_step(2, "Submit booking")
    result = api_request(args.customer_token, "POST", f"/api/v1/bookings/{booking_id}/submit")
    require(print_result(result))

    print_step(3, "Set price (admin)")
    result = api_request(args.admin_token, "POST", f"/api/v1/admin/bookings/{booking_id}/set-price", {
        "amount": args.amount,
        "currency": args.currency,
    })
    require(print_result(result))

    print_step(4, "Confirm price")
    result = api_request(args.customer_token, "POST", f"/api/v1/bookings/{booking_id}/confirm-price")
    require(print_result(result))

    print_step(5, "Prepare payment")
    result = api_request(args.customer_token, "GET", f"/api/v1/payments/{booking_id}/prepare")
    require(print_result(result, ["can_pay", "amount", "currency", "reason"]))

    print_step(6, "Mark paid (admin)")
    result = api_request(args.admin_token, "POST", f"/api/v1/admin/bookings/{booking_id}/mark-paid", {
        "reference": f"FLOW-{uuid.uuid4().hex[:8].upper()}",
    })
    require(print_result(result))

    print_step(7, "Try to change the price after payment (expect 409)")
    result = api_request(args.admin_token, "POST", f"/api/v1/admin/bookings/{booking_id}/set-price", {
        "amount": "999.00",
        "currency": args.currency,
    })
    print(f"Status: {result['status']} {result['data'].get('detail')}")
    if result["status"] != 409:
        print("ERROR: price change after payment was not refused")
        sys.exit(1)

    print_step(8, "Confirm booking (admin)")
    result = api_request(args.admin_token, "POST", f"/api/v1/admin/bookings/{booking_id}/confirm")
    require(print_result(result))

    print_step(9, "Final state")
    result = api_request(args.customer_token, "GET", f"/api/v1/bookings/{booking_id}")
    require(print_result(result, ["booking_number", "status", "status_label", "price"]))


if __name__ == "__main__":
    main()
