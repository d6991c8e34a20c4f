#!/usr/bin/env python3
"""
Demo seed script — populates a running API with sample card holders and cards.

!! NOT FOR PRODUCTION !!
This script creates users with known passwords. It is intended ONLY for
local demos and frontend development.

The admin must exist first (admins can't self-register):
    python demo/create_admin.py --email admin@bankdemo.com --password AdminDemo123!

Usage:
    # With the API server running on localhost:8000:
    python demo/seed.py

    # Custom server URL or admin credentials:
    python demo/seed.py --base-url http://localhost:9000 --admin-email ops@bankdemo.com

Login credentials after seeding:
    ┌──────────────────────────────┬───────────────────┬───────┐
    │ Email                        │ Password          │ Role  │
    ├──────────────────────────────┼───────────────────┼───────┤
    │ alice.chen@example.com       │ AliceDemo123!     │ USER  │
    │ bob.martinez@example.com     │ BobDemo123!       │ USER  │
    │ carol.nguyen@example.com     │ CarolDemo123!     │ USER  │
    └──────────────────────────────┴───────────────────┴───────┘
"""

import argparse
import asyncio
import random
from datetime import date, timedelta
from decimal import Decimal

import httpx

# ---------------------------------------------------------------------------
# Demo users
# ---------------------------------------------------------------------------

HOLDERS = [
    {
        "full_name": "Alice Chen",
        "email": "alice.chen@example.com",
        "phone_number": "+15550100001",
        "password": "AliceDemo123!",
        "cards": ["1500.00", "250.00"],
    },
    {
        "full_name": "Bob Martinez",
        "email": "bob.martinez@example.com",
        "phone_number": "+15550100002",
        "password": "BobDemo123!",
        "cards": ["820.50", "0.00"],
    },
    {
        "full_name": "Carol Nguyen",
        "email": "carol.nguyen@example.com",
        "phone_number": "+15550100003",
        "password": "CarolDemo123!",
        "cards": ["3200.00", "12000.00", "75.25"],
    },
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def log(msg: str) -> None:
    print(f"  {msg}")


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


async def login(client: httpx.AsyncClient, email: str, password: str) -> str:
    resp = await client.post("/auth/login", json={"email": email, "password": password})
    resp.raise_for_status()
    return resp.json()["token"]


async def register(client: httpx.AsyncClient, holder: dict) -> str:
    """Register a card holder (if new) and return a JWT token."""
    resp = await client.post("/auth/register", json={
        "full_name": holder["full_name"],
        "email": holder["email"],
        "phone_number": holder["phone_number"],
        "password": holder["password"],
    })
    if resp.status_code != 409:
        resp.raise_for_status()
    return await login(client, holder["email"], holder["password"])


async def find_user_id(client: httpx.AsyncClient, admin_token: str, email: str) -> str:
    resp = await client.get("/users", headers=auth_header(admin_token))
    resp.raise_for_status()
    return next(u["id"] for u in resp.json() if u["email"] == email)


async def issue_card(client: httpx.AsyncClient, admin_token: str, user_id: str, balance: str) -> dict:
    resp = await client.post(
        "/admin/cards",
        json={
            "user_id": user_id,
            "expiration_date": (date.today() + timedelta(days=3 * 365)).isoformat(),
            "balance": balance,
        },
        headers=auth_header(admin_token),
    )
    resp.raise_for_status()
    return resp.json()


async def do_transfer(client: httpx.AsyncClient, token: str,
                      from_id: str, to_id: str, amount: Decimal) -> dict:
    resp = await client.post(
        "/transfer",
        json={"from_card_id": from_id, "to_card_id": to_id, "amount": str(amount)},
        headers=auth_header(token),
    )
    return resp.json()


# ---------------------------------------------------------------------------
# Seed logic
# ---------------------------------------------------------------------------

async def seed(base_url: str, admin_email: str, admin_password: str) -> None:
    async with httpx.AsyncClient(base_url=base_url, timeout=30.0) as client:
        print("\nLogging in as admin...")
        admin_token = await login(client, admin_email, admin_password)
        log(admin_email)

        for holder in HOLDERS:
            print(f"\nSeeding {holder['full_name']}...")
            token = await register(client, holder)
            user_id = await find_user_id(client, admin_token, holder["email"])

            cards = [
                await issue_card(client, admin_token, user_id, balance)
                for balance in holder["cards"]
            ]
            for card in cards:
                log(f"{card['masked_number']}  balance {card['balance']}")

            # A few transfers between the holder's own cards
            source, dest = cards[0], cards[1]
            for _ in range(3):
                amount = Decimal(random.randint(500, 5000)) / 100
                result = await do_transfer(client, token, source["id"], dest["id"], amount)
                if "error_type" not in result:
                    log(f"Transfer {amount} -> {dest['masked_number']}")
                else:
                    log(f"Transfer {amount} refused: {result['detail']}")

        # One pending block request for the admin queue
        print("\nFiling a block request...")
        token = await login(client, HOLDERS[-1]["email"], HOLDERS[-1]["password"])
        resp = await client.get("/cards", headers=auth_header(token))
        resp.raise_for_status()
        last_card = resp.json()[-1]
        resp = await client.post(
            f"/cards/{last_card['id']}/block-request", headers=auth_header(token)
        )
        if resp.status_code == 201:
            log(f"Block requested for {last_card['masked_number']}")

    # --- Summary ---
    print("\n========================================")
    print("  SEED COMPLETE — Login Credentials")
    print("========================================")
    print(f"\n  {'Email':<30s} {'Password':<20s} {'Role'}")
    print(f"  {'─' * 30} {'─' * 20} {'─' * 5}")
    for h in HOLDERS:
        print(f"  {h['email']:<30s} {h['password']:<20s} USER")
    print()


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

async def main() -> None:
    parser = argparse.ArgumentParser(
        description="Demo seed script — NOT FOR PRODUCTION",
        epilog="Creates sample card holders, cards, and transfers for demos.",
    )
    parser.add_argument(
        "--base-url", default="http://localhost:8000",
        help="Base URL of the running API (default: http://localhost:8000)",
    )
    parser.add_argument("--admin-email", default="admin@bankdemo.com")
    parser.add_argument("--admin-password", default="AdminDemo123!")
    args = parser.parse_args()

    await seed(args.base_url, args.admin_email, args.admin_password)


if __name__ == "__main__":
    asyncio.run(main())
