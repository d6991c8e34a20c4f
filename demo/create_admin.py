#!/usr/bin/env python3
"""
Provision an administrator account directly in the database.

Admins can't self-register: /auth/register always creates card holders.
Run this once per environment, on the server, against the configured
DATABASE_URL (from the environment or .env).

Usage:
    python demo/create_admin.py --email admin@bankdemo.com --password AdminDemo123!
    python demo/create_admin.py --email admin@bankdemo.com --password ... --full-name "Ops Admin"
"""

import argparse
import asyncio

from bankcards.database import AsyncSessionLocal, Base, engine, ensure_sqlite_directory
from bankcards.exceptions import DuplicateEmailError
from bankcards.models.user import UserRole
from bankcards.services import auth_service


async def create_admin(email: str, password: str, full_name: str) -> None:
    ensure_sqlite_directory()
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        async with AsyncSessionLocal() as session:
            try:
                user = await auth_service.create_account(
                    session, full_name, email, password, role=UserRole.ADMIN
                )
            except DuplicateEmailError as exc:
                print(f"  {exc.detail}")
                return
            await session.commit()
            print(f"  Admin {user.email} created (id {user.id})")
    finally:
        await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Create an administrator account")
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--full-name", default="Administrator")
    args = parser.parse_args()

    asyncio.run(create_admin(args.email, args.password, args.full_name))


if __name__ == "__main__":
    main()
