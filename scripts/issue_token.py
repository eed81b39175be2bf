#!/usr/bin/env python3
"""Create (or update) a user and print a development access token.

Usage:
    python scripts/issue_token.py customer@example.com
    python scripts/issue_token.py admin@example.com --role admin --grant-all
    python scripts/issue_token.py driver@example.com --role driver
"""

import argparse
import asyncio

from sqlalchemy import select

from tourbook.core.security import create_user_token
from tourbook.database import AsyncSessionLocal
from tourbook.models.user import AdminPermission, User

ROLES = ("customer", "admin", "driver", "guide")


async def issue_token(email: str, role: str, full_name: str | None, grant_all: bool) -> str:
    """Ensure the user exists with ``role`` and return a bearer token."""
    async with AsyncSessionLocal() as session:
        result = await session.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

        if user:
            user.role = role
            user.is_active = True
            if full_name:
                user.full_name = full_name
            print(f"Updated existing user: {email} ({role})")
        else:
            user = User(email=email, role=role, full_name=full_name, is_active=True)
            session.add(user)
            await session.flush()
            print(f"Created user: {email} ({role})")

        if role == "admin" and grant_all:
            result = await session.execute(
                select(AdminPermission).where(AdminPermission.user_id == user.id)
            )
            permission = result.scalar_one_or_none()
            if not permission:
                permission = AdminPermission(user_id=user.id)
                session.add(permission)
            permission.can_manage_bookings = True
            permission.can_manage_prices = True
            permission.can_verify_payments = True
            print("Granted all admin capabilities")

        await session.commit()
        return create_user_token(str(user.id), user.email, user.role)["access_token"]


def main() -> None:
    parser = argparse.ArgumentParser(description="Issue a development access token")
    parser.add_argument("email")
    parser.add_argument("--role", choices=ROLES, default="customer")
    parser.add_argument("--name", dest="full_name")
    parser.add_argument(
        "--grant-all",
        action="store_true",
        help="Create an AdminPermission record with every capability (admins only)",
    )
    args = parser.parse_args()

    token = asyncio.run(issue_token(args.email, args.role, args.full_name, args.grant_all))
    print(token)


if __name__ == "__main__":
    main()
