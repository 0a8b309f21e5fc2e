#!/usr/bin/env python3
"""CLI script to create one demo user per role.

Usage:
    uv run python scripts/seed_demo_users.py
    uv run python scripts/seed_demo_users.py --password changeme

Connects directly to the database using DATABASE_URL from environment or
.env file. Existing users (matched by email) are left untouched.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

# Ensure project root is on sys.path so we can import src.dealdesk
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

# Load .env from project root
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))

DEMO_USERS = [
    ("seller@company.com", "Demo Seller", "seller"),
    ("approver@company.com", "Demo Approver", "approver"),
    ("legal@company.com", "Demo Legal", "legal"),
    ("admin@company.com", "Demo Admin", "admin"),
]


async def seed(password: str) -> None:
    from sqlalchemy import select

    from src.dealdesk.core.database import close_db, get_session, init_db
    from src.dealdesk.core.security import hash_password
    from src.dealdesk.models.user import User

    await init_db()

    async for session in get_session():
        for email, name, role in DEMO_USERS:
            result = await session.execute(select(User).where(User.email == email))
            if result.scalar_one_or_none():
                print(f"  exists:  {email} ({role})")
                continue
            session.add(
                User(
                    email=email,
                    name=name,
                    role=role,
                    hashed_password=hash_password(password),
                )
            )
            print(f"  created: {email} ({role})")
        await session.commit()

    await close_db()


def main() -> None:
    parser = argparse.ArgumentParser(description="Create demo users for each role")
    parser.add_argument("--password", default="demo1234", help="Password for all demo users")
    args = parser.parse_args()
    asyncio.run(seed(args.password))


if __name__ == "__main__":
    main()
