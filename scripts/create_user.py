#!/usr/bin/env python3
"""Create a user account.

Example:
    python scripts/create_user.py alice --role manager --firms FIRM_ID_1,FIRM_ID_2
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from firmwatch.core.auth import Role
from firmwatch.domain.models import parse_firm_access
from firmwatch.domain.services.auth_service import AuthError, AuthService
from firmwatch.infrastructure.db.session import dispose_engine, get_session_factory


async def create_user(args: argparse.Namespace, password: str) -> None:
    try:
        async with get_session_factory()() as session:
            user = await AuthService(session).create_user(
                username=args.username,
                password=password,
                role=args.role,
                firm_access=parse_firm_access(args.firms),
                full_name=args.full_name,
            )
            print(f"Created {user.role.value} '{user.username}' ({user.id})")
    finally:
        await dispose_engine()


def main() -> None:
    parser = argparse.ArgumentParser(description="Create a user account")
    parser.add_argument("username")
    parser.add_argument("--role", choices=[role.value for role in Role], default=Role.USER.value)
    parser.add_argument("--firms", default="", help="'all' or comma-separated firm ids")
    parser.add_argument("--full-name", default=None)
    args = parser.parse_args()

    password = getpass.getpass("Password: ")
    if len(password) < 8:
        print("Password must be at least 8 characters")
        sys.exit(1)

    try:
        asyncio.run(create_user(args, password))
    except AuthError as exc:
        print(f"Error: {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
