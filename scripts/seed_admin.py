#!/usr/bin/env python3
"""Create the admin account, or promote an existing user to admin."""

import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from app.core.security import hash_password
from app.database import async_session_maker
from app.models.user import User, UserRole


async def create_admin_user(
    email: str,
    password: str,
    phone: str,
    username: str = "admin",
) -> None:
    """Create an admin user, or fix the role if the account already exists."""
    email = email.lower()
    async with async_session_maker() as db:
        result = await db.execute(select(User).where(User.email == email))
        existing_user = result.scalar_one_or_none()

        if existing_user:
            if existing_user.role == UserRole.ADMIN:
                print(f"Admin user already exists: {email}")
            else:
                existing_user.role = UserRole.ADMIN
                await db.commit()
                print(f"Updated existing user to admin role: {email}")
            return

        admin = User(
            username=username,
            email=email,
            phone=phone,
            password_hash=hash_password(password),
            role=UserRole.ADMIN,
        )
        db.add(admin)
        await db.commit()
        print(f"Created admin user: {email} (id={admin.id})")


async def make_user_admin(email: str) -> None:
    async with async_session_maker() as db:
        result = await db.execute(select(User).where(User.email == email.lower()))
        user = result.scalar_one_or_none()

        if not user:
            print(f"User not found: {email}")
            return

        if user.role == UserRole.ADMIN:
            print(f"User is already an admin: {email}")
            return

        user.role = UserRole.ADMIN
        await db.commit()
        print(f"Made user admin: {email}")


def main():
    import argparse

    parser = argparse.ArgumentParser(description="Admin user seeder")
    parser.add_argument("--email", default="admin@civic.local", help="Admin email")
    parser.add_argument("--password", required=False, help="Admin password")
    parser.add_argument("--phone", default="0000000000", help="Admin phone number")
    parser.add_argument("--username", default="admin", help="Admin display name")
    parser.add_argument(
        "--make-admin",
        metavar="EMAIL",
        help="Promote an existing user to admin by email",
    )

    args = parser.parse_args()

    if args.make_admin:
        asyncio.run(make_user_admin(args.make_admin))
    elif not args.password:
        parser.error("--password is required when creating an admin")
    else:
        asyncio.run(create_admin_user(args.email, args.password, args.phone, args.username))


if __name__ == "__main__":
    main()
