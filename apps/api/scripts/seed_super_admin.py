"""
Seed Super Admin User

Creates the first super admin account. Every other admin is created from
the back office through the OTP flow, so this only needs to run once.

Usage:
    cd apps/api
    SEED_ADMIN_EMAIL=head@school.example SEED_ADMIN_PASSWORD=... \
        python scripts/seed_super_admin.py
"""

import asyncio
import os
import sys

from school_portal.core.database import async_session_maker, close_db
from school_portal.core.security import hash_password
from school_portal.modules.users.models import UserRole
from school_portal.modules.users.repository import UserRepository


async def seed_super_admin() -> None:
    """Create the super admin user if it doesn't exist."""
    email = os.environ.get("SEED_ADMIN_EMAIL")
    password = os.environ.get("SEED_ADMIN_PASSWORD")
    display_name = os.environ.get("SEED_ADMIN_NAME", "Super Admin")

    if not email or not password:
        print("SEED_ADMIN_EMAIL and SEED_ADMIN_PASSWORD must be set")
        sys.exit(1)

    async with async_session_maker() as db:
        existing_user = await UserRepository.get_by_email(db, email)
        if existing_user:
            print(f"User already exists: {email}")
            print(f"  ID: {existing_user.id}")
            print(f"  Role: {existing_user.role.value}")
            return

        admin_user = await UserRepository.create(
            db,
            email=email,
            password_hash=hash_password(password),
            display_name=display_name,
            role=UserRole.SUPER_ADMIN,
        )
        await db.commit()

        print("Super admin created successfully!")
        print(f"  Email: {admin_user.email}")
        print(f"  Name: {admin_user.display_name}")
        print(f"  ID: {admin_user.id}")

    await close_db()


if __name__ == "__main__":
    asyncio.run(seed_super_admin())
