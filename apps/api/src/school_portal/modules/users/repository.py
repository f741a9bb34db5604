"""
User Repository

Database operations for user accounts. Methods flush but never commit;
the service layer owns the transaction.
"""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from school_portal.modules.users.models import User, UserRole

logger = logging.getLogger(__name__)


class UserRepository:
    """Repository for user database operations."""

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        password_hash: str,
        display_name: str,
        role: UserRole,
        must_change_password: bool = False,
    ) -> User:
        """
        Create a new user record.

        Args:
            db: Database session
            email: User's email address (unique, stored lower-cased)
            password_hash: Hashed password
            display_name: Name shown in the back office
            role: User's role
            must_change_password: Whether user must change password on next login

        Returns:
            Created User instance
        """
        user = User(
            email=email.lower(),
            password_hash=password_hash,
            display_name=display_name,
            role=role,
            must_change_password=must_change_password,
        )

        db.add(user)
        await db.flush()
        await db.refresh(user)

        logger.info(f"Created user: {user.id} - {user.email} ({user.role.value})")
        return user

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: str | UUID) -> User | None:
        """Get a user by ID."""
        result = await db.execute(select(User).where(User.id == str(user_id)))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        """Get a user by email address (case-insensitive)."""
        result = await db.execute(select(User).where(func.lower(User.email) == email.lower()))
        return result.scalar_one_or_none()

    @staticmethod
    async def email_exists(db: AsyncSession, email: str) -> bool:
        """Check if an email address is already registered."""
        user = await UserRepository.get_by_email(db, email)
        return user is not None

    @staticmethod
    async def list_users(
        db: AsyncSession,
        *,
        role: UserRole | None = None,
        archived: bool | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[User], int]:
        """List users with optional filters. Returns (items, total)."""
        conditions = []
        if role is not None:
            conditions.append(User.role == role)
        if archived is not None:
            conditions.append(User.is_archived == archived)

        total = await db.scalar(select(func.count()).select_from(User).where(*conditions))
        result = await db.execute(
            select(User).where(*conditions).order_by(User.created_at.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all()), total or 0

    @staticmethod
    async def count_active_super_admins(db: AsyncSession) -> int:
        """Count super admins that are not archived."""
        total = await db.scalar(
            select(func.count())
            .select_from(User)
            .where(User.role == UserRole.SUPER_ADMIN, User.is_archived.is_(False))
        )
        return total or 0

    @staticmethod
    async def set_archived(
        db: AsyncSession,
        user: User,
        archived: bool,
        *,
        actor_uid: str | None,
        at: datetime,
    ) -> User:
        """Flip the archive flag on a user."""
        user.is_archived = archived
        user.archived_at = at if archived else None
        user.archived_by = actor_uid if archived else None
        await db.flush()
        return user

    @staticmethod
    async def set_password(db: AsyncSession, user: User, password_hash: str) -> None:
        """Store a new password hash and clear the forced-change flag."""
        user.password_hash = password_hash
        user.must_change_password = False
        await db.flush()

    @staticmethod
    async def mark_logged_in(db: AsyncSession, user: User, at: datetime) -> None:
        user.last_login_at = at
        await db.flush()

    @staticmethod
    async def delete(db: AsyncSession, user_id: str) -> None:
        """Permanently delete a user row."""
        await db.execute(delete(User).where(User.id == user_id))
