"""
Core module - Configuration, database, security, keyed state and utilities.
"""

from school_portal.core.config import get_settings, settings
from school_portal.core.database import Base, close_db, get_db, init_db
from school_portal.core.redis import close_redis, init_redis, redis_status
from school_portal.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)

__all__ = [
    # Config
    "settings",
    "get_settings",
    # Database
    "Base",
    "get_db",
    "init_db",
    "close_db",
    # Redis
    "redis_status",
    "init_redis",
    "close_redis",
    # Security
    "hash_password",
    "verify_password",
    "create_access_token",
    "create_refresh_token",
    "decode_token",
]
