"""
Core module - Configuration, database, security, and utilities.
"""

from intake.core.config import get_settings, settings
from intake.core.database import Base, close_db, get_db, init_db
from intake.core.redis import close_redis, get_redis, init_redis
from intake.core.security import (
    create_access_token,
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
    "get_redis",
    "init_redis",
    "close_redis",
    # Security
    "hash_password",
    "verify_password",
    "create_access_token",
    "decode_token",
]
