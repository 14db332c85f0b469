"""
Configuration module.

Exports:
    settings: Application settings instance
    get_settings: Cached settings accessor
    db: Function to get the Supabase client
    get_supabase_client: Same as db
    check_connection: Health probe against the catalog tables
"""

from config.settings import settings, get_settings, Settings
from config.database import (
    db,
    get_supabase_client,
    check_connection,
    ConnectionError
)

__all__ = [
    "settings",
    "get_settings",
    "Settings",
    "db",
    "get_supabase_client",
    "check_connection",
    "ConnectionError",
]
