"""
Database connection management.

Provides the Supabase client singleton used by the relational store
and object storage adapters.
"""

from supabase import create_client, Client
from functools import lru_cache
import structlog

from config.settings import settings

logger = structlog.get_logger(__name__)


class DatabaseError(Exception):
    """Base exception for database errors."""
    pass


class ConnectionError(DatabaseError):
    """Failed to connect to database."""
    pass


@lru_cache()
def get_supabase_client() -> Client:
    """
    Get cached Supabase client instance.

    Uses lru_cache to ensure only one client is created.
    Call get_supabase_client.cache_clear() to reconnect.

    Returns:
        Client: Supabase client

    Raises:
        ConnectionError: If connection fails
    """
    try:
        logger.info(
            "connecting_to_supabase",
            url=settings.supabase_url[:30] + "..."  # Log partial URL only
        )

        # Service key lets the importer write reference tables and storage
        client = create_client(
            settings.supabase_url,
            settings.supabase_service_key or settings.supabase_key
        )

        logger.info(
            "supabase_connected",
            status="success",
            service_role=bool(settings.supabase_service_key)
        )

        return client

    except Exception as e:
        logger.error(
            "supabase_connection_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise ConnectionError(f"Failed to connect to Supabase: {e}") from e


# Convenience alias
db = get_supabase_client


# ===================
# HELPER FUNCTIONS
# ===================

def check_connection() -> dict:
    """
    Check database connection health.

    Returns:
        dict: Connection status with details
    """
    try:
        client = get_supabase_client()

        equipment = client.table(settings.equipment_table).select("id", count="exact").limit(1).execute()
        categories = client.table(settings.categories_table).select("id", count="exact").limit(1).execute()

        return {
            "status": "healthy",
            "equipment_count": equipment.count,
            "categories_count": categories.count
        }

    except Exception as e:
        logger.error(
            "health_check_failed",
            error=str(e)
        )
        return {
            "status": "unhealthy",
            "error": str(e)
        }
