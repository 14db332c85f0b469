"""
Supabase adapters for the catalog import.

CatalogStore wraps table reads and inserts, ObjectStorage wraps the
image bucket. Both translate client exceptions into the pipeline's
error types so callers can record them per record / per task.
"""

import re
import time
from typing import Any, Optional

import structlog

from config import get_settings, get_supabase_client
from exceptions import (
    BatchWriteError,
    DatabaseError,
    MediaUploadError,
    ReferenceCreationError,
)

logger = structlog.get_logger(__name__)

# Postgres unique_violation
UNIQUE_VIOLATION_CODE = "23505"


def is_unique_violation(error: Exception) -> bool:
    """True if the store rejected an insert because the row already exists."""
    if getattr(error, "code", None) == UNIQUE_VIOLATION_CODE:
        return True
    text = str(error).lower()
    return "duplicate key" in text or "already exists" in text


class CatalogStore:
    """
    Relational store used by the import.

    Reads raise DatabaseError. insert_one raises ReferenceCreationError
    and insert_many raises BatchWriteError.
    """

    def __init__(self, client=None):
        self.db = client or get_supabase_client()

    def query(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
        columns: str = "*"
    ) -> list[dict]:
        """
        Select rows with equality filters.

        Args:
            table: Table name
            filters: column -> value, combined with AND
            columns: Select list

        Returns:
            Matching rows (possibly empty)
        """
        try:
            query = self.db.table(table).select(columns)
            for column, value in (filters or {}).items():
                query = query.eq(column, value)
            result = query.execute()
            rows = result.data or []
            logger.debug("store_query", table=table, filters=filters, rows=len(rows))
            return rows
        except Exception as e:
            logger.error("store_query_failed", table=table, error=str(e))
            raise DatabaseError("select", str(e), details={"table": table})

    def find_by_name(self, table: str, name: str) -> Optional[dict]:
        """First row whose name equals name exactly, or None."""
        rows = self.query(table, {"name": name})
        return rows[0] if rows else None

    def insert_one(self, table: str, record: dict) -> str:
        """
        Insert one row and return its id.

        The id sent in record is returned when the store does not echo
        the inserted row.

        Raises:
            ReferenceCreationError: If the insert fails; already_exists is
                                    set when the store reports a duplicate
        """
        name = str(record.get("name", ""))
        try:
            result = self.db.table(table).insert(record).execute()
        except Exception as e:
            already_exists = is_unique_violation(e)
            logger.warning(
                "store_insert_one_failed",
                table=table,
                name=name,
                already_exists=already_exists,
                error=str(e)
            )
            raise ReferenceCreationError(table, name, str(e), already_exists=already_exists)

        rows = result.data or []
        entity_id = rows[0].get("id") if rows and rows[0].get("id") else record.get("id")
        if not entity_id:
            raise ReferenceCreationError(table, name, "Store returned no identifier")

        logger.info("store_insert_one", table=table, name=name, id=entity_id)
        return str(entity_id)

    def insert_many(self, table: str, records: list[dict]) -> list[str]:
        """
        Insert records as one bulk write.

        Returns:
            Inserted ids as echoed by the store

        Raises:
            BatchWriteError: If the store rejects the write
        """
        try:
            result = self.db.table(table).insert(records).execute()
        except Exception as e:
            logger.warning(
                "store_insert_many_failed",
                table=table,
                record_count=len(records),
                error=str(e)
            )
            raise BatchWriteError(table, len(records), str(e))

        ids = [str(row.get("id")) for row in (result.data or []) if row.get("id")]
        logger.debug("store_insert_many", table=table, record_count=len(records), ids=len(ids))
        return ids


class ObjectStorage:
    """Public bucket for equipment images."""

    def __init__(self, client=None, bucket: Optional[str] = None):
        self.db = client or get_supabase_client()
        self.bucket = bucket or get_settings().storage_bucket

    @staticmethod
    def build_path(
        entity_kind: str,
        record_id: str,
        purpose: str = "image",
        original_name: Optional[str] = None,
        timestamp: Optional[int] = None
    ) -> str:
        """
        Storage path for one object.

        Format: <entity_kind>/<record_id>/<purpose>-<timestamp>[-<original_name>]
        with the timestamp in epoch milliseconds.
        """
        if timestamp is None:
            timestamp = int(time.time() * 1000)
        name = f"{purpose}-{timestamp}"
        if original_name:
            safe_name = re.sub(r"[^A-Za-z0-9._-]", "_", original_name)
            name = f"{name}-{safe_name}"
        return f"{entity_kind}/{record_id}/{name}"

    def put(self, path: str, content: bytes, content_type: str) -> str:
        """
        Upload bytes and return the public URL.

        Raises:
            MediaUploadError: If the upload or URL lookup fails
        """
        logger.debug(
            "uploading_to_storage",
            bucket=self.bucket,
            path=path,
            size_bytes=len(content)
        )

        try:
            bucket = self.db.storage.from_(self.bucket)
            bucket.upload(path, content, file_options={"content-type": content_type})
            public_url = bucket.get_public_url(path)
        except Exception as e:
            logger.warning("storage_upload_failed", bucket=self.bucket, path=path, error=str(e))
            raise MediaUploadError(path, str(e))

        # Some client versions append an empty query string
        public_url = str(public_url).rstrip("?")

        logger.info("uploaded_to_storage", bucket=self.bucket, path=path)
        return public_url
