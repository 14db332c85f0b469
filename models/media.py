"""
Image resolution task models.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ImageTaskStatus(str, Enum):
    PENDING = "pending"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    FAILED = "failed"


class ImageFailure(str, Enum):
    """Why a task ended FAILED."""
    FETCH_FAILED = "fetch-failed"
    UPLOAD_FAILED = "fetch-ok/upload-failed"
    ABORTED = "aborted"


@dataclass
class FetchedImage:
    """Bytes obtained by one fetch strategy."""
    content: bytes
    content_type: str
    source_url: str
    strategy: str


@dataclass
class ImageTask:
    """
    One image reference to resolve for one record.

    payload is kept after a successful fetch so a failed upload can be
    retried without fetching again.
    """
    record_id: str
    source_url: str
    status: ImageTaskStatus = ImageTaskStatus.PENDING
    payload: Optional[FetchedImage] = None
    failure: Optional[ImageFailure] = None
    failure_reason: Optional[str] = None
    stored_url: Optional[str] = None
    message: Optional[str] = None
    attempts: list[str] = field(default_factory=list)

    @property
    def is_resolved(self) -> bool:
        return self.status == ImageTaskStatus.RESOLVED and bool(self.stored_url)

    @property
    def needs_manual_upload(self) -> bool:
        return self.status == ImageTaskStatus.FAILED and self.failure == ImageFailure.FETCH_FAILED

    def to_dict(self) -> dict:
        return {
            "record_id": self.record_id,
            "source_url": self.source_url,
            "status": self.status.value,
            "failure": self.failure.value if self.failure else None,
            "failure_reason": self.failure_reason,
            "stored_url": self.stored_url,
            "message": self.message,
            "strategy": self.payload.strategy if self.payload else None,
            "attempts": list(self.attempts),
        }


@dataclass
class MediaSummary:
    total_images: int
    success_count: int
    error_count: int
    image_map: dict[str, str]
