"""
Import run configuration and outcome.
"""

from dataclasses import dataclass, field
from typing import Optional

from pydantic import Field

from models.base import BaseSchema


class ImportConfig(BaseSchema):
    """
    Tunables for one import session.

    Defaults come from settings; callers may override per session.
    """

    batch_size: int = Field(default=5, ge=1, le=100, description="Records per bulk insert")
    owner_id: Optional[str] = Field(None, description="user_id stamped on every record")
    skip_media: bool = Field(default=False, description="Import without resolving images")
    create_missing_categories: bool = True
    create_missing_phases: bool = True
    missing_name_template: Optional[str] = Field(
        None,
        description="When set (e.g. 'Equipment {row}'), a missing name becomes fixable",
        examples=["Equipment {row}"],
    )

    # Media
    media_concurrency: int = Field(default=2, ge=1, le=3)
    media_fetch_timeout_seconds: float = Field(default=15.0, gt=0, le=120)
    use_content_api: bool = True
    use_relays: bool = True
    relays: list[str] = Field(default_factory=list)
    use_placeholder: bool = True
    placeholder_template: str = (
        "https://via.placeholder.com/300x300/e0e0e0/757575?text=Equipment+{record_id}"
    )

    @classmethod
    def from_settings(cls, **overrides) -> "ImportConfig":
        """Build from application settings, then apply overrides."""
        from config.settings import get_settings

        s = get_settings()
        values = {
            "batch_size": s.import_batch_size,
            "owner_id": s.import_owner_id,
            "media_concurrency": s.media_concurrency,
            "media_fetch_timeout_seconds": s.media_fetch_timeout_seconds,
            "use_content_api": s.content_api_configured,
            "use_relays": s.media_use_relays,
            "relays": list(s.media_relays),
            "use_placeholder": s.media_placeholder_enabled,
            "placeholder_template": s.media_placeholder_template,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass
class ImportFailure:
    record_id: str
    error: str


@dataclass
class ImportOutcome:
    """
    Running aggregate of one import.

    Counters only ever increase. progress follows the importer's
    convention: 10% once references exist, the remaining 90% by records.
    """
    total_records: int = 0
    processed_records: int = 0
    success_count: int = 0
    error_count: int = 0
    errors: list[ImportFailure] = field(default_factory=list)
    reference_errors: list[ImportFailure] = field(default_factory=list)
    batches_written: int = 0
    batches_failed: int = 0
    references_ready: bool = False
    aborted: bool = False
    finished: bool = False

    def record_success(self, count: int) -> None:
        self.success_count += count
        self.processed_records += count

    def record_failure(self, record_id: str, error: str) -> None:
        self.error_count += 1
        self.processed_records += 1
        self.errors.append(ImportFailure(record_id=record_id or "unknown", error=error))

    @property
    def progress(self) -> int:
        if not self.references_ready:
            return 0
        if self.total_records == 0:
            return 100
        return 10 + (self.processed_records * 90) // self.total_records

    def snapshot(self) -> "ImportOutcome":
        """Independent copy for observers."""
        return ImportOutcome(
            total_records=self.total_records,
            processed_records=self.processed_records,
            success_count=self.success_count,
            error_count=self.error_count,
            errors=list(self.errors),
            reference_errors=list(self.reference_errors),
            batches_written=self.batches_written,
            batches_failed=self.batches_failed,
            references_ready=self.references_ready,
            aborted=self.aborted,
            finished=self.finished,
        )

    def to_dict(self) -> dict:
        return {
            "total_records": self.total_records,
            "processed_records": self.processed_records,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "progress": self.progress,
            "batches_written": self.batches_written,
            "batches_failed": self.batches_failed,
            "aborted": self.aborted,
            "finished": self.finished,
            "errors": [{"id": e.record_id, "error": e.error} for e in self.errors],
            "reference_errors": [
                {"name": e.record_id, "error": e.error} for e in self.reference_errors
            ],
        }
