"""
Import session state machine.

One session drives one import run from uploaded bytes to written
records. Each step is a method that checks the current state, does its
work and moves to the next state:

    NEW -> SOURCE_LOADED -> VALIDATED -> MAPPED -> REFERENCES_RESOLVED
        -> PREVIEWED -> MEDIA_RESOLVED -> IMPORTED

Re-mapping is allowed from VALIDATED through PREVIEWED and discards
everything computed after the mapping.
"""

import threading
import uuid
from typing import Optional

import structlog

from config import get_settings
from exceptions import ConflictError, InvalidSessionTransitionError, ValidationError
from integrations.content_api import WordPressMediaClient
from integrations.supabase_store import CatalogStore, ObjectStorage
from models.catalog import EQUIPMENT_SCHEMA, CatalogRecord, FieldKind, FieldMapping, SchemaField
from models.import_run import ImportConfig, ImportOutcome
from models.media import ImageFailure, ImageTask, ImageTaskStatus
from models.references import ReferenceResolutionContext
from models.session import SessionState
from models.source import PreValidationReport, ReadResult, SourceKind, SourceRow
from models.validation import ValidationReport
from parsers.tabular_reader import read_source
from services import mapping_service, validation_service
from services.import_service import BatchImportExecutor, ProgressCallback, get_import_service
from services.media_service import MediaPipeline, TaskListCallback, extract_image_tasks
from services.prevalidation_service import build_report
from services.reference_service import (
    ReferenceResolverService,
    default_namespaces,
    get_reference_service,
)

logger = structlog.get_logger(__name__)

REMAP_STATES = (
    SessionState.VALIDATED,
    SessionState.MAPPED,
    SessionState.REFERENCES_RESOLVED,
    SessionState.PREVIEWED,
)


class ImportSession:
    """
    Owns every artifact of one import: rows, mapping, reference context,
    validation report, image tasks and the outcome.

    Collaborators (store, storage, content API, HTTP session) can be
    injected; by default they come from settings.
    """

    def __init__(
        self,
        config: Optional[ImportConfig] = None,
        store: Optional[CatalogStore] = None,
        storage: Optional[ObjectStorage] = None,
        content_api: Optional[WordPressMediaClient] = None,
        http_session=None,
        schema: tuple[SchemaField, ...] = EQUIPMENT_SCHEMA,
        session_id: Optional[str] = None,
    ):
        self.id = session_id or str(uuid.uuid4())
        self.config = config or ImportConfig.from_settings()
        self.schema = schema
        if store is None:
            self._resolver = get_reference_service()
            self._executor = get_import_service()
        else:
            self._resolver = ReferenceResolverService(store)
            self._executor = BatchImportExecutor(store)
        self.store = self._executor.store
        self._storage = storage
        self._content_api = content_api
        self._http_session = http_session
        self._cancel = threading.Event()
        self._import_lock = threading.Lock()
        self.import_running = False
        self._clear()

    def _clear(self) -> None:
        self.state = SessionState.NEW
        self.source: Optional[ReadResult] = None
        self.headers: tuple[str, ...] = ()
        self.rows: list[SourceRow] = []
        self.pre_validation: Optional[PreValidationReport] = None
        self.mapping: FieldMapping = {}
        self.references: Optional[ReferenceResolutionContext] = None
        self.validation: Optional[ValidationReport] = None
        self.records: list[CatalogRecord] = []
        self.image_tasks: list[ImageTask] = []
        self.outcome: Optional[ImportOutcome] = None

    def _require(self, action: str, *allowed: SessionState) -> None:
        if self.state not in allowed:
            raise InvalidSessionTransitionError(
                current_state=self.state.value,
                action=action,
                allowed_from=[s.value for s in allowed]
            )

    def _move(self, state: SessionState) -> None:
        logger.info("session_state_changed", session_id=self.id, from_state=self.state.value, to_state=state.value)
        self.state = state

    @property
    def required_fields(self) -> list[str]:
        return [f.name.value for f in self.schema if f.required]

    # ===================
    # SOURCE
    # ===================

    def load_source(
        self,
        content: bytes,
        kind: SourceKind,
        delimiter: Optional[str] = None,
    ) -> ReadResult:
        """
        Parse the uploaded file. NEW -> SOURCE_LOADED.

        Raises:
            SourceParseError: If the file is empty or unreadable
        """
        self._require("load source", SessionState.NEW)
        result = read_source(content, kind, delimiter=delimiter, max_bytes=get_settings().max_upload_bytes)
        self.source = result
        self.headers = result.headers
        self.rows = list(result.rows)
        self._move(SessionState.SOURCE_LOADED)
        return result

    def prevalidate(self) -> PreValidationReport:
        """Profile the source. SOURCE_LOADED -> VALIDATED."""
        self._require("pre-validate", SessionState.SOURCE_LOADED)
        self.pre_validation = build_report(self.headers, self.rows)
        self._move(SessionState.VALIDATED)
        return self.pre_validation

    # ===================
    # MAPPING
    # ===================

    def suggest_mapping(self) -> FieldMapping:
        """Auto-mapping for the loaded headers."""
        if self.state == SessionState.NEW:
            raise InvalidSessionTransitionError(self.state.value, "suggest mapping", ["source_loaded"])
        return mapping_service.suggest_mapping(self.headers, self.schema)

    def apply_mapping(self, mapping: FieldMapping) -> FieldMapping:
        """
        Set the column mapping. VALIDATED..PREVIEWED -> MAPPED.

        Raises:
            MappingIncompleteError: If required fields are unmapped
            ValidationError: If a header is unknown or used twice
        """
        self._require("apply mapping", *REMAP_STATES)
        normalized = mapping_service.normalize_mapping(mapping, self.schema)
        mapping_service.ensure_complete(normalized, self.schema)
        mapping_service.check_sources(normalized, self.headers)

        self.mapping = normalized
        self.references = None
        self.validation = None
        self.records = []
        self.image_tasks = []
        self._move(SessionState.MAPPED)
        return normalized

    # ===================
    # REFERENCES
    # ===================

    def resolve_references(self) -> ReferenceResolutionContext:
        """Classify reference values (read-only). MAPPED -> REFERENCES_RESOLVED."""
        self._require("resolve references", SessionState.MAPPED)
        self.references = self._resolve_reference_context()
        self._move(SessionState.REFERENCES_RESOLVED)
        return self.references

    def _resolve_reference_context(self) -> ReferenceResolutionContext:
        return self._resolver.resolve_all(self.rows, self.mapping, default_namespaces(self.config))

    # ===================
    # PREVIEW & CORRECTIONS
    # ===================

    def preview(self) -> ValidationReport:
        """Validate every row. REFERENCES_RESOLVED -> PREVIEWED."""
        self._require("preview", SessionState.REFERENCES_RESOLVED, SessionState.PREVIEWED)
        self.validation = validation_service.validate_all(
            self.rows,
            self.mapping,
            self.required_fields,
            self.config.missing_name_template,
            self.schema,
        )
        self._move(SessionState.PREVIEWED)
        return self.validation

    def auto_fix(self, selection: Optional[list[int]] = None) -> ValidationReport:
        """Apply fixable suggestions (to selection, or all rows) and re-validate."""
        self._require("auto-fix", SessionState.PREVIEWED)
        self.rows, self.validation = validation_service.auto_fix(
            self.rows,
            self.mapping,
            self.validation,
            selection,
            self.required_fields,
            self.config.missing_name_template,
            self.schema,
        )
        return self.validation

    def update_cell(self, row_index: int, field: str, value: str) -> ValidationReport:
        """Edit one cell and re-validate; reference columns are re-resolved."""
        self._require("edit cell", SessionState.PREVIEWED)
        self.rows, self.validation = validation_service.update_cell(
            self.rows,
            self.mapping,
            row_index,
            field,
            value,
            self.required_fields,
            self.config.missing_name_template,
            self.schema,
        )

        reference_fields = {f.name.value for f in self.schema if f.kind == FieldKind.REFERENCE}
        reference_headers = {self.mapping.get(f) for f in reference_fields}
        if field in reference_fields or field in reference_headers:
            self.references = self._resolve_reference_context()
        return self.validation

    # ===================
    # MEDIA
    # ===================

    def _media_pipeline(self) -> MediaPipeline:
        return MediaPipeline(
            config=self.config,
            storage=self._storage,
            content_api=self._content_api,
            session=self._http_session,
        )

    def _build_records(self) -> None:
        self.records = validation_service.build_records(self.rows, self.mapping, self.validation)

    def resolve_media(self, on_update: Optional[TaskListCallback] = None) -> list[ImageTask]:
        """
        Fetch and store images. PREVIEWED -> MEDIA_RESOLVED.

        Calling again from MEDIA_RESOLVED retries unresolved tasks.
        """
        self._require("resolve media", SessionState.PREVIEWED, SessionState.MEDIA_RESOLVED)
        if self.config.skip_media and self.state == SessionState.PREVIEWED:
            return self.skip_media()

        if self.state == SessionState.PREVIEWED:
            self._build_records()
            self.image_tasks = extract_image_tasks(self.records)

        self._media_pipeline().resolve(self.image_tasks, on_update=on_update, cancel_event=self._cancel)
        self._move(SessionState.MEDIA_RESOLVED)
        return self.image_tasks

    def skip_media(self) -> list[ImageTask]:
        """Continue without images. PREVIEWED -> MEDIA_RESOLVED."""
        self._require("skip media", SessionState.PREVIEWED)
        self._build_records()
        self.image_tasks = []
        logger.info("media_skipped", session_id=self.id, records=len(self.records))
        self._move(SessionState.MEDIA_RESOLVED)
        return self.image_tasks

    def _known_record(self, record_id: str) -> None:
        if not any(r.record_id == record_id for r in self.records):
            raise ValidationError(message="Unknown record", details={"record_id": record_id})

    def add_manual_image_url(self, record_id: str, url: str) -> ImageTask:
        """Add an operator-supplied image URL for a record and resolve it."""
        self._require("add image URL", SessionState.MEDIA_RESOLVED)
        self._known_record(record_id)
        pipeline = self._media_pipeline()
        task = pipeline.add_manual_url(self.image_tasks, record_id, url)
        return pipeline.resolve_task(task)

    def attach_manual_image(
        self,
        record_id: str,
        content: bytes,
        content_type: str,
        filename: Optional[str] = None,
    ) -> ImageTask:
        """
        Use a local file for a record whose image could not be fetched.

        Replaces the record's first failed task, or adds a new task.
        """
        self._require("attach image", SessionState.MEDIA_RESOLVED)
        self._known_record(record_id)

        task = next(
            (t for t in self.image_tasks if t.record_id == record_id and t.status == ImageTaskStatus.FAILED),
            None,
        )
        if task is None:
            task = ImageTask(record_id=record_id, source_url=filename or "manual-upload")
            self.image_tasks.append(task)

        return self._media_pipeline().apply_manual_upload(task, content, content_type, filename)

    def retry_image_uploads(self) -> list[ImageTask]:
        """Upload again every task that was fetched but failed to upload."""
        self._require("retry uploads", SessionState.MEDIA_RESOLVED)
        pipeline = self._media_pipeline()
        retried = [
            pipeline.retry_upload(t)
            for t in self.image_tasks
            if t.failure == ImageFailure.UPLOAD_FAILED and t.payload is not None
        ]
        logger.info("image_uploads_retried", session_id=self.id, tasks=len(retried))
        return retried

    @property
    def image_map(self) -> dict[str, str]:
        return MediaPipeline.image_map(self.image_tasks)

    # ===================
    # IMPORT
    # ===================

    def claim_import(self) -> None:
        """
        Reserve the session for one import run.

        The state check and the running flag change under one lock, so
        of two concurrent callers only one gets the run.

        Raises:
            InvalidSessionTransitionError: If media is not resolved yet
            ConflictError: If an import is already running
        """
        with self._import_lock:
            self._require("import", SessionState.MEDIA_RESOLVED)
            if self.import_running:
                raise ConflictError(message="Import already running", code="IMPORT_RUNNING")
            self.import_running = True

    def execute_import(self, on_progress: Optional[ProgressCallback] = None) -> ImportOutcome:
        """
        Write records to the store. MEDIA_RESOLVED -> IMPORTED.

        Raises:
            ConflictError: If an import is already running
        """
        self.claim_import()
        return self.run_claimed_import(on_progress)

    def run_claimed_import(self, on_progress: Optional[ProgressCallback] = None) -> ImportOutcome:
        """
        Run an import reserved with claim_import().

        A session aborted before the run writes nothing and still ends
        IMPORTED, with an aborted outcome.
        """
        if not self.import_running:
            raise ConflictError(message="Import was not claimed", code="IMPORT_NOT_CLAIMED")

        def track(snapshot: ImportOutcome) -> None:
            self.outcome = snapshot
            if on_progress is not None:
                on_progress(snapshot)

        self.outcome = ImportOutcome(total_records=len(self.records))
        try:
            outcome = self._executor.execute(
                self.records,
                self.references,
                image_map=self.image_map,
                config=self.config,
                on_progress=track,
                cancel_event=self._cancel,
            )
        finally:
            self.import_running = False

        self.outcome = outcome
        self._move(SessionState.IMPORTED)
        return outcome

    # ===================
    # CONTROL
    # ===================

    def abort(self) -> None:
        """Stop at the next batch or task boundary."""
        self._cancel.set()
        logger.warning("session_abort_requested", session_id=self.id, state=self.state.value)

    @property
    def aborted(self) -> bool:
        return self._cancel.is_set()

    def reset(self) -> None:
        """Discard everything and return to NEW."""
        if self.import_running:
            raise ConflictError(message="Cannot reset while an import is running", code="IMPORT_RUNNING")
        self._cancel = threading.Event()
        self._clear()
        logger.info("session_reset", session_id=self.id)

    def status(self) -> dict:
        """Plain-data view of the session for callers."""
        return {
            "session_id": self.id,
            "state": self.state,
            "row_count": len(self.rows),
            "mapping": dict(self.mapping),
            "references": self.references.to_dict() if self.references else {},
            "validation": self.validation.to_dict() if self.validation else None,
            "media": [t.to_dict() for t in self.image_tasks],
            "image_map": self.image_map,
            "outcome": self.outcome.to_dict() if self.outcome else None,
            "import_running": self.import_running,
        }
