"""
Batch import executor.

Creates pending reference entities, then writes catalog records in
fixed-size batches. Batches run one after another; a failed batch
marks its records failed and the next batch still runs.

Progress convention: 10% once references exist, the remaining 90%
proportional to processed records.
"""

import threading
import uuid
from typing import Callable, Optional

import structlog

from config import get_settings
from exceptions import (
    BatchWriteError,
    DatabaseError,
    ReferenceCreationError,
    ValidationError,
)
from integrations.supabase_store import CatalogStore
from models.catalog import CatalogRecord, TargetField
from models.import_run import ImportConfig, ImportFailure, ImportOutcome
from models.references import (
    ReferenceCandidate,
    ReferenceNamespace,
    ReferenceResolutionContext,
)
from services.validation_service import parse_number
from utils.text_utils import is_uuid

logger = structlog.get_logger(__name__)

DEFAULT_NAME_TEMPLATE = "Equipment {row}"

TEXT_FIELDS = (TargetField.DESCRIPTION, TargetField.TECHNICAL_SPECS)
RATE_FIELDS = (TargetField.DAILY_RATE, TargetField.WEEKLY_RATE, TargetField.MONTHLY_RATE)
# Never sent to the equipment table
DISALLOWED_FIELDS = ("category_id",)

ProgressCallback = Callable[[ImportOutcome], None]


def _cancelled(cancel_event: Optional[threading.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()


class BatchImportExecutor:
    """
    Writes validated records to the equipment table.

    Owns the reference context for the duration of one run: the
    creation step is the only place candidates change state.
    """

    def __init__(self, store: Optional[CatalogStore] = None, table: Optional[str] = None):
        self.store = store or CatalogStore()
        self.table = table or get_settings().equipment_table

    # ===================
    # REFERENCES
    # ===================

    def create_pending_references(
        self,
        context: ReferenceResolutionContext,
        outcome: Optional[ImportOutcome] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """
        Create every PENDING_CREATE candidate.

        Each candidate is attempted on its own; a failure is recorded
        and the rest continue. Already resolved candidates are skipped,
        so calling this twice creates nothing new. cancel_event is
        checked before each creation; once set nothing more is created.

        Returns:
            Number of candidates resolved by this call
        """
        resolved = 0
        for namespace, ns in context.namespaces.items():
            pending = context.pending(namespace)
            if not pending:
                continue

            if not ns.create_missing:
                for candidate in pending:
                    candidate.error = f"Automatic creation of {namespace} is disabled"
                logger.info("reference_creation_skipped", namespace=namespace, pending=len(pending))
                continue

            for candidate in pending:
                if _cancelled(cancel_event):
                    logger.warning("reference_creation_aborted", namespace=namespace, resolved=resolved)
                    return resolved
                if self._create_reference(ns, candidate, outcome):
                    resolved += 1

        logger.info("pending_references_processed", resolved=resolved, failed=len(context.pending()))
        return resolved

    def _create_reference(
        self,
        ns: ReferenceNamespace,
        candidate: ReferenceCandidate,
        outcome: Optional[ImportOutcome],
    ) -> bool:
        # Client-side id so a retried creation cannot collide
        entity_id = str(uuid.uuid4())
        try:
            created_id = self.store.insert_one(ns.table, {"id": entity_id, "name": candidate.name})
            candidate.mark_existing(created_id)
            logger.info(
                "reference_created",
                namespace=ns.namespace,
                name=candidate.name,
                id=created_id
            )
            return True
        except ReferenceCreationError as e:
            error = e.message
            if e.already_exists:
                existing_id = self._find_existing_id(ns, candidate.name)
                if existing_id:
                    candidate.mark_existing(existing_id)
                    logger.info(
                        "reference_already_existed",
                        namespace=ns.namespace,
                        name=candidate.name,
                        id=existing_id
                    )
                    return True

        candidate.error = error
        if outcome is not None:
            outcome.reference_errors.append(ImportFailure(record_id=candidate.name, error=error))
        logger.warning(
            "reference_creation_failed",
            namespace=ns.namespace,
            name=candidate.name,
            error=error
        )
        return False

    def _find_existing_id(self, ns: ReferenceNamespace, name: str) -> Optional[str]:
        try:
            row = self.store.find_by_name(ns.table, name)
        except DatabaseError as e:
            logger.warning("reference_lookup_failed", namespace=ns.namespace, name=name, error=e.message)
            return None
        if row and row.get("id") is not None:
            return str(row["id"])
        return None

    # ===================
    # RECORDS
    # ===================

    def normalize_record(
        self,
        record: CatalogRecord,
        context: ReferenceResolutionContext,
        image_map: Optional[dict[str, str]] = None,
        config: Optional[ImportConfig] = None,
        position: int = 0,
    ) -> dict:
        """
        Build the row sent to the equipment table.

        Fixed field whitelist, available=True, owner stamped, rates as
        numbers, reference names swapped for identifiers, resolved image
        URL merged in.

        Raises:
            ValidationError: If a referenced entity has no identifier
        """
        config = config or ImportConfig()
        record_id = record.record_id if is_uuid(record.record_id) else str(uuid.uuid4())

        name = record.get(TargetField.NAME).strip()
        if not name:
            template = config.missing_name_template or DEFAULT_NAME_TEMPLATE
            name = template.replace("{row}", str(position + 1))

        payload: dict = {
            "id": record_id,
            "name": name,
            "available": True,
        }
        if config.owner_id:
            payload["user_id"] = config.owner_id

        for target in TEXT_FIELDS:
            value = record.get(target).strip()
            if value:
                payload[target.value] = value

        for target in RATE_FIELDS:
            number = parse_number(record.get(target))
            if number is not None:
                payload[target.value] = number

        image = (image_map or {}).get(record.record_id) or record.get(TargetField.IMAGE).strip()
        if image:
            payload[TargetField.IMAGE.value] = image

        for ns in context.namespaces.values():
            value = record.get(TargetField(ns.target_field)).strip()
            if not value:
                continue
            entity_id = context.resolve_id(ns.namespace, value)
            if entity_id is None:
                candidate = context.lookup(ns.namespace, value)
                reason = candidate.error if candidate and candidate.error else "not created"
                raise ValidationError(
                    code="UNRESOLVED_REFERENCE",
                    message=f"Unresolved {ns.namespace} '{value}': {reason}",
                    details={"namespace": ns.namespace, "name": value}
                )
            payload[ns.target_field] = entity_id

        for key in DISALLOWED_FIELDS:
            payload.pop(key, None)

        return payload

    # ===================
    # EXECUTION
    # ===================

    def execute(
        self,
        records: list[CatalogRecord],
        context: ReferenceResolutionContext,
        image_map: Optional[dict[str, str]] = None,
        config: Optional[ImportConfig] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
        outcome: Optional[ImportOutcome] = None,
    ) -> ImportOutcome:
        """
        Run the import.

        Args:
            records: Importable records, in source order
            context: Reference resolution state for this session
            image_map: record_id -> stored image URL
            config: Batch size, owner, naming fallback
            on_progress: Called with a snapshot after every batch
            cancel_event: Checked before each reference creation and each
                          batch; once set nothing further is written
            outcome: Aggregate to fill in (a new one when omitted)

        Returns:
            ImportOutcome with per-record failures
        """
        config = config or ImportConfig()
        outcome = outcome or ImportOutcome()
        outcome.total_records = len(records)

        def notify() -> None:
            if on_progress is not None:
                on_progress(outcome.snapshot())

        logger.info(
            "import_started",
            records=len(records),
            batch_size=config.batch_size,
            images=len(image_map or {})
        )

        if not _cancelled(cancel_event):
            self.create_pending_references(context, outcome, cancel_event=cancel_event)

        if _cancelled(cancel_event):
            outcome.aborted = True
            logger.warning("import_aborted", processed=0, remaining=len(records))
        else:
            outcome.references_ready = True
            notify()

        for start in range(0, len(records), config.batch_size):
            if outcome.aborted:
                break
            if _cancelled(cancel_event):
                outcome.aborted = True
                logger.warning(
                    "import_aborted",
                    processed=outcome.processed_records,
                    remaining=len(records) - outcome.processed_records
                )
                break

            batch = records[start:start + config.batch_size]
            self._write_batch(batch, start, context, image_map, config, outcome)
            notify()

        outcome.finished = True
        notify()

        logger.info(
            "import_finished",
            total=outcome.total_records,
            success=outcome.success_count,
            errors=outcome.error_count,
            batches_written=outcome.batches_written,
            batches_failed=outcome.batches_failed,
            aborted=outcome.aborted
        )
        return outcome

    def _write_batch(
        self,
        batch: list[CatalogRecord],
        start: int,
        context: ReferenceResolutionContext,
        image_map: Optional[dict[str, str]],
        config: ImportConfig,
        outcome: ImportOutcome,
    ) -> None:
        payloads: list[dict] = []
        for offset, record in enumerate(batch):
            try:
                payloads.append(
                    self.normalize_record(record, context, image_map, config, position=start + offset)
                )
            except ValidationError as e:
                outcome.record_failure(record.record_id, e.message)
                logger.warning("record_skipped", record_id=record.record_id, error=e.message)

        if not payloads:
            return

        try:
            self.store.insert_many(self.table, payloads)
        except BatchWriteError as e:
            for payload in payloads:
                outcome.record_failure(payload["id"], e.store_message)
            outcome.batches_failed += 1
            logger.warning(
                "batch_failed",
                batch_start=start,
                records=len(payloads),
                error=e.store_message
            )
            return

        outcome.record_success(len(payloads))
        outcome.batches_written += 1
        logger.info(
            "batch_written",
            batch_start=start,
            records=len(payloads),
            processed=outcome.processed_records,
            progress=outcome.progress
        )


# Singleton instance
_import_service: Optional[BatchImportExecutor] = None


def get_import_service() -> BatchImportExecutor:
    """Get or create BatchImportExecutor instance."""
    global _import_service
    if _import_service is None:
        _import_service = BatchImportExecutor()
    return _import_service
