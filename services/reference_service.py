"""
Reference resolution for category-like columns.

Distinct values in each mapped reference column are matched by exact
(case-sensitive, trimmed) name against the reference table. Hits become
EXISTING candidates, misses PENDING_CREATE. Nothing is written here;
creation belongs to the import executor.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Iterable, Mapping, Optional

import structlog

from config import get_settings
from integrations.supabase_store import CatalogStore
from models.catalog import FieldMapping, TargetField
from models.import_run import ImportConfig
from models.references import (
    ReferenceCandidate,
    ReferenceNamespace,
    ReferenceResolutionContext,
)
from models.source import SourceRow
from utils.text_utils import is_uuid

logger = structlog.get_logger(__name__)

CATEGORY_NAMESPACE = "category"
PHASE_NAMESPACE = "construction_phase"


def collect_reference_values(rows: Iterable[SourceRow], header: str) -> list[str]:
    """Distinct non-empty trimmed values of one column, in first-seen order."""
    seen: dict[str, None] = {}
    for row in rows:
        value = row.get(header).strip()
        if value:
            seen.setdefault(value, None)
    return list(seen)


def resolve_references(
    rows: Iterable[SourceRow],
    mapping: FieldMapping,
    field: str,
    known_entities: Mapping[str, str],
    namespace: Optional[str] = None,
) -> dict[str, ReferenceCandidate]:
    """
    Classify the values of one mapped reference column.

    Args:
        rows: Source rows
        mapping: Target field -> header
        field: Reference target field (e.g. "category")
        known_entities: Existing entity name -> id for this namespace
        namespace: Candidate namespace (defaults to field)

    Returns:
        Trimmed value -> ReferenceCandidate. Empty if field is unmapped.
    """
    header = mapping.get(field)
    if not header:
        return {}

    namespace = namespace or field
    known_ids = set(known_entities.values())
    candidates: dict[str, ReferenceCandidate] = {}

    for value in collect_reference_values(rows, header):
        candidate = ReferenceCandidate(name=value, namespace=namespace)
        if value in known_entities:
            candidate.mark_existing(known_entities[value])
        elif is_uuid(value) and value in known_ids:
            # Column already holds identifiers
            candidate.mark_existing(value)
        else:
            candidate.mark_pending()
        candidates[value] = candidate

    pending = sum(1 for c in candidates.values() if not c.is_resolved)
    logger.info(
        "references_resolved",
        namespace=namespace,
        distinct_values=len(candidates),
        existing=len(candidates) - pending,
        pending_create=pending
    )
    return candidates


def default_namespaces(config: Optional[ImportConfig] = None) -> list[ReferenceNamespace]:
    """Category and construction phase namespaces, with creation toggles from config."""
    settings = get_settings()
    config = config or ImportConfig()
    return [
        ReferenceNamespace(
            namespace=CATEGORY_NAMESPACE,
            table=settings.categories_table,
            target_field=TargetField.CATEGORY.value,
            create_missing=config.create_missing_categories,
        ),
        ReferenceNamespace(
            namespace=PHASE_NAMESPACE,
            table=settings.phases_table,
            target_field=TargetField.CONSTRUCTION_PHASE_ID.value,
            create_missing=config.create_missing_phases,
        ),
    ]


class ReferenceResolverService:
    """
    Loads known entities and resolves every mapped reference column.

    Namespaces are loaded concurrently; they share nothing.
    """

    def __init__(self, store: Optional[CatalogStore] = None):
        self.store = store or CatalogStore()

    def load_known_entities(self, table: str) -> dict[str, str]:
        """Existing entity name -> id. The first row wins on duplicate names."""
        known: dict[str, str] = {}
        for row in self.store.query(table, columns="id, name"):
            name = str(row.get("name") or "").strip()
            if name and row.get("id") is not None:
                known.setdefault(name, str(row["id"]))
        logger.debug("known_entities_loaded", table=table, count=len(known))
        return known

    def resolve_all(
        self,
        rows: list[SourceRow],
        mapping: FieldMapping,
        namespaces: list[ReferenceNamespace],
    ) -> ReferenceResolutionContext:
        """
        Build the resolution context for one session.

        Raises:
            DatabaseError: If a reference table cannot be read
        """
        active = [ns for ns in namespaces if mapping.get(ns.target_field)]
        known: dict[str, dict[str, str]] = {}

        if active:
            with ThreadPoolExecutor(max_workers=len(active)) as pool:
                futures = {pool.submit(self.load_known_entities, ns.table): ns for ns in active}
                for future in as_completed(futures):
                    ns = futures[future]
                    known[ns.namespace] = future.result()

        context = ReferenceResolutionContext()
        for ns in namespaces:
            candidates = resolve_references(
                rows,
                mapping,
                ns.target_field,
                known.get(ns.namespace, {}),
                namespace=ns.namespace,
            )
            context.add_namespace(ns, candidates)

        logger.info(
            "reference_context_built",
            namespaces=[ns.namespace for ns in active],
            pending_create=len(context.pending())
        )
        return context


# Singleton instance
_reference_service: Optional[ReferenceResolverService] = None


def get_reference_service() -> ReferenceResolverService:
    """Get or create ReferenceResolverService instance."""
    global _reference_service
    if _reference_service is None:
        _reference_service = ReferenceResolverService()
    return _reference_service
