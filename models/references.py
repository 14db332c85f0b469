"""
Reference entity resolution models.

A reference column (category, construction phase) holds loosely typed
names; each distinct name becomes a ReferenceCandidate that is either
matched to an existing row or queued for creation.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ReferenceState(str, Enum):
    UNRESOLVED = "unresolved"
    EXISTING = "existing"
    PENDING_CREATE = "pending_create"


@dataclass
class ReferenceCandidate:
    """Distinct trimmed value seen in a reference column."""
    name: str
    namespace: str
    state: ReferenceState = ReferenceState.UNRESOLVED
    entity_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return self.state == ReferenceState.EXISTING and bool(self.entity_id)

    def mark_existing(self, entity_id: str) -> None:
        # Already resolved: keep the first identifier
        if self.is_resolved:
            return
        self.state = ReferenceState.EXISTING
        self.entity_id = entity_id
        self.error = None

    def mark_pending(self) -> None:
        if self.is_resolved:
            return
        self.state = ReferenceState.PENDING_CREATE
        self.entity_id = None


@dataclass
class ReferenceNamespace:
    """Where a namespace's entities live and which field points at them."""
    namespace: str
    table: str
    target_field: str
    create_missing: bool = True


@dataclass
class ReferenceResolutionContext:
    """
    Per-session name -> candidate lookup, one dict per namespace.

    Passed explicitly to the resolver and executor. The executor's creation
    step is the only writer once resolution is done.
    """
    namespaces: dict[str, ReferenceNamespace] = field(default_factory=dict)
    candidates: dict[str, dict[str, ReferenceCandidate]] = field(default_factory=dict)

    def add_namespace(
        self,
        ns: ReferenceNamespace,
        candidates: dict[str, ReferenceCandidate],
    ) -> None:
        self.namespaces[ns.namespace] = ns
        self.candidates[ns.namespace] = candidates

    def namespace_for_field(self, target_field: str) -> Optional[ReferenceNamespace]:
        for ns in self.namespaces.values():
            if ns.target_field == target_field:
                return ns
        return None

    def lookup(self, namespace: str, name: str) -> Optional[ReferenceCandidate]:
        return self.candidates.get(namespace, {}).get((name or "").strip())

    def resolve_id(self, namespace: str, name: str) -> Optional[str]:
        candidate = self.lookup(namespace, name)
        if candidate and candidate.is_resolved:
            return candidate.entity_id
        return None

    def pending(self, namespace: Optional[str] = None) -> list[ReferenceCandidate]:
        namespaces = [namespace] if namespace else list(self.candidates)
        return [
            c
            for ns in namespaces
            for c in self.candidates.get(ns, {}).values()
            if c.state == ReferenceState.PENDING_CREATE
        ]

    def to_dict(self) -> dict:
        return {
            ns: {
                name: {"state": c.state.value, "id": c.entity_id, "error": c.error}
                for name, c in items.items()
            }
            for ns, items in self.candidates.items()
        }
