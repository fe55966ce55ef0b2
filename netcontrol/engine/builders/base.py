"""Shared validation and assembly steps of every entity builder."""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from netcontrol.config import settings
from netcontrol.db.models import Database, DatabaseType, generate_uuid
from netcontrol.domain.entities import MutationReport
from netcontrol.domain.enumerations import EntityKind
from netcontrol.domain.errors import DuplicateIdentifierError, InvalidArgumentError
from netcontrol.domain.specifications import Specification, first_unsatisfied

logger = logging.getLogger(__name__)


class ItemRejected(Exception):
    """Raised while assembling an item that has to be dropped from the request."""


@dataclass
class Draft:
    """Validated state of one entity, ready to be created or written onto the stored entity."""
    id: str
    fields: Dict[str, Any] = field(default_factory=dict)
    collections: Dict[str, List[Any]] = field(default_factory=dict)


def unique(values: Iterable[Any]) -> List[Any]:
    """Drop repeated values, keeping the first occurrence of each."""
    return list(dict.fromkeys(values))


def check_rules(rules: Sequence[Specification], candidate: Dict[str, Any]) -> None:
    broken = first_unsatisfied(rules, candidate)
    if broken is not None:
        raise ItemRejected(broken.reason)


class EntityBuilder:
    """
    Turn create or edit payloads of one kind into entities.

    For each chunk of payloads the builder drops the ids that already exist
    (create) or do not exist (edit), resolves every referenced lower-layer id
    with one query per reference type, and assembles the survivors. Items that
    fail a rule are recorded on the report and skipped; they never abort the
    request.
    """

    kind: EntityKind = None
    model: type = None
    # Scalar attributes and association collections an edit may replace
    editable_fields: Tuple[str, ...] = ("name", "description")
    edit_collections: Tuple[str, ...] = ()

    def __init__(self, generic_type_name: str = None):
        self.generic_type_name = generic_type_name or settings.GENERIC_DATABASE_TYPE

    # Request-wide checks

    def check_duplicates(self, payloads: Optional[Sequence[Any]]) -> None:
        """
        Fail the whole request if a caller-provided id appears twice.

        Raises:
            InvalidArgumentError: If no payloads were provided
            DuplicateIdentifierError: If any id repeats
        """
        if payloads is None:
            raise InvalidArgumentError(f"No {self.kind.value} items were provided.")
        counts = Counter(payload.id for payload in payloads if payload.id)
        duplicates = [item_id for item_id, count in counts.items() if count > 1]
        if duplicates:
            raise DuplicateIdentifierError(duplicates)

    # Queries shared by the builders

    def existing_ids(self, session: Session, ids: Iterable[str]) -> Set[str]:
        ids = unique(item_id for item_id in ids if item_id)
        if not ids:
            return set()
        return set(session.execute(select(self.model.id).where(self.model.id.in_(ids))).scalars())

    def editable_ids(self, session: Session, ids: Set[str]) -> Set[str]:
        """Stored ids an edit may change (all of them by default)."""
        return set(ids)

    def generic_databases(self) -> Select:
        """Ids of the databases of the generic type."""
        return (
            select(Database.id)
            .join(DatabaseType, Database.database_type_id == DatabaseType.id)
            .where(DatabaseType.name == self.generic_type_name)
        )

    def canonical_databases(self) -> Select:
        """Ids of the databases outside the generic type."""
        return (
            select(Database.id)
            .join(DatabaseType, Database.database_type_id == DatabaseType.id)
            .where(DatabaseType.name != self.generic_type_name)
        )

    # Hooks

    def resolve_references(self, session: Session, payloads: List[Any], editing: bool) -> Dict[str, Any]:
        """Load everything the payloads of one chunk reference."""
        return {}

    def assemble(self, payload: Any, references: Dict[str, Any], editing: bool) -> Draft:
        """Validate one payload against the resolved references; raise ItemRejected to drop it."""
        raise NotImplementedError

    def after_edit(self, session: Session, entity: Any) -> None:
        """Keep entities derived from an edited one in step (nothing by default)."""

    # Steps

    def _draft_id(self, payload: Any) -> str:
        return payload.id or generate_uuid()

    def _collect(
        self,
        session: Session,
        payloads: Sequence[Any],
        offset: int,
        report: MutationReport,
        editing: bool,
    ) -> List[Draft]:
        present = self.existing_ids(session, (payload.id for payload in payloads))
        editable = self.editable_ids(session, present) if editing else set()
        candidates = []
        for position, payload in enumerate(payloads):
            index = offset + position
            if editing and not payload.id:
                report.reject(index, None, "an id is required to edit an item")
            elif editing and payload.id not in present:
                report.reject(index, payload.id, f"no {self.kind.value} with this id exists")
            elif editing and payload.id not in editable:
                report.reject(index, payload.id, f"generic {self.kind.value} items cannot be edited")
            elif not editing and payload.id and payload.id in present:
                report.reject(index, payload.id, f"a {self.kind.value} with this id already exists")
            else:
                candidates.append((index, payload))

        references = self.resolve_references(session, [payload for _, payload in candidates], editing)
        drafts = []
        for index, payload in candidates:
            try:
                drafts.append(self.assemble(payload, references, editing))
            except ItemRejected as rejection:
                report.reject(index, payload.id, str(rejection))
        dropped = len(payloads) - len(drafts)
        if dropped:
            logger.info(f"Dropped {dropped} of {len(payloads)} {self.kind.value} items (chunk at {offset})")
        return drafts

    def build_for_create(
        self,
        session: Session,
        payloads: Sequence[Any],
        offset: int,
        report: MutationReport,
    ) -> List[Any]:
        """Return new, unsaved entities for the valid payloads of one chunk."""
        drafts = self._collect(session, payloads, offset, report, editing=False)
        return [self.model(id=draft.id, **draft.fields, **draft.collections) for draft in drafts]

    def build_for_edit(
        self,
        session: Session,
        payloads: Sequence[Any],
        offset: int,
        report: MutationReport,
    ) -> List[Draft]:
        """Return the replacement state of the stored entities edited by one chunk."""
        drafts = self._collect(session, payloads, offset, report, editing=True)
        for draft in drafts:
            draft.fields = {name: value for name, value in draft.fields.items() if name in self.editable_fields}
            draft.collections = {
                name: items for name, items in draft.collections.items() if name in self.edit_collections
            }
        return drafts

    def apply_edit(self, session: Session, draft: Draft) -> bool:
        """
        Write a draft onto its stored entity.

        Association collections are replaced as a whole: the old rows are
        flushed out before the new ones are attached.

        Returns:
            False if the entity was deleted meanwhile, True otherwise
        """
        entity = session.get(self.model, draft.id)
        if entity is None:
            return False
        for name, value in draft.fields.items():
            setattr(entity, name, value)
        if draft.collections:
            for name in draft.collections:
                getattr(entity, name).clear()
            session.flush()
            for name, items in draft.collections.items():
                getattr(entity, name).extend(items)
        self.after_edit(session, entity)
        return True
