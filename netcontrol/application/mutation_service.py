"""Application entry point for every create, edit and delete the engine performs."""
from __future__ import annotations

import datetime
import logging
from typing import Any, List, Sequence

from pydantic import TypeAdapter, ValidationError as PayloadValidationError
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session, sessionmaker

from netcontrol.db.database import session_scope
from netcontrol.db.models import Analysis, DatabaseUser
from netcontrol.domain.entities import MutationReport
from netcontrol.domain.enumerations import (
    AnalysisStatus,
    EntityKind,
    MutationOperation,
    RESULT_BEARING_STATUSES,
    can_transition,
)
from netcontrol.domain.errors import InvalidArgumentError, InvalidTransitionError, NotFoundError, ValidationError
from netcontrol.domain.events import (
    AnalysisStatusChanged,
    EntitiesCreated,
    EntitiesDeleted,
    EntitiesEdited,
    PayloadsRejected,
    event_publisher,
)
from netcontrol.engine.batch_mutator import BatchMutator
from netcontrol.engine.builders import BUILDERS, ControlPathBuilder, Draft, EntityBuilder
from netcontrol.engine.builders.snapshots import log_entry
from netcontrol.engine.cancellation import CancellationToken, ensure_token
from netcontrol.engine.cascade import CascadeOrchestrator, INVALIDATION_CHAINS
from netcontrol.engine.dependency_resolver import DependencyResolver
from netcontrol.schemas.payloads import ControlPathPayload, PAYLOADS_BY_KIND

logger = logging.getLogger(__name__)


def _kind(kind: Any) -> EntityKind:
    try:
        return EntityKind(kind)
    except ValueError:
        raise InvalidArgumentError(f"Unknown entity kind: {kind}") from None


def parse_payloads(model: type, payloads: Sequence[Any]) -> List[Any]:
    """
    Validate raw payloads (dicts or already-built models) against a payload schema.

    Raises:
        InvalidArgumentError: If the collection is missing or an item does not fit the schema
    """
    if payloads is None:
        raise InvalidArgumentError("No items were provided.")
    try:
        return TypeAdapter(List[model]).validate_python(list(payloads))
    except PayloadValidationError as e:
        raise InvalidArgumentError(f"Malformed {model.__name__} items: {e}") from e


class MutationService:
    """
    Create, edit and delete entities of any layer.

    Creates and edits go through the kind's builder in chunks; deletes and
    the snapshot invalidation that precedes node, edge and collection edits go
    through the cascade orchestrator.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        mutator: BatchMutator = None,
        resolver: DependencyResolver = None,
        orchestrator: CascadeOrchestrator = None,
    ) -> None:
        self._session_factory = session_factory
        self._mutator = mutator or BatchMutator()
        self._resolver = resolver or DependencyResolver(session_factory)
        self._orchestrator = orchestrator or CascadeOrchestrator(session_factory, self._resolver, self._mutator)

    def _builder(self, kind: EntityKind) -> EntityBuilder:
        if kind not in BUILDERS:
            raise InvalidArgumentError(f"Entities of kind {kind.value} cannot be created or edited directly.")
        return BUILDERS[kind]()

    def create(self, kind: Any, payloads: Sequence[Any], token: CancellationToken = None) -> MutationReport:
        """
        Create entities of one kind from payloads.

        Args:
            kind: Entity kind to create
            payloads: Payload models or dicts
            token: Cancellation token checked between chunks

        Returns:
            Report of the accepted and rejected items
        """
        kind = _kind(kind)
        builder = self._builder(kind)
        items = parse_payloads(PAYLOADS_BY_KIND[kind], payloads)
        builder.check_duplicates(items)
        return self._create_with(builder, items, ensure_token(token))

    def _create_with(self, builder: EntityBuilder, items: List[Any], token: CancellationToken) -> MutationReport:
        report = MutationReport(kind=builder.kind.value, operation=MutationOperation.CREATE.value, requested=len(items))

        def prepare(session: Session, chunk: Sequence[Any], offset: int) -> List[Any]:
            entities = builder.build_for_create(session, chunk, offset, report)
            report.accepted_ids.extend(entity.id for entity in entities)
            return entities

        self._mutator.create(self._session_factory, items, token, prepare=prepare)
        report.cancelled = token.is_cancelled
        logger.info(
            f"Created {report.accepted} of {report.requested} {builder.kind.value} items"
            f"{' (cancelled)' if report.cancelled else ''}"
        )
        if report.accepted_ids:
            event_publisher.publish(EntitiesCreated(
                event_id="",
                timestamp=None,
                aggregate_id=report.accepted_ids[0],
                kind=builder.kind.value,
                entity_ids=list(report.accepted_ids),
            ))
        self._publish_rejections(report)
        return report

    def edit(self, kind: Any, payloads: Sequence[Any], token: CancellationToken = None) -> MutationReport:
        """
        Edit existing entities of one kind.

        Networks and analyses built on edited nodes, edges or node collections
        are deleted before each chunk of edits is written.

        Returns:
            Report of the accepted and rejected items and of the invalidated snapshots
        """
        kind = _kind(kind)
        builder = self._builder(kind)
        items = parse_payloads(PAYLOADS_BY_KIND[kind], payloads)
        builder.check_duplicates(items)
        token = ensure_token(token)
        report = MutationReport(kind=kind.value, operation=MutationOperation.EDIT.value, requested=len(items))

        def prepare(session: Session, chunk: Sequence[Any], offset: int) -> List[Draft]:
            drafts = builder.build_for_edit(session, chunk, offset, report)
            if drafts and kind in INVALIDATION_CHAINS:
                # Runs to completion so no snapshot outlives the edit it depends on
                self._orchestrator.invalidate(kind, [draft.id for draft in drafts], report=report)
            return drafts

        def apply(session: Session, draft: Draft) -> bool:
            applied = builder.apply_edit(session, draft)
            if applied:
                report.accepted_ids.append(draft.id)
            return applied

        self._mutator.edit(self._session_factory, items, apply, token, prepare=prepare)
        report.cancelled = token.is_cancelled
        logger.info(
            f"Edited {report.accepted} of {report.requested} {kind.value} items"
            f"{' (cancelled)' if report.cancelled else ''}"
        )
        if report.accepted_ids:
            event_publisher.publish(EntitiesEdited(
                event_id="",
                timestamp=None,
                aggregate_id=report.accepted_ids[0],
                kind=kind.value,
                entity_ids=list(report.accepted_ids),
            ))
        self._publish_rejections(report)
        return report

    def delete(self, kind: Any, ids: Sequence[str], token: CancellationToken = None) -> MutationReport:
        """
        Delete entities of one kind together with everything built on them.

        Returns:
            Report with the number of entities deleted per layer
        """
        kind = _kind(kind)
        if ids is None:
            raise InvalidArgumentError("No ids were provided to delete.")
        ids = list(dict.fromkeys(ids))
        report = self._orchestrator.delete(kind, ids, ensure_token(token))
        logger.info(
            f"Deleted {report.deleted.get(kind.value, 0)} of {len(ids)} {kind.value} entities"
            f"{' (cancelled)' if report.cancelled else ''}"
        )
        return report

    def delete_database_users(
        self,
        database_ids: Sequence[str],
        user_ids: Sequence[str],
        token: CancellationToken = None,
    ) -> MutationReport:
        """
        Revoke the access of users to private databases.

        The two lists are read pairwise: the n-th user loses access to the
        n-th database. Pairs are deleted in batches, one commit per batch.

        Raises:
            InvalidArgumentError: If either list is missing or their lengths differ
        """
        if database_ids is None or user_ids is None:
            raise InvalidArgumentError("No database and user ids were provided.")
        if len(database_ids) != len(user_ids):
            raise InvalidArgumentError(
                f"Got {len(database_ids)} database ids but {len(user_ids)} user ids; they must pair up."
            )
        token = ensure_token(token)
        kind = EntityKind.DATABASE_USER.value
        pairs = list(dict.fromkeys(zip(database_ids, user_ids)))
        report = MutationReport(kind=kind, operation=MutationOperation.DELETE.value, requested=len(pairs))
        size = self._mutator.batch_size
        for offset in range(0, len(pairs), size):
            if token.is_cancelled:
                report.cancelled = True
                break
            chunk = pairs[offset:offset + size]
            with session_scope(self._session_factory) as session:
                query = session.query(DatabaseUser).filter(or_(*(
                    and_(DatabaseUser.database_id == database_id, DatabaseUser.user_id == user_id)
                    for database_id, user_id in chunk
                )))
                report.record_deleted(kind, self._mutator.delete(session, query, batch_size=len(chunk)))
        deleted = report.deleted.get(kind, 0)
        logger.info(
            f"Deleted {deleted} of {len(pairs)} {kind} entities{' (cancelled)' if report.cancelled else ''}"
        )
        if deleted:
            event_publisher.publish(EntitiesDeleted(
                event_id="",
                timestamp=None,
                aggregate_id=",".join(database_id for database_id, _ in pairs[:10]),
                kind=kind,
                root_kind=kind,
                count=deleted,
            ))
        return report

    def delete_related_entities(
        self,
        model: type,
        capability: type,
        parent_ids: Sequence[str],
        token: CancellationToken = None,
    ) -> int:
        """Delete, in batches, the ``model`` rows depending on the given parents through ``capability``."""
        return self._orchestrator.delete_related_entities(model, capability, parent_ids, ensure_token(token))

    def store_control_paths(
        self,
        analysis_id: str,
        paths: Sequence[Any],
        token: CancellationToken = None,
    ) -> MutationReport:
        """
        Store control paths produced for an analysis.

        Raises:
            NotFoundError: If the analysis does not exist
            ValidationError: If the analysis is not in a state that holds results
        """
        with session_scope(self._session_factory) as session:
            analysis = session.get(Analysis, analysis_id)
            if analysis is None:
                raise NotFoundError(f"Analysis {analysis_id} not found")
            if AnalysisStatus(analysis.status) not in RESULT_BEARING_STATUSES:
                raise ValidationError(f"Analysis {analysis_id} in status {analysis.status} cannot hold control paths")
        builder = ControlPathBuilder(analysis_id)
        items = parse_payloads(ControlPathPayload, paths)
        builder.check_duplicates(items)
        return self._create_with(builder, items, ensure_token(token))

    def transition_analysis(self, analysis_id: str, status: Any, message: str = None) -> str:
        """
        Move an analysis to a new status and record the change in its log.

        Returns:
            The new status

        Raises:
            NotFoundError: If the analysis does not exist
            InvalidTransitionError: If the current status cannot reach the new one
        """
        try:
            target = AnalysisStatus(status)
        except ValueError:
            raise InvalidArgumentError(f"Unknown analysis status: {status}") from None
        with session_scope(self._session_factory) as session:
            analysis = session.get(Analysis, analysis_id)
            if analysis is None:
                raise NotFoundError(f"Analysis {analysis_id} not found")
            current = AnalysisStatus(analysis.status)
            if not can_transition(current, target):
                raise InvalidTransitionError(
                    f"Analysis {analysis_id} cannot move from {current.value} to {target.value}"
                )
            now = datetime.datetime.utcnow()
            if target == AnalysisStatus.ONGOING:
                analysis.started_at = now
            if target in (AnalysisStatus.COMPLETED, AnalysisStatus.STOPPED, AnalysisStatus.ERROR):
                analysis.ended_at = now
            analysis.status = target.value
            analysis.log = list(analysis.log or []) + [
                log_entry(message or f"Analysis status changed to {target.value}.")
            ]
            session.commit()
        event_publisher.publish(AnalysisStatusChanged(
            event_id="",
            timestamp=None,
            aggregate_id=analysis_id,
            previous_status=current.value,
            status=target.value,
        ))
        return target.value

    def _publish_rejections(self, report: MutationReport) -> None:
        if not report.rejections:
            return
        for rejection in report.rejections:
            logger.info(
                f"Rejected {report.kind} item {rejection.index}"
                f"{f' ({rejection.item_id})' if rejection.item_id else ''}: {rejection.reason}"
            )
        event_publisher.publish(PayloadsRejected(
            event_id="",
            timestamp=None,
            aggregate_id=report.kind,
            kind=report.kind,
            operation=report.operation,
            reasons={str(rejection.item_id or rejection.index): rejection.reason for rejection in report.rejections},
        ))
