"""Ordered, top-down deletion of everything built on a set of entities."""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Sequence, Tuple

from sqlalchemy.orm import sessionmaker

from netcontrol.db.database import session_scope
from netcontrol.db.models import MODELS_BY_KIND, AnalysisUser, DatabaseUser, NetworkUser, UserRole
from netcontrol.domain.capabilities import DependentCapability, RoleDependent, UserDependent
from netcontrol.domain.entities import MutationReport
from netcontrol.domain.enumerations import EntityKind, MutationOperation
from netcontrol.domain.errors import InvalidArgumentError
from netcontrol.domain.events import EntitiesDeleted, event_publisher
from netcontrol.engine.batch_mutator import BatchMutator
from netcontrol.engine.cancellation import CancellationToken, ensure_token
from netcontrol.engine.dependency_resolver import DependencyResolver

logger = logging.getLogger(__name__)

K = EntityKind

# Layers deleted for each root kind, first to last. The root kind follows every layer
# built on it; only the elements generated for generic networks come after their networks.
CASCADE_CHAINS: Dict[EntityKind, List[EntityKind]] = {
    K.DATABASE_TYPE: [
        K.ANALYSIS, K.NETWORK, K.NODE_COLLECTION, K.EDGE, K.NODE,
        K.DATABASE_EDGE_FIELD, K.DATABASE_NODE_FIELD, K.DATABASE, K.DATABASE_TYPE,
    ],
    K.DATABASE: [
        K.ANALYSIS, K.NETWORK, K.NODE_COLLECTION, K.EDGE, K.NODE,
        K.DATABASE_EDGE_FIELD, K.DATABASE_NODE_FIELD, K.DATABASE,
    ],
    K.DATABASE_NODE_FIELD: [
        K.ANALYSIS, K.NETWORK, K.NODE_COLLECTION, K.EDGE, K.NODE, K.DATABASE_NODE_FIELD,
    ],
    K.DATABASE_EDGE_FIELD: [K.ANALYSIS, K.NETWORK, K.EDGE, K.DATABASE_EDGE_FIELD],
    K.NODE: [K.ANALYSIS, K.NETWORK, K.NODE_COLLECTION, K.EDGE, K.NODE],
    K.EDGE: [K.ANALYSIS, K.NETWORK, K.EDGE],
    K.NODE_COLLECTION: [K.ANALYSIS, K.NETWORK, K.NODE_COLLECTION],
    K.USER: [K.ANALYSIS, K.NETWORK, K.EDGE, K.NODE, K.USER],
    K.NETWORK: [K.ANALYSIS, K.NETWORK, K.EDGE, K.NODE],
    K.ANALYSIS: [K.CONTROL_PATH, K.ANALYSIS],
    K.CONTROL_PATH: [K.CONTROL_PATH],
    K.ROLE: [K.ROLE],
}

# Layers found through the networks of the root, so resolved before those networks go.
# Their pages are then read from the resolved ids alone.
RESOLVED_UPFRONT: Dict[EntityKind, List[EntityKind]] = {
    K.USER: [K.EDGE, K.NODE],
    K.NETWORK: [K.EDGE, K.NODE],
}

# Snapshots built on an edited kind, deleted before the edit is applied.
INVALIDATION_CHAINS: Dict[EntityKind, List[EntityKind]] = {
    K.NODE: [K.ANALYSIS, K.NETWORK],
    K.EDGE: [K.ANALYSIS, K.NETWORK],
    K.NODE_COLLECTION: [K.ANALYSIS, K.NETWORK],
}

# Rows removed in their own batches before a page of the kind is deleted.
# Owned join rows of the other layers go in the same commit as their parent.
RELATED_ENTITIES: Dict[EntityKind, List[Tuple[type, type]]] = {
    K.USER: [
        (UserRole, UserDependent),
        (NetworkUser, UserDependent),
        (AnalysisUser, UserDependent),
        (DatabaseUser, UserDependent),
    ],
    K.ROLE: [(UserRole, RoleDependent)],
}


class CascadeOrchestrator:
    """
    Delete entities together with every entity built on them.

    Each chain is walked layer by layer from the top of the dataset down to
    the root kind, so no row ever references a row that is already gone.
    Within a layer, dependents are resolved page by page and each page is
    deleted in a single commit. An error aborts the rest of the chain; layers
    already deleted stay deleted.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        resolver: DependencyResolver = None,
        mutator: BatchMutator = None,
    ):
        self._session_factory = session_factory
        self._resolver = resolver or DependencyResolver(session_factory)
        self._mutator = mutator or BatchMutator()

    def delete(
        self,
        root_kind: EntityKind,
        ids: Sequence[str],
        token: CancellationToken = None,
        report: MutationReport = None,
    ) -> MutationReport:
        """
        Delete the given entities and everything built on them.

        Args:
            root_kind: Kind of the entities to delete
            ids: Ids of the entities to delete
            token: Cancellation token checked between pages and layers
            report: Report to record deletion counts on (a new one by default)

        Returns:
            Report with the number of entities deleted per layer
        """
        root_kind = EntityKind(root_kind)
        if ids is None:
            raise InvalidArgumentError("No ids were provided to delete.")
        if root_kind not in CASCADE_CHAINS:
            raise InvalidArgumentError(f"Entities of kind {root_kind.value} cannot be deleted.")
        report = report or MutationReport(kind=root_kind.value, operation=MutationOperation.DELETE.value)
        report.requested = report.requested or len(ids)
        self._run_chain(root_kind, CASCADE_CHAINS[root_kind], list(ids), ensure_token(token), report)
        return report

    def invalidate(
        self,
        kind: EntityKind,
        ids: Sequence[str],
        token: CancellationToken = None,
        report: MutationReport = None,
    ) -> MutationReport:
        """Delete the networks and analyses built on entities about to be edited."""
        kind = EntityKind(kind)
        report = report or MutationReport(kind=kind.value, operation=MutationOperation.EDIT.value)
        chain = INVALIDATION_CHAINS.get(kind)
        if chain and ids:
            self._run_chain(kind, chain, list(ids), ensure_token(token), report)
        return report

    def _run_chain(
        self,
        root_kind: EntityKind,
        chain: Iterable[EntityKind],
        ids: List[str],
        token: CancellationToken,
        report: MutationReport,
    ) -> None:
        chain = list(chain)
        resolved = {
            layer: self._resolver.find_dependents(root_kind, layer, ids, token=token).all_ids()
            for layer in RESOLVED_UPFRONT.get(root_kind, ())
            if layer in chain
        }
        for layer in chain:
            if token.is_cancelled:
                report.cancelled = True
                logger.info(f"Cascade from {root_kind.value} cancelled before the {layer.value} layer")
                return
            if layer in resolved:
                deleted = self._delete_layer(layer, layer, resolved[layer], token)
            else:
                deleted = self._delete_layer(root_kind, layer, ids, token)
            report.record_deleted(layer.value, deleted)
            if deleted:
                logger.info(f"Deleted {deleted} {layer.value} entities (cascade from {root_kind.value})")
                event_publisher.publish(EntitiesDeleted(
                    event_id="",
                    timestamp=None,
                    aggregate_id=",".join(ids[:10]),
                    kind=layer.value,
                    root_kind=root_kind.value,
                    count=deleted,
                ))
        if token.is_cancelled:
            report.cancelled = True

    def _delete_layer(
        self,
        root_kind: EntityKind,
        layer: EntityKind,
        ids: List[str],
        token: CancellationToken,
    ) -> int:
        model = MODELS_BY_KIND[layer]
        deleted = 0
        for page in self._resolver.find_dependents(root_kind, layer, ids, token=token):
            # A page is deleted whole once started
            for related_model, capability in RELATED_ENTITIES.get(layer, ()):
                self.delete_related_entities(related_model, capability, page)
            with session_scope(self._session_factory) as session:
                query = session.query(model).filter(model.id.in_(page))
                deleted += self._mutator.delete(session, query, batch_size=len(page))
        return deleted

    def delete_related_entities(
        self,
        model: type,
        capability: type,
        parent_ids: Sequence[str],
        token: CancellationToken = None,
    ) -> int:
        """
        Delete, in batches, the ``model`` rows that depend on the given parents.

        Args:
            model: Model of the dependent rows; must implement ``capability``
            capability: Marker naming which parent the rows depend on
            parent_ids: Ids of the parents
            token: Cancellation token checked between batches

        Returns:
            Number of rows deleted
        """
        if not (isinstance(capability, type) and issubclass(capability, DependentCapability)):
            raise InvalidArgumentError(f"{capability!r} is not a dependency capability.")
        if not (isinstance(model, type) and issubclass(model, capability)):
            raise InvalidArgumentError(
                f"{getattr(model, '__name__', model)} does not implement {capability.__name__}."
            )
        if parent_ids is None:
            raise InvalidArgumentError("No parent ids were provided.")
        parent_ids = list(parent_ids)
        if not parent_ids:
            return 0
        with session_scope(self._session_factory) as session:
            column = capability.parent_column(model)
            query = session.query(model).filter(column.in_(parent_ids))
            return self._mutator.delete(session, query, token=token)
