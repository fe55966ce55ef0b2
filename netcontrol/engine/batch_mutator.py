"""Chunked create, edit and delete of one entity type."""
from __future__ import annotations

import logging
import math
from typing import Any, Callable, List, Optional, Sequence

from sqlalchemy.orm import Query, Session, sessionmaker

from netcontrol.config import settings
from netcontrol.db.database import session_scope
from netcontrol.domain.errors import InvalidArgumentError
from netcontrol.engine.cancellation import CancellationToken, ensure_token

logger = logging.getLogger(__name__)

# Turns a chunk of raw items into the entities (or edit plans) to persist
Prepare = Callable[[Session, Sequence[Any], int], List[Any]]


class BatchMutator:
    """
    Persist a homogeneous collection in fixed-size chunks.

    Creates and edits open a fresh persistence context for every chunk and
    commit it on its own, so no chunk sees entities tracked by an earlier
    one. The cancellation token is checked before each chunk, so a cancelled
    run keeps every chunk committed before the request and nothing after it.
    """

    def __init__(self, batch_size: int = None):
        self.batch_size = batch_size or settings.BATCH_SIZE

    def _chunk_size(self, batch_size: Optional[int]) -> int:
        size = batch_size or self.batch_size
        if size < 1:
            raise InvalidArgumentError(f"Batch size must be positive, got {size}.")
        return size

    def create(
        self,
        session_factory: sessionmaker,
        items: Optional[Sequence[Any]],
        token: CancellationToken = None,
        batch_size: int = None,
        prepare: Prepare = None,
    ) -> int:
        """
        Add items to the store chunk by chunk.

        Args:
            session_factory: Factory of the persistence context opened for each chunk
            items: Entities to add, or raw items turned into entities by ``prepare``
            token: Cancellation token checked before each chunk
            batch_size: Chunk size (the configured size by default)
            prepare: Optional callable building the entities of one chunk

        Returns:
            Number of entities committed
        """
        if items is None:
            raise InvalidArgumentError("No items were provided to create.")
        size = self._chunk_size(batch_size)
        token = ensure_token(token)
        items = list(items)
        committed = 0
        for offset in range(0, len(items), size):
            if token.is_cancelled:
                logger.info(f"Create cancelled with {committed} entities committed")
                break
            chunk = items[offset:offset + size]
            with session_scope(session_factory) as session:
                entities = prepare(session, chunk, offset) if prepare else chunk
                if not entities:
                    continue
                session.add_all(entities)
                session.commit()
            committed += len(entities)
            logger.debug(f"Committed {len(entities)} new entities (chunk at {offset})")
        return committed

    def edit(
        self,
        session_factory: sessionmaker,
        items: Optional[Sequence[Any]],
        apply: Callable[[Session, Any], bool],
        token: CancellationToken = None,
        batch_size: int = None,
        prepare: Prepare = None,
    ) -> int:
        """
        Apply edits chunk by chunk, each in its own persistence context.

        ``apply`` writes one item onto its tracked entity and returns whether
        the entity still existed.

        Returns:
            Number of entities updated
        """
        if items is None:
            raise InvalidArgumentError("No items were provided to edit.")
        size = self._chunk_size(batch_size)
        token = ensure_token(token)
        items = list(items)
        committed = 0
        for offset in range(0, len(items), size):
            if token.is_cancelled:
                logger.info(f"Edit cancelled with {committed} entities updated")
                break
            chunk = items[offset:offset + size]
            with session_scope(session_factory) as session:
                plans = prepare(session, chunk, offset) if prepare else chunk
                if not plans:
                    continue
                applied = sum(1 for plan in plans if apply(session, plan))
                session.commit()
            committed += applied
            logger.debug(f"Committed {applied} edited entities (chunk at {offset})")
        return committed

    def delete(
        self,
        session: Session,
        query: Optional[Query],
        token: CancellationToken = None,
        batch_size: int = None,
    ) -> int:
        """
        Delete the entities matched by ``query`` chunk by chunk.

        The number of chunks is fixed from the initial count. Each chunk takes
        the first ``batch_size`` rows the query matches at that moment, so rows
        removed meanwhile by other writers are simply not seen again.

        Returns:
            Number of entities deleted
        """
        if query is None:
            raise InvalidArgumentError("No items were provided to delete.")
        size = self._chunk_size(batch_size)
        token = ensure_token(token)
        total = query.count()
        chunks = math.ceil(total / size)
        deleted = 0
        for index in range(chunks):
            if token.is_cancelled:
                logger.info(f"Delete cancelled with {deleted} of {total} entities deleted")
                break
            chunk = query.limit(size).all()
            if not chunk:
                continue
            for entity in chunk:
                session.delete(entity)
            session.commit()
            deleted += len(chunk)
            logger.debug(f"Deleted chunk {index + 1}/{chunks} ({len(chunk)} entities)")
        return deleted
