"""Paged, live lookup of the entities depending on a set of entities."""
from __future__ import annotations

import logging
import math
from typing import Iterator, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from netcontrol.config import settings
from netcontrol.db.database import session_scope
from netcontrol.db.models import MODELS_BY_KIND
from netcontrol.domain.enumerations import EntityKind
from netcontrol.domain.errors import InvalidArgumentError
from netcontrol.engine.cancellation import CancellationToken, ensure_token
from netcontrol.engine.dependency_graph import DependencyQuery, dependency_query

logger = logging.getLogger(__name__)


class DependentPages:
    """
    Restartable sequence of pages of dependent ids.

    Iterating counts the dependents once to fix the expected number of pages,
    then fetches each page from the live store, ordered by id and starting
    after the last id already returned. Pages that come back empty before the
    expected count is reached are skipped. Once the expected pages are used up,
    fetching continues until a page is empty, so dependents added while the
    iteration runs are still returned. Every page is fetched in its own
    persistence context.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        target_kind: EntityKind,
        query: DependencyQuery,
        source_ids: Sequence[str],
        page_size: int,
        token: CancellationToken,
    ):
        self._session_factory = session_factory
        self._model = MODELS_BY_KIND[target_kind]
        self._query = query
        self._source_ids = list(source_ids)
        self._page_size = page_size
        self._token = token
        self.target_kind = target_kind

    def count(self) -> int:
        """Number of dependents in the store right now."""
        with session_scope(self._session_factory) as session:
            statement = select(func.count()).select_from(self._query(self._source_ids).subquery())
            return session.execute(statement).scalar() or 0

    def _fetch(self, after: Optional[str]) -> List[str]:
        statement = self._query(self._source_ids)
        if after is not None:
            statement = statement.where(self._model.id > after)
        statement = statement.order_by(self._model.id).limit(self._page_size)
        with session_scope(self._session_factory) as session:
            return list(session.execute(statement).scalars().all())

    def __iter__(self) -> Iterator[List[str]]:
        expected_pages = math.ceil(self.count() / self._page_size)
        last_id = None
        fetched = 0
        while True:
            if self._token.is_cancelled:
                logger.info(f"Stopped resolving {self.target_kind.value} dependents on cancellation")
                return
            page = self._fetch(last_id)
            fetched += 1
            if not page:
                if fetched >= expected_pages:
                    return
                continue
            if fetched > expected_pages:
                logger.debug(f"Found {len(page)} {self.target_kind.value} dependents beyond the initial count")
            last_id = page[-1]
            yield page

    def all_ids(self) -> List[str]:
        """Collect every page into one list (for small result sets and tests)."""
        return [item for page in self for item in page]


class DependencyResolver:
    """Find, page by page, the entities of one kind built on entities of another."""

    def __init__(self, session_factory: sessionmaker, page_size: int = None):
        self._session_factory = session_factory
        self.page_size = page_size or settings.PAGE_SIZE

    def find_dependents(
        self,
        source_kind: EntityKind,
        target_kind: EntityKind,
        source_ids: Sequence[str],
        page_size: int = None,
        token: CancellationToken = None,
    ) -> DependentPages:
        """
        Resolve the ``target_kind`` entities referencing the given source ids.

        Args:
            source_kind: Kind of the entities being deleted or edited
            target_kind: Kind of the dependents to find
            source_ids: Ids of the source entities
            page_size: Number of ids per page (the configured size by default)
            token: Cancellation token checked between pages

        Returns:
            Restartable iterable of pages of distinct dependent ids
        """
        if source_ids is None:
            raise InvalidArgumentError("No source ids were provided.")
        size = page_size or self.page_size
        if size < 1:
            raise InvalidArgumentError(f"Page size must be positive, got {size}.")
        try:
            query = dependency_query(EntityKind(source_kind), EntityKind(target_kind))
        except (KeyError, ValueError) as e:
            raise InvalidArgumentError(str(e)) from e
        return DependentPages(
            self._session_factory,
            EntityKind(target_kind),
            query,
            source_ids,
            size,
            ensure_token(token),
        )
