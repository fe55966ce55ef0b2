from contextlib import contextmanager
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
import logging

from netcontrol.config import settings

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE CASCADE unless enforcement is switched on per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(database_url: str = None) -> Engine:
    """
    Create an engine for the given URL (the configured one by default).

    Args:
        database_url: SQLAlchemy database URL

    Returns:
        Engine with foreign-key enforcement enabled
    """
    url = str(database_url or settings.DATABASE_URL)
    engine = create_engine(url)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    logger.debug(f"Created engine for dialect {engine.dialect.name}")
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """Create the session factory every mutation step opens its persistence context from."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


_session_factory = None


def get_session_factory() -> sessionmaker:
    """Return the process-wide session factory, creating the engine on first use."""
    global _session_factory
    if _session_factory is None:
        _session_factory = create_session_factory(create_db_engine())
    return _session_factory


@contextmanager
def session_scope(session_factory: sessionmaker):
    """
    Open one persistence context for a batch step.

    Uncommitted work is rolled back if the block raises; the session is
    always closed on exit.
    """
    session: Session = session_factory()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
