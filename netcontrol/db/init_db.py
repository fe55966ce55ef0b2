"""
Database initialization utilities.
"""
import logging
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from netcontrol.db.database import create_db_engine
from netcontrol.db.models import Base, DatabaseType
from netcontrol.config import settings, get_db_components

logger = logging.getLogger(__name__)


def create_database_if_not_exists():
    """Create the PostgreSQL database if it doesn't exist."""
    db_components = get_db_components()
    db_name = db_components["db_name"]
    db_url_without_name = db_components["db_url_without_name"]

    engine = create_engine(db_url_without_name, isolation_level="AUTOCOMMIT")

    with engine.connect() as conn:
        # Check if database exists
        result = conn.execute(
            text("SELECT 1 FROM pg_database WHERE datname = :db_name"),
            {"db_name": db_name}
        )

        if not result.fetchone():
            logger.info(f"Creating database: {db_name}")
            # Database names cannot be parameterized; db_name is validated by get_db_components()
            conn.execute(text(f'CREATE DATABASE "{db_name}"'))
            logger.info(f"Database {db_name} created successfully")
        else:
            logger.info(f"Database {db_name} already exists")

    engine.dispose()


def create_tables(engine: Engine):
    """Create all tables defined in models."""
    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("All tables created successfully")


def drop_all_tables(engine: Engine):
    """Drop all tables (useful for testing)."""
    logger.info("Dropping all database tables...")
    Base.metadata.drop_all(bind=engine)
    logger.info("All tables dropped successfully")


def seed_generic_database_type(engine: Engine) -> DatabaseType:
    """
    Ensure the database type marking ad hoc (generic) data exists.

    Returns:
        The generic database type
    """
    with Session(engine) as session:
        generic = (
            session.query(DatabaseType)
            .filter(DatabaseType.name == settings.GENERIC_DATABASE_TYPE)
            .first()
        )
        if generic is None:
            generic = DatabaseType(
                name=settings.GENERIC_DATABASE_TYPE,
                description="Type of databases holding user-provided network data.",
            )
            session.add(generic)
            session.commit()
            logger.info(f"Seeded database type {generic.name}")
        session.refresh(generic)
        session.expunge(generic)
        return generic


def reset_database(engine: Engine):
    """Drop and recreate all tables."""
    logger.info("Resetting database...")
    drop_all_tables(engine)
    create_tables(engine)
    seed_generic_database_type(engine)
    logger.info("Database reset complete")


def init_database(engine: Engine = None):
    """Complete database initialization."""
    logger.info("Initializing database...")
    if engine is None:
        if settings.DATABASE_URL.startswith("postgresql"):
            create_database_if_not_exists()
        engine = create_db_engine()
    create_tables(engine)
    seed_generic_database_type(engine)
    logger.info("Database initialization complete")
    return engine


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_database()
