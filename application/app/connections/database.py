"""
SQLAlchemy ORM Database Configuration
Lets SQLAlchemy manage connections internally with built-in pooling.
The user directory is the only relational store; sessions are handed to the
repository through a sessionmaker so tests can bind an in-memory SQLite engine.
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool
from contextlib import contextmanager
from typing import Iterator


# Logger
from app.logging.utils import get_app_logger
logger = get_app_logger("database")

# Settings
from app.config.settings import AuthConfigs
configs = AuthConfigs()

# Base class for ORM models
Base = declarative_base()


def normalize_url(database_url: str) -> str:
    # Convert postgresql:// to postgresql+psycopg:// for psycopg3 driver
    if database_url and database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+psycopg://", 1)
    return database_url


def build_engine(database_url: str | None = None) -> Engine:
    """Create an engine for the given URL (defaults to DATABASE_URL)."""
    url = normalize_url(database_url or configs.DATABASE_URL)

    if url.startswith("sqlite"):
        # In-memory SQLite must share one connection across threads
        return create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=False,
        )

    engine = create_engine(
        url,
        poolclass=QueuePool,
        pool_size=10,           # Number of connections to maintain in pool
        max_overflow=20,        # Additional connections beyond pool_size
        pool_pre_ping=True,     # Validate connections before use
        pool_recycle=3600,      # Recycle connections after 1 hour
        echo=False,
        connect_args={
            "keepalives_idle": 600,
            "keepalives_interval": 30,
            "keepalives_count": 3
        }
    )
    logger.info("SQLAlchemy engine initialized with built-in connection pooling")
    return engine


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def create_tables(engine: Engine) -> None:
    # Import models so they register on Base.metadata
    from app.models import user  # noqa: F401
    Base.metadata.create_all(bind=engine)
    logger.info("create_tables | users table ensured")


@contextmanager
def get_db_session(session_factory: sessionmaker, read_only: bool = False) -> Iterator[Session]:
    """
    Get database session for operations with transaction management.

    Args:
        session_factory: sessionmaker bound to the directory engine
        read_only: Skip the commit when True

    Yields:
        SQLAlchemy session object
    """
    db = session_factory()
    try:
        yield db
        if not read_only:
            db.commit()
    except Exception:
        if not read_only:
            db.rollback()
        raise
    finally:
        db.close()


def close_db_pool(engine: Engine) -> None:
    engine.dispose()
