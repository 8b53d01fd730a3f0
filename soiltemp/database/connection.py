"""
SQLAlchemy engine and session factory.

Usage:
    from soiltemp.database.connection import SessionLocal, init_db

    init_db()
    with SessionLocal() as session:
        ...
"""

from collections.abc import Iterator
from datetime import datetime, timezone
from functools import lru_cache

from loguru import logger
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from config.settings.app_config import get_settings

Base = declarative_base()


def utc_now() -> datetime:
    """Current UTC time, naive, for the timezone-less DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def build_engine(url: str, echo: bool = False) -> Engine:
    """
    Create an engine for ``url``.

    SQLite connections are shared across worker threads (the sync service
    runs store calls through asyncio.to_thread).
    """
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(
        url, echo=echo, future=True, connect_args=connect_args
    )
    logger.debug(f"Database engine created ({engine.dialect.name})")
    return engine


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    """Process-wide engine built from settings."""
    db = get_settings().database
    return build_engine(db.url, echo=db.echo)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def SessionLocal() -> Session:
    """New session bound to the process-wide engine."""
    return make_session_factory(get_engine())()


def get_db() -> Iterator[Session]:
    """Yield a session and close it afterwards (dependency style)."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(engine: Engine | None = None) -> None:
    """Create all tables known to ``Base`` (development and tests)."""
    # Register models on Base.metadata
    import soiltemp.database.models  # noqa: F401

    engine = engine or get_engine()
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")
