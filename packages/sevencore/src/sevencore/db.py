import functools

from sqlalchemy import JSON, create_engine
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from sevencore.settings import get_settings

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON on other backends (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def engine_options(database_url: str) -> dict:
    """Pool options per backend. SQLite has no server-side pool to size."""
    settings = get_settings()
    options = {"echo": settings.DB_ECHO, "pool_pre_ping": True}
    if make_url(database_url).get_backend_name() == "sqlite":
        options["connect_args"] = {"check_same_thread": False}
    else:
        options["pool_size"] = settings.DB_POOL_SIZE
        options["max_overflow"] = settings.DB_MAX_OVERFLOW
    return options


@functools.lru_cache()
def get_engine():
    """Engine for DATABASE_URL, created on first use."""
    url = get_settings().DATABASE_URL
    return create_engine(url, **engine_options(url))


@functools.lru_cache()
def get_sessionmaker():
    return sessionmaker(autoflush=False, bind=get_engine())


def get_db():
    """
    Yield a session and close it afterwards.

    Works as a FastAPI dependency; workers and CLI commands use `next(get_db())`
    and close the session themselves.
    """
    db: Session = get_sessionmaker()()
    try:
        yield db
    finally:
        db.close()
