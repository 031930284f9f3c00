"""Process-wide SQLAlchemy engine and session factory."""
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker
from starshelf.config import get_settings


def build_engine(url: str) -> Engine:
    if make_url(url).get_backend_name() == "sqlite":
        # typer and asyncio.run may hand a pooled connection to another thread
        return create_engine(url, connect_args={"check_same_thread": False}, future=True)
    return create_engine(url, pool_pre_ping=True, future=True)


_ENGINE = build_engine(get_settings().db_url)
SessionLocal = sessionmaker(bind=_ENGINE, autoflush=False, future=True)


def engine() -> Engine:
    return _ENGINE


def dialect_name() -> str:
    """``"postgresql"`` in production, ``"sqlite"`` for tests and local use."""
    return _ENGINE.dialect.name
