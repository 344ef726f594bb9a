from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from league_export.db.base import Base


@dataclass(frozen=True)
class DatabaseConfig:
    database_url: str
    echo: bool = False


def _is_sqlite_memory(url: str) -> bool:
    return url.startswith("sqlite") and (":memory:" in url or url.rstrip("/").endswith(":"))


def create_db_engine(cfg: DatabaseConfig) -> Engine:
    if _is_sqlite_memory(cfg.database_url):
        # One shared connection, otherwise every session sees its own empty DB.
        return create_engine(
            cfg.database_url,
            echo=cfg.echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(cfg.database_url, echo=cfg.echo, pool_pre_ping=True)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def ensure_schema(engine: Engine) -> None:
    """Create missing tables. Alembic owns real migrations; this covers fresh local DBs."""
    import league_export.db.models  # noqa: F401

    Base.metadata.create_all(engine)
