from league_export.db.base import Base
from league_export.db.engine import (
    DatabaseConfig,
    create_db_engine,
    create_session_factory,
    ensure_schema,
)

__all__ = [
    "Base",
    "DatabaseConfig",
    "create_db_engine",
    "create_session_factory",
    "ensure_schema",
]
