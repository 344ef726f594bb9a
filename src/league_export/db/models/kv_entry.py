from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from league_export.db.base import Base, TimestampMixin


class KeyValueEntry(Base, TimestampMixin):
    """Small persisted record: last fetch, sync target. Last write wins."""

    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(120), primary_key=True)
    value_json: Mapped[Any] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        nullable=True,
    )
