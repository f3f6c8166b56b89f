"""SQLAlchemy models for FridgeMate."""

from __future__ import annotations

import os
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base shared by all FridgeMate tables."""


class TimestampMixin:
    """Mixin that provides automatic creation and update timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class KeyValueEntry(TimestampMixin, Base):
    """A single JSON document addressed by a string key.

    History records live under ``ingredient:<id>`` and the whole fridge
    inventory lives under one well-known key.
    """

    __tablename__ = "kv_store"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[Any] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False
    )


def get_database_url() -> str:
    """Return the configured database URL."""

    database_url = os.environ.get("FRIDGEMATE_DATABASE_URL") or os.environ.get(
        "DATABASE_URL"
    )
    if not database_url:
        raise RuntimeError("DATABASE_URL environment variable is not set")

    return normalize_database_url(database_url)


def normalize_database_url(database_url: str) -> str:
    """Point common Postgres URL forms at the installed psycopg v3 driver."""

    if database_url.startswith("postgres://"):
        return "postgresql+psycopg://" + database_url[len("postgres://") :]
    if database_url.startswith("postgresql://"):
        return "postgresql+psycopg://" + database_url[len("postgresql://") :]
    if database_url.startswith("postgresql+psycopg2://"):
        return (
            "postgresql+psycopg://"
            + database_url[len("postgresql+psycopg2://") :]
        )

    return database_url
