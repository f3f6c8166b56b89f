"""Key-value document store backed by a single SQL table."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from fridgemate_backend.models import KeyValueEntry

logger = logging.getLogger(__name__)


class KeyValueStoreError(RuntimeError):
    """Raised when the backing database cannot be read or written."""


class KeyValueStore:
    """get/set/delete-by-key plus prefix scans over JSON documents.

    Every call runs in its own short session. There are no multi-key
    transactions: callers doing read-modify-write on one key can lose
    updates when two requests race.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def get(self, key: str) -> Any | None:
        session: Session = self._session_factory()
        try:
            entry = session.get(KeyValueEntry, key)
            return None if entry is None else entry.value
        except SQLAlchemyError as exc:
            logger.exception("failed to read key", extra={"key": key})
            raise KeyValueStoreError(f"failed to read {key!r}") from exc
        finally:
            session.close()

    def set(self, key: str, value: Any) -> None:
        session: Session = self._session_factory()
        try:
            entry = session.get(KeyValueEntry, key)
            if entry is None:
                session.add(KeyValueEntry(key=key, value=value))
            else:
                entry.value = value
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("failed to write key", extra={"key": key})
            raise KeyValueStoreError(f"failed to write {key!r}") from exc
        finally:
            session.close()

    def delete(self, key: str) -> bool:
        """Remove ``key``; return ``False`` when it did not exist."""

        session: Session = self._session_factory()
        try:
            entry = session.get(KeyValueEntry, key)
            if entry is None:
                return False
            session.delete(entry)
            session.commit()
            return True
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("failed to delete key", extra={"key": key})
            raise KeyValueStoreError(f"failed to delete {key!r}") from exc
        finally:
            session.close()

    def get_by_prefix(self, prefix: str) -> list[Any]:
        """Return the values of every key starting with ``prefix``."""

        session: Session = self._session_factory()
        try:
            rows = (
                session.execute(
                    select(KeyValueEntry.value)
                    .where(KeyValueEntry.key.startswith(prefix, autoescape=True))
                    .order_by(KeyValueEntry.key)
                )
                .scalars()
                .all()
            )
            return list(rows)
        except SQLAlchemyError as exc:
            logger.exception("failed to scan prefix", extra={"prefix": prefix})
            raise KeyValueStoreError(f"failed to scan {prefix!r}") from exc
        finally:
            session.close()


def init_kv_store(session_factory: sessionmaker) -> KeyValueStore:
    """Factory to mirror the init_* pattern used across services."""

    return KeyValueStore(session_factory)
