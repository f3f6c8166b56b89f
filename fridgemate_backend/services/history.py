"""Durable snapshots of recognition events."""

from __future__ import annotations

import uuid
from typing import Any, Mapping, TypedDict

from fridgemate_backend.services.inventory import utc_now_iso
from fridgemate_backend.services.kv_store import KeyValueStore
from fridgemate_backend.services.normalization import ObservationBatch, parse_quantity

HISTORY_PREFIX = "ingredient:"
DEFAULT_RECENT_LIMIT = 10
MAX_RECENT_LIMIT = 100


class HistoryRecord(TypedDict):
    """One saved recognition result; immutable once written."""

    id: str
    imageData: str
    ingredientData: ObservationBatch
    timestamp: str | None
    createdAt: str


def as_observation_batch(data: Mapping[str, Any]) -> ObservationBatch:
    """Return ``data`` in batch shape.

    Older records hold one bare observation and a ``_warning`` key; they
    are wrapped into a single-item batch.
    """

    if isinstance(data.get("ingredients"), list):
        ingredients = list(data["ingredients"])
        batch: ObservationBatch = {
            "ingredients": ingredients,
            "totalCount": sum(
                parse_quantity(item.get("quantity"))
                for item in ingredients
                if isinstance(item, Mapping)
            ),
        }
    else:
        single = {key: value for key, value in data.items() if key != "_warning"}
        batch = {
            "ingredients": [single],  # type: ignore[list-item]
            "totalCount": parse_quantity(single.get("quantity")),
        }

    warning = data.get("warning") or data.get("_warning")
    if isinstance(warning, str) and warning:
        batch["warning"] = warning
    return batch


def _as_record(value: Mapping[str, Any]) -> HistoryRecord:
    record: HistoryRecord = dict(value)  # type: ignore[assignment]
    ingredient_data = value.get("ingredientData")
    if isinstance(ingredient_data, Mapping):
        record["ingredientData"] = as_observation_batch(ingredient_data)
    return record


class HistoryRepository:
    """History records stored one per key under ``ingredient:<id>``."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def create(
        self,
        *,
        image_data: str,
        ingredient_data: Mapping[str, Any],
        timestamp: str | None = None,
    ) -> HistoryRecord:
        record: HistoryRecord = {
            "id": str(uuid.uuid4()),
            "imageData": image_data,
            "ingredientData": as_observation_batch(ingredient_data),
            "timestamp": timestamp,
            "createdAt": utc_now_iso(),
        }
        self._store.set(f"{HISTORY_PREFIX}{record['id']}", record)
        return record

    def list_recent(self, limit: int = DEFAULT_RECENT_LIMIT) -> list[HistoryRecord]:
        """Newest records first, ordered by the server-assigned ``createdAt``."""

        records = [
            _as_record(value)
            for value in self._store.get_by_prefix(HISTORY_PREFIX)
            if isinstance(value, Mapping)
        ]
        records.sort(key=lambda record: record.get("createdAt") or "", reverse=True)
        return records[:limit]

    def get(self, record_id: str) -> HistoryRecord | None:
        value = self._store.get(f"{HISTORY_PREFIX}{record_id}")
        if not isinstance(value, Mapping):
            return None
        return _as_record(value)

    def delete(self, record_id: str) -> bool:
        """Delete one record. The fridge inventory is never touched."""

        return self._store.delete(f"{HISTORY_PREFIX}{record_id}")
