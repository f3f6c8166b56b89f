"""Helpers for working with the fridge inventory."""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, Callable, Iterable, Mapping, Protocol, TypedDict

from fridgemate_backend.services.kv_store import KeyValueStore, KeyValueStoreError
from fridgemate_backend.services.normalization import (
    parse_freshness,
    parse_quantity,
    string_list,
)

logger = logging.getLogger(__name__)

FRIDGE_KEY = "fridge:ingredients"


class FridgeItem(TypedDict):
    """One inventory slot; at most one per case-insensitive name."""

    id: str
    name: str
    quantity: int
    freshness: str
    storage: list[str]
    addedAt: str
    updatedAt: str
    expiryDate: str | None


class ReconciliationError(RuntimeError):
    """Raised when the merged inventory cannot be written back."""


class DuplicateFridgeItemError(ValueError):
    """Raised when a manual rename would collide with another item."""


class FridgeRepository(Protocol):
    """Whole-collection access to the inventory."""

    def get(self) -> list[FridgeItem]: ...

    def put(self, items: list[FridgeItem]) -> None: ...


class KeyValueFridgeRepository:
    """Stores the entire inventory as one document under ``FRIDGE_KEY``.

    Reads and writes are not coordinated: two merges racing on the same
    inventory can lose one of the updates.
    """

    def __init__(self, store: KeyValueStore, key: str = FRIDGE_KEY) -> None:
        self._store = store
        self._key = key

    def get(self) -> list[FridgeItem]:
        items = self._store.get(self._key)
        return list(items) if isinstance(items, list) else []

    def put(self, items: list[FridgeItem]) -> None:
        self._store.set(self._key, items)


def utc_now_iso() -> str:
    """Current instant as an ISO-8601 string with a ``Z`` suffix."""

    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def _name_key(name: str) -> str:
    return name.casefold()


def reconcile(
    existing: Iterable[FridgeItem],
    incoming: Iterable[Mapping[str, Any]],
    *,
    now: Callable[[], str] = utc_now_iso,
    new_id: Callable[[], str] = lambda: str(uuid.uuid4()),
) -> list[FridgeItem]:
    """Fold ``incoming`` observations into a copy of ``existing``.

    A name already present (case-insensitively) keeps its ``id`` and
    ``addedAt``, gains the incoming quantity and takes the incoming
    freshness and storage. Anything else is appended as a new item.
    Duplicate names within ``incoming`` merge into the entry created
    earlier in the same call.
    """

    items: list[FridgeItem] = [dict(item) for item in existing]  # type: ignore[misc]
    positions = {_name_key(item["name"]): index for index, item in enumerate(items)}

    for observation in incoming:
        name = str(observation.get("name") or "").strip()
        if not name:
            raise ValueError("ingredient name is required")
        quantity = parse_quantity(observation.get("quantity"))
        freshness = parse_freshness(observation.get("freshness"))
        storage = string_list(observation.get("storage"))
        timestamp = now()

        index = positions.get(_name_key(name))
        if index is not None:
            current = items[index]
            items[index] = {
                "id": current["id"],
                "name": name,
                "quantity": int(current.get("quantity") or 0) + quantity,
                "freshness": freshness,
                "storage": storage,
                "addedAt": current.get("addedAt") or timestamp,
                "updatedAt": timestamp,
                "expiryDate": current.get("expiryDate"),
            }
            continue

        positions[_name_key(name)] = len(items)
        items.append(
            {
                "id": new_id(),
                "name": name,
                "quantity": quantity,
                "freshness": freshness,
                "storage": storage,
                "addedAt": timestamp,
                "updatedAt": timestamp,
                "expiryDate": None,
            }
        )

    return items


def add_to_fridge(
    repository: FridgeRepository, incoming: list[Mapping[str, Any]]
) -> list[FridgeItem]:
    """Merge observations into the stored inventory and write it back whole."""

    merged = reconcile(repository.get(), incoming)
    try:
        repository.put(merged)
    except KeyValueStoreError as exc:
        raise ReconciliationError("냉장고에 식재료를 추가하지 못했습니다.") from exc

    logger.info(
        "reconciled fridge inventory",
        extra={"incoming": len(incoming), "inventory_size": len(merged)},
    )
    return merged


def parse_expiry_date(value: object) -> str | None:
    """Validate an ISO ``YYYY-MM-DD`` date; blank means "no expiry"."""

    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError("expiryDate must be an ISO date string or null")
    candidate = value.strip()
    if not candidate:
        return None
    try:
        return date.fromisoformat(candidate[:10]).isoformat()
    except ValueError as exc:
        raise ValueError("expiryDate must be an ISO date (YYYY-MM-DD)") from exc


def update_fridge_item(
    repository: FridgeRepository,
    item_id: str,
    changes: Mapping[str, Any],
) -> FridgeItem | None:
    """Apply a manual edit of name, quantity and/or expiryDate.

    Only keys present in ``changes`` are touched. Returns ``None`` when no
    item has ``item_id``.
    """

    items = repository.get()
    index = next((i for i, item in enumerate(items) if item.get("id") == item_id), None)
    if index is None:
        return None

    updated: FridgeItem = dict(items[index])  # type: ignore[assignment]

    name = changes.get("name")
    if isinstance(name, str) and name.strip():
        name = name.strip()
        clash = any(
            other.get("id") != item_id and _name_key(other["name"]) == _name_key(name)
            for other in items
        )
        if clash:
            raise DuplicateFridgeItemError(f"'{name}' 식재료가 이미 냉장고에 있습니다.")
        updated["name"] = name

    if "quantity" in changes and changes["quantity"] is not None:
        quantity = changes["quantity"]
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
            raise ValueError("quantity must be a non-negative integer")
        updated["quantity"] = quantity

    if "expiryDate" in changes:
        updated["expiryDate"] = parse_expiry_date(changes["expiryDate"])

    updated["updatedAt"] = utc_now_iso()
    items[index] = updated
    repository.put(items)
    return updated


def delete_fridge_item(repository: FridgeRepository, item_id: str) -> bool:
    """Remove one item; ``False`` when it was not in the inventory."""

    items = repository.get()
    remaining = [item for item in items if item.get("id") != item_id]
    if len(remaining) == len(items):
        return False
    repository.put(remaining)
    return True
