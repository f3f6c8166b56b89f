"""Endpoints for the shared fridge inventory."""

from __future__ import annotations

from collections.abc import Mapping

from flask import Blueprint, current_app, jsonify, request

from fridgemate_backend.api.deps import error_response, get_fridge_repository
from fridgemate_backend.services.inventory import (
    ReconciliationError,
    add_to_fridge,
    delete_fridge_item,
    update_fridge_item,
)
from fridgemate_backend.services.kv_store import KeyValueStoreError

bp = Blueprint("fridge", __name__, url_prefix="/api/fridge")

_EDITABLE_FIELDS = ("name", "quantity", "expiryDate")


@bp.get("/ingredients")
def list_fridge_items():
    try:
        repository = get_fridge_repository()
    except RuntimeError as exc:
        return error_response(str(exc), 503)

    try:
        items = repository.get()
    except KeyValueStoreError:
        current_app.logger.exception("failed to load fridge inventory")
        return error_response("냉장고 정보를 불러오지 못했습니다.", 500)

    return jsonify(success=True, data=items)


@bp.post("/ingredients")
def add_fridge_items():
    """Merge recognized ingredients into the inventory by name."""

    payload = request.get_json(silent=True) or {}
    incoming = payload.get("ingredients")
    if not isinstance(incoming, list) or not incoming:
        return error_response("ingredients must be a non-empty array", 400)
    if not all(isinstance(item, Mapping) for item in incoming):
        return error_response("each ingredient must be an object", 400)

    try:
        repository = get_fridge_repository()
    except RuntimeError as exc:
        return error_response(str(exc), 503)

    try:
        items = add_to_fridge(repository, incoming)
    except ValueError as exc:
        return error_response(str(exc), 400)
    except (ReconciliationError, KeyValueStoreError) as exc:
        current_app.logger.exception("failed to reconcile fridge inventory")
        return error_response(str(exc), 500)

    return jsonify(success=True, data=items)


@bp.put("/ingredients/<item_id>")
def edit_fridge_item(item_id: str):
    payload = request.get_json(silent=True) or {}
    changes = {key: payload[key] for key in _EDITABLE_FIELDS if key in payload}
    if not changes:
        return error_response("name, quantity or expiryDate is required", 400)

    try:
        repository = get_fridge_repository()
    except RuntimeError as exc:
        return error_response(str(exc), 503)

    try:
        item = update_fridge_item(repository, item_id, changes)
    except ValueError as exc:
        return error_response(str(exc), 400)
    except KeyValueStoreError:
        current_app.logger.exception(
            "failed to update fridge item", extra={"item_id": item_id}
        )
        return error_response("식재료를 수정하지 못했습니다.", 500)

    if item is None:
        return error_response("Ingredient not found", 404)
    return jsonify(success=True, data=item)


@bp.delete("/ingredients/<item_id>")
def remove_fridge_item(item_id: str):
    try:
        repository = get_fridge_repository()
    except RuntimeError as exc:
        return error_response(str(exc), 503)

    try:
        deleted = delete_fridge_item(repository, item_id)
    except KeyValueStoreError:
        current_app.logger.exception(
            "failed to delete fridge item", extra={"item_id": item_id}
        )
        return error_response("식재료를 삭제하지 못했습니다.", 500)

    if not deleted:
        return error_response("Ingredient not found", 404)
    return jsonify(success=True)
