"""Endpoints for saved recognition history."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from fridgemate_backend.api.deps import error_response, get_history_repository
from fridgemate_backend.services.history import (
    DEFAULT_RECENT_LIMIT,
    MAX_RECENT_LIMIT,
    as_observation_batch,
)
from fridgemate_backend.services.kv_store import KeyValueStoreError

bp = Blueprint("history", __name__, url_prefix="/api")


def _parse_limit(raw: str | None) -> int:
    try:
        limit = int(raw) if raw is not None else DEFAULT_RECENT_LIMIT
    except ValueError:
        limit = DEFAULT_RECENT_LIMIT
    return max(1, min(limit, MAX_RECENT_LIMIT))


@bp.post("/ingredients")
def save_history_record():
    """Persist one recognition result alongside its image."""

    payload = request.get_json(silent=True) or {}
    image_data = payload.get("imageData")
    ingredient_data = payload.get("ingredientData")
    timestamp = payload.get("timestamp")

    if not isinstance(image_data, str) or not image_data:
        return error_response("imageData is required", 400)
    if not isinstance(ingredient_data, dict):
        return error_response("ingredientData is required", 400)
    if timestamp is not None and not isinstance(timestamp, str):
        return error_response("timestamp must be an ISO string", 400)
    if not as_observation_batch(ingredient_data)["ingredients"]:
        return error_response("ingredientData has no ingredients", 400)

    try:
        repository = get_history_repository()
    except RuntimeError as exc:
        return error_response(str(exc), 503)

    try:
        record = repository.create(
            image_data=image_data,
            ingredient_data=ingredient_data,
            timestamp=timestamp,
        )
    except KeyValueStoreError:
        current_app.logger.exception("failed to save history record")
        return error_response("식재료 정보를 저장하지 못했습니다.", 500)

    current_app.logger.info("saved history record", extra={"record_id": record["id"]})
    return jsonify(success=True, id=record["id"])


@bp.get("/ingredients/recent")
def list_recent_records():
    limit = _parse_limit(request.args.get("limit"))

    try:
        repository = get_history_repository()
    except RuntimeError as exc:
        return error_response(str(exc), 503)

    try:
        records = repository.list_recent(limit)
    except KeyValueStoreError:
        current_app.logger.exception("failed to load history records")
        return error_response("기록을 불러오지 못했습니다.", 500)

    return jsonify(success=True, records=records)


@bp.get("/ingredients/<record_id>")
def get_history_record(record_id: str):
    try:
        repository = get_history_repository()
    except RuntimeError as exc:
        return error_response(str(exc), 503)

    try:
        record = repository.get(record_id)
    except KeyValueStoreError:
        current_app.logger.exception(
            "failed to load history record", extra={"record_id": record_id}
        )
        return error_response("기록을 불러오지 못했습니다.", 500)

    if record is None:
        return error_response("Record not found", 404)
    return jsonify(success=True, data=record)


@bp.delete("/ingredients/<record_id>")
def delete_history_record(record_id: str):
    """Delete one record; the fridge inventory is left as is."""

    try:
        repository = get_history_repository()
    except RuntimeError as exc:
        return error_response(str(exc), 503)

    try:
        deleted = repository.delete(record_id)
    except KeyValueStoreError:
        current_app.logger.exception(
            "failed to delete history record", extra={"record_id": record_id}
        )
        return error_response("기록을 삭제하지 못했습니다.", 500)

    if not deleted:
        return error_response("Record not found", 404)
    return jsonify(success=True)
