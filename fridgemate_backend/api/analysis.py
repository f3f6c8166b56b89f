"""Endpoints that turn photos and text into ingredient observations."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from fridgemate_backend.api.deps import (
    error_response,
    get_llm_client,
    llm_error_response,
)
from fridgemate_backend.services.extraction import ExtractionError
from fridgemate_backend.services.llm import LLMError
from fridgemate_backend.services.normalization import (
    EmptyResultError,
    MalformedJsonError,
    UnrecognizedError,
    parse_quantity,
)
from fridgemate_backend.services.recognition import (
    analyze_image,
    analyze_text,
    lookup_ingredient,
)

bp = Blueprint("analysis", __name__, url_prefix="/api")


def _batch_response(batch):
    payload: dict[str, object] = {"success": True, "data": batch}
    if batch.get("warning"):
        payload["warning"] = batch["warning"]
    return jsonify(payload)


def _run_recognition(func, argument, *, label: str):
    try:
        client = get_llm_client()
    except RuntimeError as exc:
        return error_response(str(exc), 503)

    try:
        batch = func(client, argument)
    except (EmptyResultError, UnrecognizedError) as exc:
        return error_response(str(exc), 400)
    except (ExtractionError, MalformedJsonError) as exc:
        current_app.logger.warning(
            "%s answer could not be parsed", label, extra={"reason": str(exc)}
        )
        return error_response(str(exc), 500)
    except ValueError as exc:
        return error_response(str(exc), 400)
    except LLMError as exc:
        return llm_error_response(exc)

    current_app.logger.info(
        "%s recognized %s ingredient(s)", label, len(batch["ingredients"])
    )
    return _batch_response(batch)


@bp.post("/analyze-ingredient")
def analyze_ingredient():
    """Recognize ingredients (or a receipt) in a ``data:image/...`` URI."""

    payload = request.get_json(silent=True) or {}
    image_data = payload.get("imageData")
    if not isinstance(image_data, str) or not image_data:
        return error_response("No image data provided", 400)

    return _run_recognition(analyze_image, image_data, label="image analysis")


@bp.post("/analyze-text")
def analyze_free_text():
    payload = request.get_json(silent=True) or {}
    text = payload.get("text")
    if not isinstance(text, str) or not text.strip():
        return error_response("Text is required", 400)

    return _run_recognition(analyze_text, text, label="text analysis")


@bp.post("/ingredient-info")
def ingredient_info():
    """Describe one manually entered ingredient."""

    payload = request.get_json(silent=True) or {}
    name = payload.get("name")
    if not isinstance(name, str) or not name.strip():
        return error_response("Ingredient name is required", 400)
    quantity = parse_quantity(payload.get("quantity"))

    try:
        client = get_llm_client()
    except RuntimeError as exc:
        return error_response(str(exc), 503)

    try:
        result = lookup_ingredient(client, name.strip(), quantity)
    except LLMError as exc:
        return llm_error_response(exc)

    body: dict[str, object] = {"success": True, "data": result.ingredient}
    if result.warning:
        body["warning"] = result.warning
    return jsonify(body)
