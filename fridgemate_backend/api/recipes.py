"""Recipe recommendation endpoints backed by the language model."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from flask import Blueprint, current_app, jsonify, request

from fridgemate_backend.api.deps import (
    error_response,
    get_recipe_caches,
    get_recipe_orchestrator,
    llm_error_response,
)
from fridgemate_backend.services.llm import LLMError

bp = Blueprint("recipes", __name__, url_prefix="/api/recipes")


def _inventory_from(payload: Mapping[str, Any], *, required: bool) -> list[dict[str, Any]] | None:
    raw = payload.get("ingredients")
    if raw is None and not required:
        return None
    if not isinstance(raw, list):
        raise ValueError("ingredients must be an array")
    return [dict(item) for item in raw if isinstance(item, Mapping) and item.get("name")]


def _session_id(payload: Mapping[str, Any]) -> str | None:
    session_id = payload.get("sessionId")
    if isinstance(session_id, str) and session_id.strip():
        return session_id.strip()
    return None


@bp.post("/recommend")
def recommend_recipes():
    """Suggest recipes for the posted inventory.

    With a ``sessionId`` the session's detail cache is reset, and
    ``preloadDetails`` warms it for the first few recipes in the background.
    """

    payload = request.get_json(silent=True) or {}
    try:
        inventory = _inventory_from(payload, required=True)
    except ValueError as exc:
        return error_response(str(exc), 400)

    user_request = payload.get("userRequest")
    if not isinstance(user_request, str):
        user_request = None

    session_id = _session_id(payload)
    try:
        orchestrator = get_recipe_orchestrator()
        caches = get_recipe_caches() if session_id else None
    except RuntimeError as exc:
        return error_response(str(exc), 503)

    try:
        result = orchestrator.recommend(inventory, user_request)
    except ValueError as exc:
        return error_response(str(exc), 400)
    except LLMError as exc:
        return llm_error_response(exc)

    if caches is not None:
        cache = caches.reset(session_id)
        if payload.get("preloadDetails"):
            futures = orchestrator.preload_details(
                [recipe["name"] for recipe in result.recipes], inventory, cache
            )
            current_app.logger.info(
                "preloading recipe details",
                extra={"session_id": session_id, "count": len(futures)},
            )

    body: dict[str, object] = {"success": True, "data": {"recipes": result.recipes}}
    if result.warning:
        body["warning"] = result.warning
    return jsonify(body)


@bp.post("/detail")
def recipe_detail():
    payload = request.get_json(silent=True) or {}
    recipe_name = payload.get("recipeName")
    if not isinstance(recipe_name, str) or not recipe_name.strip():
        return error_response("Recipe name is required", 400)

    try:
        inventory = _inventory_from(payload, required=False)
    except ValueError as exc:
        return error_response(str(exc), 400)

    session_id = _session_id(payload)
    try:
        orchestrator = get_recipe_orchestrator()
        cache = get_recipe_caches().for_session(session_id) if session_id else None
    except RuntimeError as exc:
        return error_response(str(exc), 503)

    try:
        result = orchestrator.detail(recipe_name, inventory, cache=cache)
    except ValueError as exc:
        return error_response(str(exc), 400)
    except LLMError as exc:
        return llm_error_response(exc)

    body: dict[str, object] = {
        "success": True,
        "data": {"recipe": result.recipe},
        "cached": result.cached,
    }
    if result.warning:
        body["warning"] = result.warning
    return jsonify(body)
