"""Shared API dependencies and helpers."""

from flask import current_app, jsonify

from fridgemate_backend.services.history import HistoryRepository
from fridgemate_backend.services.inventory import KeyValueFridgeRepository
from fridgemate_backend.services.kv_store import KeyValueStore
from fridgemate_backend.services.llm import (
    LLMAuthError,
    LLMClient,
    LLMError,
    LLMRejectedInputError,
)
from fridgemate_backend.services.recipes import RecipeCacheRegistry, RecipeOrchestrator


def error_response(message: str, status: int):
    """Return the ``{success: false, error}`` body used by every endpoint."""

    return jsonify(success=False, error=message), status


def get_kv_store() -> KeyValueStore:
    """Return the configured key-value store."""

    store: KeyValueStore | None = current_app.extensions.get("kv_store")
    if store is None:
        raise RuntimeError("key-value store is not configured")
    return store


def get_history_repository() -> HistoryRepository:
    return HistoryRepository(get_kv_store())


def get_fridge_repository() -> KeyValueFridgeRepository:
    return KeyValueFridgeRepository(get_kv_store())


def get_llm_client() -> LLMClient:
    """Return the configured model client."""

    client: LLMClient | None = current_app.extensions.get("llm_client")
    if client is None:
        raise RuntimeError("LLM client is not configured")
    return client


def get_recipe_orchestrator() -> RecipeOrchestrator:
    orchestrator: RecipeOrchestrator | None = current_app.extensions.get(
        "recipe_orchestrator"
    )
    if orchestrator is None:
        raise RuntimeError("LLM client is not configured")
    return orchestrator


def get_recipe_caches() -> RecipeCacheRegistry:
    caches: RecipeCacheRegistry | None = current_app.extensions.get("recipe_caches")
    if caches is None:
        raise RuntimeError("recipe cache registry is not configured")
    return caches


def llm_error_response(exc: LLMError):
    """Map a model failure to its HTTP response."""

    if isinstance(exc, LLMAuthError):
        return error_response(str(exc), 401)
    if isinstance(exc, LLMRejectedInputError):
        return error_response(str(exc), 400)
    current_app.logger.error(
        "model request failed: %s",
        exc,
        extra={"status_code": getattr(exc, "status_code", None)},
    )
    return error_response(str(exc), 500)
