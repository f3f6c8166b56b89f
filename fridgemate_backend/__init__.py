import logging
import os
from typing import Any, Mapping

from flask import Flask, jsonify
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fridgemate_backend.api import init_app as init_api
from fridgemate_backend.config import (
    DEFAULT_RECIPE_MODEL,
    DEFAULT_RECOGNITION_MODEL,
    DEFAULT_TEXT_TIMEOUT_SECONDS,
    DEFAULT_VISION_TIMEOUT_SECONDS,
)
from fridgemate_backend.models import Base, get_database_url, normalize_database_url
from fridgemate_backend.services.auth_tokens import AuthSettings
from fridgemate_backend.services.kv_store import init_kv_store
from fridgemate_backend.services.llm import LLMSettings, init_llm_client
from fridgemate_backend.services.recipes import (
    RecipeCacheRegistry,
    init_recipe_orchestrator,
)


def create_app(test_config: Mapping[str, Any] | None = None) -> Flask:
    """Application factory for the FridgeMate backend."""
    app = Flask(__name__)
    app.json.ensure_ascii = False

    app.config.update(
        DATABASE_URL=None,
        LLM_API_KEY=os.environ.get("FRIDGEMATE_LLM_API_KEY")
        or os.environ.get("OPENAI_API_KEY"),
        RECOGNITION_MODEL=os.environ.get(
            "FRIDGEMATE_RECOGNITION_MODEL", DEFAULT_RECOGNITION_MODEL
        ),
        RECIPE_MODEL=os.environ.get("FRIDGEMATE_RECIPE_MODEL", DEFAULT_RECIPE_MODEL),
        VISION_TIMEOUT=_env_seconds(
            app, "FRIDGEMATE_VISION_TIMEOUT", DEFAULT_VISION_TIMEOUT_SECONDS
        ),
        TEXT_TIMEOUT=_env_seconds(
            app, "FRIDGEMATE_TEXT_TIMEOUT", DEFAULT_TEXT_TIMEOUT_SECONDS
        ),
        LLM_SYSTEM_PROMPT=os.environ.get("FRIDGEMATE_LLM_SYSTEM_PROMPT"),
        AUTH_SECRET=os.environ.get("FRIDGEMATE_AUTH_SECRET"),
    )
    if test_config:
        app.config.update(test_config)

    _configure_logging(app)
    _init_database(app)
    _init_auth(app)
    _init_llm(app)
    app.extensions["recipe_caches"] = RecipeCacheRegistry()

    @app.get("/healthz")
    def healthcheck():
        return jsonify(status="ok")

    @app.get("/api/healthz")
    def api_healthcheck():
        return jsonify(status="ok")

    @app.get("/api/health")
    def api_health():
        return jsonify(status="ok")

    init_api(app)

    return app


def _env_seconds(app: Flask, name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        app.logger.warning("ignoring invalid %s=%s", name, raw)
        return default


def _configure_logging(app: Flask) -> None:
    """Ensure application and root loggers emit INFO-level logs."""

    logging.basicConfig(level=logging.INFO)
    logging.getLogger().setLevel(logging.INFO)
    app.logger.setLevel(logging.INFO)


def _init_database(app: Flask) -> None:
    """Configure the key-value store on top of a SQLAlchemy session factory."""

    database_url = app.config.get("DATABASE_URL")
    if database_url:
        database_url = normalize_database_url(database_url)
    else:
        try:
            database_url = get_database_url()
        except RuntimeError:
            app.logger.warning(
                "DATABASE_URL not set; store-backed endpoints disabled"
            )
            return

    if database_url.startswith("sqlite"):
        # One shared connection so in-memory databases survive across sessions
        # and preload threads.
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(engine)
    else:
        engine = create_engine(database_url, pool_pre_ping=True)

    SessionLocal = sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
    )
    app.extensions["db_engine"] = engine
    app.extensions["db_sessionmaker"] = SessionLocal
    app.extensions["kv_store"] = init_kv_store(SessionLocal)


def _init_auth(app: Flask) -> None:
    try:
        app.extensions["auth_settings"] = AuthSettings.load(app)
    except RuntimeError:
        app.logger.warning(
            "FRIDGEMATE_AUTH_SECRET not set; /api endpoints disabled"
        )


def _init_llm(app: Flask) -> None:
    api_key = app.config.get("LLM_API_KEY")
    if not api_key:
        app.logger.warning(
            "FRIDGEMATE_LLM_API_KEY/OPENAI_API_KEY not set; model-backed endpoints disabled"
        )
        return

    llm_client = init_llm_client(
        LLMSettings(
            api_key=api_key,
            recognition_model=app.config["RECOGNITION_MODEL"],
            recipe_model=app.config["RECIPE_MODEL"],
            vision_timeout=app.config["VISION_TIMEOUT"],
            text_timeout=app.config["TEXT_TIMEOUT"],
            system_prompt=app.config.get("LLM_SYSTEM_PROMPT") or None,
        )
    )
    app.extensions["llm_client"] = llm_client
    app.extensions["recipe_orchestrator"] = init_recipe_orchestrator(llm_client)


app = create_app()


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=8000)
