"""LLM-powered recipe recommendations and details."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, NotRequired, Sequence, TypedDict

from fridgemate_backend.config.llm import (
    RECIPE_DETAIL_MAX_TOKENS,
    RECIPE_RECOMMEND_MAX_TOKENS,
    RECIPE_TEMPERATURE,
)
from fridgemate_backend.services.extraction import ExtractionError, extract_json_text
from fridgemate_backend.services.llm import LLMClient
from fridgemate_backend.services.normalization import MalformedJsonError, parse_json_object
from fridgemate_backend.services.prompts import (
    RECIPE_CATEGORIES,
    RECIPE_DIFFICULTIES,
    build_detail_prompt,
    build_recommend_prompt,
)

logger = logging.getLogger(__name__)

DEFAULT_DIFFICULTY = "보통"
DEFAULT_CATEGORY = "기타"
RECIPE_FALLBACK_WARNING = "AI 응답 파싱에 실패하여 기본 레시피를 제공합니다"
EMPTY_INVENTORY_MESSAGE = "냉장고에 식재료가 없습니다"
PRELOAD_LIMIT = 3
DEFAULT_MAX_SESSIONS = 1000


class RecipeSummary(TypedDict):
    name: str
    difficulty: str
    cookingTime: str
    servings: str
    description: str
    availableIngredients: list[str]
    missingIngredients: list[str]
    category: str


class RecipeIngredient(TypedDict):
    name: str
    amount: str
    essential: bool


class RecipeStep(TypedDict):
    step: int
    title: str
    description: str
    tip: NotRequired[str]


class RecipeNutrition(TypedDict):
    protein: str
    carbs: str
    fat: str
    fiber: str


class RecipeDetail(TypedDict):
    name: str
    description: str
    difficulty: str
    cookingTime: str
    prepTime: str
    servings: str
    calories: str
    ingredients: list[RecipeIngredient]
    instructions: list[RecipeStep]
    tips: list[str]
    nutrition: RecipeNutrition
    tags: list[str]


@dataclass(slots=True)
class RecommendationResult:
    recipes: list[RecipeSummary]
    warning: str | None = None


@dataclass(slots=True)
class DetailResult:
    recipe: RecipeDetail
    warning: str | None = None
    cached: bool = False


class RecipeDetailCache:
    """Recipe details keyed by recipe name. Entries never expire."""

    def __init__(self) -> None:
        self._entries: dict[str, DetailResult] = {}
        self._lock = threading.Lock()

    def get(self, recipe_name: str) -> DetailResult | None:
        with self._lock:
            return self._entries.get(recipe_name)

    def set(self, recipe_name: str, result: DetailResult) -> None:
        with self._lock:
            self._entries[recipe_name] = result

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, recipe_name: object) -> bool:
        with self._lock:
            return recipe_name in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RecipeCacheRegistry:
    """One ``RecipeDetailCache`` per client session id.

    Entries inside a session never expire, but only the ``max_sessions`` most
    recently used sessions are kept.
    """

    def __init__(self, max_sessions: int = DEFAULT_MAX_SESSIONS) -> None:
        if max_sessions < 1:
            raise ValueError("max_sessions must be positive")
        self._max_sessions = max_sessions
        self._caches: OrderedDict[str, RecipeDetailCache] = OrderedDict()
        self._lock = threading.Lock()

    def for_session(self, session_id: str) -> RecipeDetailCache:
        with self._lock:
            cache = self._caches.get(session_id)
            if cache is None:
                cache = self._caches[session_id] = RecipeDetailCache()
                while len(self._caches) > self._max_sessions:
                    evicted, _ = self._caches.popitem(last=False)
                    logger.debug("evicted recipe cache", extra={"session_id": evicted})
            else:
                self._caches.move_to_end(session_id)
            return cache

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._caches

    def __len__(self) -> int:
        with self._lock:
            return len(self._caches)

    def reset(self, session_id: str) -> RecipeDetailCache:
        """Drop cached details, e.g. after a fresh recommendation."""

        cache = self.for_session(session_id)
        cache.clear()
        return cache


def _text(value: object, default: str) -> str:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _text_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(entry) for entry in value if entry is not None]


def _choice(value: object, allowed: Sequence[str], default: str) -> str:
    return value if isinstance(value, str) and value in allowed else default


def _ingredient_names(inventory: Sequence[Mapping[str, Any]], limit: int) -> list[str]:
    return [str(item.get("name")) for item in inventory[:limit] if item.get("name")]


def coerce_summary(raw: object, index: int) -> RecipeSummary:
    """Validate one recommended recipe, substituting safe defaults."""

    data: Mapping[str, Any] = raw if isinstance(raw, Mapping) else {}
    return {
        "name": _text(data.get("name"), f"추천 레시피 {index + 1}"),
        "difficulty": _choice(data.get("difficulty"), RECIPE_DIFFICULTIES, DEFAULT_DIFFICULTY),
        "cookingTime": _text(data.get("cookingTime"), "30분"),
        "servings": _text(data.get("servings"), "2인분"),
        "description": _text(data.get("description"), "맛있는 요리입니다"),
        "availableIngredients": _text_list(data.get("availableIngredients")),
        "missingIngredients": _text_list(data.get("missingIngredients")),
        "category": _choice(data.get("category"), RECIPE_CATEGORIES, DEFAULT_CATEGORY),
    }


def coerce_detail(raw: Mapping[str, Any], recipe_name: str) -> RecipeDetail:
    """Validate a detailed recipe, substituting safe defaults per field."""

    raw_ingredients = raw.get("ingredients")
    if isinstance(raw_ingredients, list):
        ingredients: list[RecipeIngredient] = []
        for entry in raw_ingredients:
            item = entry if isinstance(entry, Mapping) else {}
            essential = item.get("essential")
            ingredients.append(
                {
                    "name": _text(item.get("name"), "재료"),
                    "amount": _text(item.get("amount"), "적당량"),
                    "essential": essential if isinstance(essential, bool) else True,
                }
            )
    else:
        ingredients = [{"name": "주재료", "amount": "적당량", "essential": True}]

    raw_steps = raw.get("instructions")
    if isinstance(raw_steps, list):
        instructions: list[RecipeStep] = []
        for idx, entry in enumerate(raw_steps):
            item = entry if isinstance(entry, Mapping) else {}
            step_number = item.get("step")
            step: RecipeStep = {
                "step": step_number
                if isinstance(step_number, int) and not isinstance(step_number, bool) and step_number > 0
                else idx + 1,
                "title": _text(item.get("title"), f"단계 {idx + 1}"),
                "description": _text(item.get("description"), "조리 과정을 진행하세요"),
            }
            tip = item.get("tip")
            if isinstance(tip, str) and tip.strip():
                step["tip"] = tip.strip()
            instructions.append(step)
    else:
        instructions = [
            {
                "step": 1,
                "title": "조리 시작",
                "description": f"{recipe_name}을(를) 맛있게 조리하세요",
            }
        ]

    nutrition = raw.get("nutrition") if isinstance(raw.get("nutrition"), Mapping) else {}
    tips = raw.get("tips")
    tags = raw.get("tags")

    return {
        "name": _text(raw.get("name"), recipe_name),
        "description": _text(raw.get("description"), f"{recipe_name}에 대한 맛있는 레시피입니다"),
        "difficulty": _choice(raw.get("difficulty"), RECIPE_DIFFICULTIES, DEFAULT_DIFFICULTY),
        "cookingTime": _text(raw.get("cookingTime"), "30분"),
        "prepTime": _text(raw.get("prepTime"), "10분"),
        "servings": _text(raw.get("servings"), "2인분"),
        "calories": _text(raw.get("calories"), "400kcal"),
        "ingredients": ingredients,
        "instructions": instructions,
        "tips": _text_list(tips) if isinstance(tips, list) else [f"{recipe_name}을(를) 맛있게 드세요"],
        "nutrition": {
            "protein": _text(nutrition.get("protein"), "15g"),
            "carbs": _text(nutrition.get("carbs"), "45g"),
            "fat": _text(nutrition.get("fat"), "12g"),
            "fiber": _text(nutrition.get("fiber"), "8g"),
        },
        "tags": _text_list(tags) if isinstance(tags, list) else ["맛있는", "건강한"],
    }


def fallback_recommendations(inventory: Sequence[Mapping[str, Any]]) -> list[RecipeSummary]:
    return [
        {
            "name": "간단한 볶음밥",
            "difficulty": "쉬움",
            "cookingTime": "15분",
            "servings": "1인분",
            "description": "냉장고 재료로 만드는 간단한 볶음밥",
            "availableIngredients": _ingredient_names(inventory, 3),
            "missingIngredients": ["밥", "간장"],
            "category": "한식",
        },
        {
            "name": "야채 스프",
            "difficulty": "쉬움",
            "cookingTime": "20분",
            "servings": "2인분",
            "description": "영양가득한 야채 스프",
            "availableIngredients": _ingredient_names(inventory, 2),
            "missingIngredients": ["물", "소금"],
            "category": "양식",
        },
    ]


def fallback_detail(recipe_name: str) -> RecipeDetail:
    return {
        "name": recipe_name,
        "description": f"{recipe_name}에 대한 기본 레시피입니다",
        "difficulty": DEFAULT_DIFFICULTY,
        "cookingTime": "30분",
        "prepTime": "10분",
        "servings": "2인분",
        "calories": "400kcal",
        "ingredients": [
            {"name": "주재료", "amount": "적당량", "essential": True},
            {"name": "조미료", "amount": "약간", "essential": False},
        ],
        "instructions": [
            {"step": 1, "title": "재료 준비", "description": "필요한 재료들을 준비합니다"},
            {"step": 2, "title": "조리 시작", "description": f"{recipe_name}을(를) 조리합니다"},
            {"step": 3, "title": "완성", "description": "맛있게 완성하여 드세요"},
        ],
        "tips": ["신선한 재료를 사용하세요", "중간 불에서 조리하세요"],
        "nutrition": {"protein": "15g", "carbs": "45g", "fat": "12g", "fiber": "8g"},
        "tags": ["간단", "맛있는"],
    }


def _parse_answer(raw_text: str) -> dict[str, Any]:
    return parse_json_object(extract_json_text(raw_text))


class RecipeOrchestrator:
    """Builds recipe prompts, calls the model and validates its answers.

    Unparseable answers degrade to canned recipes with a warning; only
    transport and credential failures reach the caller.
    """

    def __init__(self, llm_client: LLMClient, *, preload_workers: int = PRELOAD_LIMIT) -> None:
        self._llm_client = llm_client
        self._executor = ThreadPoolExecutor(
            max_workers=preload_workers, thread_name_prefix="recipe-preload"
        )

    def recommend(
        self,
        inventory: Sequence[Mapping[str, Any]],
        user_request: str | None = None,
    ) -> RecommendationResult:
        if not inventory:
            raise ValueError(EMPTY_INVENTORY_MESSAGE)

        result = self._llm_client.run_prompt(
            prompt=build_recommend_prompt(inventory, user_request),
            model=self._llm_client.recipe_model,
            max_output_tokens=RECIPE_RECOMMEND_MAX_TOKENS,
            temperature=RECIPE_TEMPERATURE,
        )
        try:
            payload = _parse_answer(result.raw_text)
            raw_recipes = payload.get("recipes")
            if not isinstance(raw_recipes, list):
                raise MalformedJsonError(
                    "recipes array missing", reason="invalid_structure"
                )
        except (ExtractionError, MalformedJsonError):
            logger.warning(
                "recipe recommendation answer unusable; serving fallback recipes",
                exc_info=True,
            )
            return RecommendationResult(
                fallback_recommendations(inventory), RECIPE_FALLBACK_WARNING
            )

        return RecommendationResult(
            [coerce_summary(raw, index) for index, raw in enumerate(raw_recipes)]
        )

    def detail(
        self,
        recipe_name: str,
        inventory: Sequence[Mapping[str, Any]] | None = None,
        *,
        cache: RecipeDetailCache | None = None,
    ) -> DetailResult:
        """Return the detailed recipe, served from ``cache`` when present."""

        name = (recipe_name or "").strip()
        if not name:
            raise ValueError("레시피 이름이 필요합니다")

        if cache is not None:
            cached = cache.get(name)
            if cached is not None:
                return DetailResult(cached.recipe, cached.warning, cached=True)

        result = self._llm_client.run_prompt(
            prompt=build_detail_prompt(name, inventory),
            model=self._llm_client.recipe_model,
            max_output_tokens=RECIPE_DETAIL_MAX_TOKENS,
            temperature=RECIPE_TEMPERATURE,
        )
        try:
            payload = _parse_answer(result.raw_text)
            raw_recipe = payload.get("recipe")
            if not isinstance(raw_recipe, Mapping):
                raise MalformedJsonError("recipe object missing", reason="invalid_structure")
            detail = DetailResult(coerce_detail(raw_recipe, name))
        except (ExtractionError, MalformedJsonError):
            logger.warning(
                "recipe detail answer unusable; serving fallback recipe",
                extra={"recipe": name},
                exc_info=True,
            )
            detail = DetailResult(fallback_detail(name), RECIPE_FALLBACK_WARNING)

        if cache is not None:
            cache.set(name, detail)
        return detail

    def preload_details(
        self,
        recipe_names: Iterable[str],
        inventory: Sequence[Mapping[str, Any]] | None,
        cache: RecipeDetailCache,
    ) -> list[Future]:
        """Fetch up to three details in the background.

        Each fetch is independent: a failure is logged and leaves the
        cache untouched for that name without affecting the others.
        """

        futures: list[Future] = []
        for name in list(recipe_names)[:PRELOAD_LIMIT]:
            if not name or name in cache:
                continue
            futures.append(self._executor.submit(self._preload_one, name, inventory, cache))
        return futures

    def _preload_one(
        self,
        recipe_name: str,
        inventory: Sequence[Mapping[str, Any]] | None,
        cache: RecipeDetailCache,
    ) -> bool:
        try:
            self.detail(recipe_name, inventory, cache=cache)
        except Exception:
            logger.warning("failed to preload recipe detail", extra={"recipe": recipe_name}, exc_info=True)
            return False
        return True

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)


def init_recipe_orchestrator(llm_client: LLMClient) -> RecipeOrchestrator:
    """Factory to mirror the init_* pattern used across services."""

    return RecipeOrchestrator(llm_client)
