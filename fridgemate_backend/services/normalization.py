"""Validate and default the ingredient JSON returned by the model."""

from __future__ import annotations

import json
import logging
from enum import Enum
from json import JSONDecodeError
from typing import Any, Mapping, NotRequired, TypedDict

logger = logging.getLogger(__name__)

DEFAULT_ITEM_QUANTITY = 1
DEFAULT_FRESHNESS = "good"
FRESHNESS_LEVELS = ("excellent", "good", "fair", "poor")
LOW_CONFIDENCE_THRESHOLD = 70
LOW_CONFIDENCE_WARNING = (
    "일부 식재료의 AI 인식 신뢰도가 낮습니다. 결과를 참고용으로만 사용하세요."
)
FALLBACK_WARNING = "AI 응답 처리 중 문제가 발생하여 기본 정보를 제공합니다."
UNKNOWN_VITAMIN = "정보 없음"


class AnalysisMode(str, Enum):
    """Where the text being normalized came from."""

    VISION = "vision"
    RECEIPT_TEXT = "receipt-text"
    FREE_TEXT = "free-text"
    SINGLE_LOOKUP = "single-lookup"

    @property
    def default_confidence(self) -> int:
        # Typed input is trusted more than visual guesses.
        if self in (AnalysisMode.VISION, AnalysisMode.RECEIPT_TEXT):
            return 70
        return 90

    @property
    def unknown_label(self) -> str:
        return _UNKNOWN_LABELS[self]


_UNKNOWN_LABELS = {
    AnalysisMode.VISION: "알 수 없음",
    AnalysisMode.RECEIPT_TEXT: "인식 불가",
    AnalysisMode.FREE_TEXT: "인식 불가",
    AnalysisMode.SINGLE_LOOKUP: "인식 불가",
}

_EMPTY_RESULT_MESSAGES = {
    AnalysisMode.VISION: "AI 응답에서 식재료 정보를 찾을 수 없습니다. 다시 시도해주세요.",
    AnalysisMode.RECEIPT_TEXT: (
        "영수증에서 식재료를 찾을 수 없습니다. 식재료가 포함된 영수증인지 확인해주세요."
    ),
    AnalysisMode.FREE_TEXT: (
        "텍스트에서 식재료를 찾을 수 없습니다. 더 구체적으로 식재료 이름과 개수를 입력해주세요."
    ),
    AnalysisMode.SINGLE_LOOKUP: "식재료 정보를 찾을 수 없습니다. 다시 시도해주세요.",
}

_UNRECOGNIZED_MESSAGES = {
    AnalysisMode.VISION: (
        "이미지에서 음식이나 식재료를 인식할 수 없습니다. "
        "음식이나 식재료가 명확하게 보이는 사진을 업로드해주세요."
    ),
    AnalysisMode.RECEIPT_TEXT: (
        "영수증에서 식재료를 인식할 수 없습니다. "
        "다른 영수증을 시도하거나 직접 텍스트로 입력해주세요."
    ),
    AnalysisMode.FREE_TEXT: (
        "텍스트에서 식재료를 찾을 수 없습니다. 더 구체적으로 식재료 이름과 개수를 입력해주세요."
    ),
    AnalysisMode.SINGLE_LOOKUP: "식재료를 인식할 수 없습니다. 다른 이름으로 시도해주세요.",
}


class Nutrition(TypedDict):
    """Nutrition facts per 100g."""

    calories: float
    protein: float
    carbs: float
    fat: float
    vitamin: str


class IngredientObservation(TypedDict):
    """One recognized food item."""

    name: str
    quantity: int
    confidence: int
    freshness: str
    storage: list[str]
    recipes: list[str]
    nutrition: Nutrition
    tips: list[str]


class ObservationBatch(TypedDict):
    """The normalized result of one analysis call."""

    ingredients: list[IngredientObservation]
    totalCount: int
    warning: NotRequired[str]


class NormalizationError(ValueError):
    """Raised when model JSON cannot be turned into observations."""


class MalformedJsonError(NormalizationError):
    """The extracted text is not a usable JSON object.

    ``reason`` is ``"unexpected_token"`` or ``"truncated"`` for decode
    failures and ``"invalid_structure"`` when the JSON parsed but has the
    wrong shape.
    """

    def __init__(self, message: str, *, reason: str) -> None:
        super().__init__(message)
        self.reason = reason


class EmptyResultError(NormalizationError):
    """The model returned no ingredients."""


class UnrecognizedError(NormalizationError):
    """Every returned ingredient is the mode's "unknown" placeholder."""


def parse_json_object(json_text: str) -> dict[str, Any]:
    """Decode ``json_text`` and require a top-level object."""

    try:
        payload = json.loads(json_text)
    except JSONDecodeError as exc:
        logger.debug("model output was not valid JSON", exc_info=True)
        if exc.pos >= len(exc.doc.rstrip()):
            raise MalformedJsonError(
                "AI 응답이 완전하지 않습니다. 다시 시도해주세요.",
                reason="truncated",
            ) from exc
        token = exc.doc[exc.pos]
        raise MalformedJsonError(
            f"AI 응답에 잘못된 문자('{token}')가 포함되어 있습니다. 다시 시도해주세요.",
            reason="unexpected_token",
        ) from exc

    if not isinstance(payload, dict):
        raise MalformedJsonError(
            "AI 응답이 올바른 JSON 형식이 아닙니다. 다시 시도해주세요.",
            reason="invalid_structure",
        )
    return payload


def parse_quantity(value: object, default: int = DEFAULT_ITEM_QUANTITY) -> int:
    """Return a positive integer quantity derived from arbitrary input."""

    if value is None:
        return default
    quantity: int | None = None
    if isinstance(value, bool):
        quantity = int(value)
    elif isinstance(value, int):
        quantity = value
    elif isinstance(value, float):
        quantity = int(value)
    elif isinstance(value, str):
        candidate = value.strip()
        if candidate:
            try:
                quantity = int(candidate)
            except ValueError:
                try:
                    quantity = int(float(candidate))
                except ValueError:
                    quantity = None
    if quantity is None:
        return default
    return quantity if quantity > 0 else default


def _parse_confidence(value: object, default: int) -> int:
    if isinstance(value, bool) or not value:
        return default
    try:
        confidence = int(float(value))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    return max(0, min(confidence, 100))


def parse_freshness(value: object) -> str:
    if isinstance(value, str) and value.strip().lower() in FRESHNESS_LEVELS:
        return value.strip().lower()
    return DEFAULT_FRESHNESS


def string_list(value: object) -> list[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [str(entry) for entry in value if entry is not None and str(entry).strip()]


def default_storage(name: str) -> list[str]:
    return [
        f"{name}을(를) 서늘하고 건조한 곳에 보관하세요",
        "냉장보관으로 신선도를 유지하세요",
        "직사광선을 피해 보관하세요",
    ]


def default_recipes(name: str) -> list[str]:
    return [
        f"{name} 볶음 (조리시간: 15분)",
        f"{name} 샐러드 (조리시간: 5분)",
        f"{name} 스프 (조리시간: 20분)",
    ]


def default_tips(name: str) -> list[str]:
    return [
        f"신선한 {name}을(를) 선택하세요",
        "적절한 보관으로 오래 유지하세요",
        "다양한 요리법으로 활용해보세요",
    ]


def empty_nutrition(vitamin: str = UNKNOWN_VITAMIN) -> Nutrition:
    return {"calories": 0, "protein": 0, "carbs": 0, "fat": 0, "vitamin": vitamin}


def _parse_nutrition(value: object) -> Nutrition:
    nutrition = empty_nutrition()
    if not isinstance(value, Mapping):
        return nutrition
    for key in ("calories", "protein", "carbs", "fat"):
        raw = value.get(key)
        if isinstance(raw, bool):
            continue
        if isinstance(raw, (int, float)):
            nutrition[key] = raw  # type: ignore[literal-required]
        elif isinstance(raw, str):
            try:
                nutrition[key] = float(raw.strip())  # type: ignore[literal-required]
            except ValueError:
                pass
    vitamin = value.get("vitamin")
    if isinstance(vitamin, str) and vitamin.strip():
        nutrition["vitamin"] = vitamin.strip()
    return nutrition


def normalize_ingredient(
    item: Mapping[str, Any],
    mode: AnalysisMode,
    *,
    default_name: str | None = None,
    default_quantity: int = DEFAULT_ITEM_QUANTITY,
) -> IngredientObservation:
    """Fill every missing field of one model-reported ingredient.

    Defaults are applied in a fixed order: quantity, confidence,
    freshness, the templated lists, then nutrition. A missing name becomes
    ``default_name`` or the mode's unknown label.
    """

    raw_name = item.get("name")
    name = str(raw_name).strip() if raw_name is not None else ""
    if not name:
        name = default_name or mode.unknown_label

    quantity = parse_quantity(item.get("quantity"), default=default_quantity)
    confidence = _parse_confidence(item.get("confidence"), mode.default_confidence)
    freshness = parse_freshness(item.get("freshness"))
    storage = string_list(item.get("storage")) or default_storage(name)
    recipes = string_list(item.get("recipes")) or default_recipes(name)
    tips = string_list(item.get("tips")) or default_tips(name)
    nutrition = _parse_nutrition(item.get("nutrition"))

    return {
        "name": name,
        "quantity": quantity,
        "confidence": confidence,
        "freshness": freshness,
        "storage": storage,
        "recipes": recipes,
        "nutrition": nutrition,
        "tips": tips,
    }


def normalize_batch(
    payload: str | Mapping[str, Any], mode: AnalysisMode
) -> ObservationBatch:
    """Turn extracted model JSON into a validated ``ObservationBatch``.

    ``payload`` is either extracted JSON text or an already-decoded
    object. ``totalCount`` from the model is ignored and recomputed.
    """

    data = parse_json_object(payload) if isinstance(payload, str) else payload

    raw_items = data.get("ingredients")
    if not isinstance(raw_items, list) or not raw_items:
        raise EmptyResultError(_EMPTY_RESULT_MESSAGES[mode])

    ingredients: list[IngredientObservation] = []
    warning: str | None = None
    for raw_item in raw_items:
        if not isinstance(raw_item, Mapping):
            raise MalformedJsonError(
                "AI 응답 처리 중 오류가 발생했습니다. 다시 시도해주세요.",
                reason="invalid_structure",
            )
        ingredient = normalize_ingredient(raw_item, mode)
        if ingredient["confidence"] < LOW_CONFIDENCE_THRESHOLD:
            warning = LOW_CONFIDENCE_WARNING
        ingredients.append(ingredient)

    if all(item["name"] == mode.unknown_label for item in ingredients):
        raise UnrecognizedError(_UNRECOGNIZED_MESSAGES[mode])

    batch: ObservationBatch = {
        "ingredients": ingredients,
        "totalCount": total_count(ingredients),
    }
    if warning:
        batch["warning"] = warning

    logger.info(
        "normalized ingredient batch",
        extra={"mode": mode.value, "ingredient_count": len(ingredients)},
    )
    return batch


def normalize_lookup(
    payload: str | Mapping[str, Any], *, name: str, quantity: int
) -> IngredientObservation:
    """Normalize the single-object answer of an ingredient info lookup."""

    data = parse_json_object(payload) if isinstance(payload, str) else payload
    return normalize_ingredient(
        data,
        AnalysisMode.SINGLE_LOOKUP,
        default_name=name,
        default_quantity=quantity,
    )


def total_count(ingredients: list[IngredientObservation]) -> int:
    return sum(item["quantity"] for item in ingredients)


def fallback_batch() -> ObservationBatch:
    """Placeholder batch shown when the image answer had an unusable shape."""

    ingredients: list[IngredientObservation] = [
        {
            "name": "알 수 없는 식품",
            "quantity": 1,
            "confidence": 50,
            "freshness": DEFAULT_FRESHNESS,
            "storage": ["안전한 보관을 위해 냉장 보관을 권장합니다"],
            "recipes": ["정확한 식재료 확인 후 요리해주세요"],
            "nutrition": empty_nutrition(),
            "tips": [
                "더 명확한 이미지로 다시 시도해보세요",
                "조명이 좋은 곳에서 촬영해보세요",
            ],
        }
    ]
    return {
        "ingredients": ingredients,
        "totalCount": total_count(ingredients),
        "warning": FALLBACK_WARNING,
    }


def fallback_lookup(name: str, quantity: int) -> IngredientObservation:
    """Placeholder info for a manually added ingredient."""

    return {
        "name": name,
        "quantity": quantity,
        "confidence": AnalysisMode.SINGLE_LOOKUP.default_confidence,
        "freshness": DEFAULT_FRESHNESS,
        "storage": [
            f"{name}을(를) 서늘하고 건조한 곳에 보관하세요",
            "냉장보관을 권장합니다",
        ],
        "recipes": [
            f"{name}을(를) 활용한 요리를 시도해보세요",
            "신선한 상태로 섭취하세요",
        ],
        "nutrition": empty_nutrition("확인 필요"),
        "tips": [
            f"신선한 {name}을(를) 선택하세요",
            "적절한 보관으로 오래 유지하세요",
        ],
    }
