"""Recognition pipeline: model call, JSON extraction, normalization."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fridgemate_backend.config.llm import (
    IMAGE_ANALYSIS_MAX_TOKENS,
    INGREDIENT_INFO_MAX_TOKENS,
    TEXT_ANALYSIS_MAX_TOKENS,
)
from fridgemate_backend.services.extraction import ExtractionError, extract_json_text
from fridgemate_backend.services.llm import LLMClient
from fridgemate_backend.services.normalization import (
    FALLBACK_WARNING,
    AnalysisMode,
    IngredientObservation,
    MalformedJsonError,
    ObservationBatch,
    fallback_batch,
    fallback_lookup,
    normalize_batch,
    normalize_lookup,
    parse_json_object,
)
from fridgemate_backend.services.prompts import (
    IMAGE_ANALYSIS_PROMPT,
    build_ingredient_info_prompt,
    build_text_analysis_prompt,
)
from fridgemate_backend.services.receipt import is_receipt_payload, run_receipt_pipeline

logger = logging.getLogger(__name__)

IMAGE_DATA_PREFIX = "data:image/"


@dataclass(slots=True)
class LookupResult:
    """Info for one manually entered ingredient plus an optional caveat."""

    ingredient: IngredientObservation
    warning: str | None = None


def analyze_image(llm_client: LLMClient, image_data: str) -> ObservationBatch:
    """Recognize the ingredients (or receipt) in a photo.

    Receipt photos take a second model hop through the receipt pipeline.
    A parsed answer with an unusable shape degrades to a placeholder batch;
    every other failure propagates.
    """

    if not image_data or not image_data.startswith(IMAGE_DATA_PREFIX):
        raise ValueError("올바르지 않은 이미지 데이터 형식입니다.")

    result = llm_client.analyze_image(
        image_data_uri=image_data,
        prompt=IMAGE_ANALYSIS_PROMPT,
        max_output_tokens=IMAGE_ANALYSIS_MAX_TOKENS,
    )
    json_text = extract_json_text(result.raw_text)

    try:
        payload = parse_json_object(json_text)
        if is_receipt_payload(payload):
            return run_receipt_pipeline(llm_client, payload.get("text"))
        return normalize_batch(payload, AnalysisMode.VISION)
    except MalformedJsonError as exc:
        if exc.reason != "invalid_structure":
            raise
        logger.warning(
            "image analysis returned unusable JSON; serving fallback batch",
            extra={"model": result.model},
        )
        return fallback_batch()


def analyze_text(llm_client: LLMClient, text: str) -> ObservationBatch:
    """Recognize ingredients in free text like "사과 3개, 바나나 2개"."""

    if not text or not text.strip():
        raise ValueError("Text is required")

    result = llm_client.run_prompt(
        prompt=build_text_analysis_prompt(text),
        model=llm_client.recognition_model,
        max_output_tokens=TEXT_ANALYSIS_MAX_TOKENS,
    )
    return normalize_batch(extract_json_text(result.raw_text), AnalysisMode.FREE_TEXT)


def lookup_ingredient(llm_client: LLMClient, name: str, quantity: int) -> LookupResult:
    """Describe one named ingredient, falling back to canned info on bad JSON."""

    result = llm_client.run_prompt(
        prompt=build_ingredient_info_prompt(name, quantity),
        model=llm_client.recognition_model,
        max_output_tokens=INGREDIENT_INFO_MAX_TOKENS,
    )
    try:
        ingredient = normalize_lookup(
            extract_json_text(result.raw_text), name=name, quantity=quantity
        )
    except (ExtractionError, MalformedJsonError):
        logger.warning(
            "ingredient info answer was not usable; serving fallback",
            extra={"ingredient": name},
        )
        return LookupResult(fallback_lookup(name, quantity), FALLBACK_WARNING)
    return LookupResult(ingredient)
