"""Second-hop extraction for photos the model classified as receipts."""

from __future__ import annotations

import logging

from fridgemate_backend.config.llm import RECEIPT_ANALYSIS_MAX_TOKENS
from fridgemate_backend.services.extraction import extract_json_text
from fridgemate_backend.services.llm import LLMClient
from fridgemate_backend.services.normalization import (
    AnalysisMode,
    EmptyResultError,
    ObservationBatch,
    normalize_batch,
)
from fridgemate_backend.services.prompts import build_receipt_prompt

logger = logging.getLogger(__name__)

RECEIPT_TYPE = "receipt"
RECEIPT_WARNING = "영수증에서 추출된 정보입니다. 실제 구매한 식재료와 다를 수 있습니다."
EMPTY_RECEIPT_MESSAGE = (
    "영수증에서 텍스트를 추출할 수 없습니다. 더 명확한 이미지로 다시 시도해주세요."
)


def is_receipt_payload(payload: dict) -> bool:
    return payload.get("type") == RECEIPT_TYPE


def run_receipt_pipeline(llm_client: LLMClient, ocr_text: object) -> ObservationBatch:
    """Extract ingredients from OCR'd receipt text with a second model call.

    The batch warning is always the receipt provenance notice. It replaces
    any low-confidence warning rather than being combined with it.
    """

    text = ocr_text.strip() if isinstance(ocr_text, str) else ""
    if not text:
        raise EmptyResultError(EMPTY_RECEIPT_MESSAGE)

    logger.info("receipt detected; running text extraction", extra={"chars": len(text)})
    result = llm_client.run_prompt(
        prompt=build_receipt_prompt(text),
        model=llm_client.recognition_model,
        max_output_tokens=RECEIPT_ANALYSIS_MAX_TOKENS,
    )
    batch = normalize_batch(
        extract_json_text(result.raw_text), AnalysisMode.RECEIPT_TEXT
    )
    batch["warning"] = RECEIPT_WARNING
    return batch
