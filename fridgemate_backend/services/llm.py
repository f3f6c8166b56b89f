"""Client helpers for interacting with the hosted language model."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import openai
from httpx import RequestError, TimeoutException
from openai import OpenAI
from openai.types.responses import Response

from fridgemate_backend.config import (
    DEFAULT_RECIPE_MODEL,
    DEFAULT_RECOGNITION_MODEL,
    DEFAULT_TEXT_TIMEOUT_SECONDS,
    DEFAULT_VISION_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)

INVALID_API_KEY_MESSAGE = "OpenAI API 키가 유효하지 않습니다. API 키를 확인해주세요."
INVALID_IMAGE_FORMAT_MESSAGE = (
    "이미지 형식이 올바르지 않습니다. PNG, JPEG, GIF, WebP 형식의 이미지를 업로드해주세요."
)
UNPROCESSABLE_IMAGE_MESSAGE = "이미지를 처리할 수 없습니다. 다른 이미지를 시도해주세요."
EMPTY_RESPONSE_MESSAGE = "AI에서 응답을 받지 못했습니다. 다시 시도해주세요."
TIMEOUT_MESSAGE = "AI 응답 시간이 초과되었습니다. 다시 시도해주세요."
NETWORK_ERROR_MESSAGE = "AI 서버에 연결할 수 없습니다. 다시 시도해주세요."


class LLMError(RuntimeError):
    """Base class for failures talking to the model."""


class LLMTransportError(LLMError):
    """Network, timeout or upstream HTTP failure. Safe for the user to retry."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class LLMAuthError(LLMError):
    """The upstream rejected our credential. Never retried."""


class LLMRejectedInputError(LLMError):
    """The upstream refused the request payload (e.g. an unreadable image)."""


class LLMEmptyResponseError(LLMError):
    """The model answered without any text."""


@dataclass
class LLMSettings:
    """Configuration required to talk to the model."""

    api_key: str
    recognition_model: str = DEFAULT_RECOGNITION_MODEL
    recipe_model: str = DEFAULT_RECIPE_MODEL
    vision_timeout: float = DEFAULT_VISION_TIMEOUT_SECONDS
    text_timeout: float = DEFAULT_TEXT_TIMEOUT_SECONDS
    system_prompt: Optional[str] = None


@dataclass(slots=True)
class LLMResult:
    """Raw text returned by one completion request."""

    raw_text: str
    model: str


class LLMClient:
    """Thin wrapper around the OpenAI Responses API.

    One request per call, no retries: every retry is a user action.
    """

    def __init__(self, settings: LLMSettings, client: OpenAI | None = None) -> None:
        self._settings = settings
        self._client = client or OpenAI(api_key=settings.api_key, max_retries=0)

    @property
    def recognition_model(self) -> str:
        return self._settings.recognition_model

    @property
    def recipe_model(self) -> str:
        return self._settings.recipe_model

    def analyze_image(
        self,
        *,
        image_data_uri: str,
        prompt: str,
        max_output_tokens: int | None = None,
    ) -> LLMResult:
        """Send the given prompt and ``data:image/...`` URI to the model."""
        if not image_data_uri:
            raise ValueError("image_data_uri is empty")

        user_text = (prompt or "").strip()
        if not user_text:
            raise ValueError("prompt is required")

        content = [
            {"type": "input_text", "text": user_text},
            {"type": "input_image", "image_url": image_data_uri},
        ]
        return self._create_response(
            content,
            model=self._settings.recognition_model,
            timeout=self._settings.vision_timeout,
            max_output_tokens=max_output_tokens,
            has_image=True,
        )

    def run_prompt(
        self,
        *,
        prompt: str,
        model: str | None = None,
        max_output_tokens: int | None = None,
        temperature: float | None = None,
        timeout: float | None = None,
    ) -> LLMResult:
        """Send a text-only prompt to the model."""

        user_text = (prompt or "").strip()
        if not user_text:
            raise ValueError("prompt is required")

        return self._create_response(
            [{"type": "input_text", "text": user_text}],
            model=model or self._settings.recognition_model,
            timeout=timeout or self._settings.text_timeout,
            max_output_tokens=max_output_tokens,
            temperature=temperature,
        )

    def _create_response(
        self,
        user_content: list[dict[str, Any]],
        *,
        model: str,
        timeout: float,
        max_output_tokens: int | None = None,
        temperature: float | None = None,
        has_image: bool = False,
    ) -> LLMResult:
        messages: list[dict[str, Any]] = []
        if self._settings.system_prompt:
            messages.append(
                {
                    "role": "system",
                    "content": [
                        {
                            "type": "input_text",
                            "text": self._settings.system_prompt,
                        }
                    ],
                }
            )
        messages.append({"role": "user", "content": user_content})

        options: dict[str, Any] = {}
        if max_output_tokens:
            options["max_output_tokens"] = max_output_tokens
        if temperature is not None:
            options["temperature"] = temperature

        try:
            response: Response = self._client.responses.create(
                model=model,
                input=messages,
                timeout=timeout,
                **options,
            )
        except openai.AuthenticationError as exc:
            logger.error("OpenAI rejected the API key: %r", exc)
            raise LLMAuthError(INVALID_API_KEY_MESSAGE) from exc
        except openai.BadRequestError as exc:
            logger.error("OpenAI rejected the request: %r", exc)
            if has_image:
                if getattr(exc, "code", None) == "invalid_image_format":
                    raise LLMRejectedInputError(INVALID_IMAGE_FORMAT_MESSAGE) from exc
                raise LLMRejectedInputError(UNPROCESSABLE_IMAGE_MESSAGE) from exc
            raise LLMTransportError(
                f"OpenAI API 오류 ({exc.status_code})", status_code=exc.status_code
            ) from exc
        except openai.APIStatusError as exc:
            logger.error("OpenAI returned HTTP %s: %r", exc.status_code, exc)
            raise LLMTransportError(
                f"OpenAI API 오류 ({exc.status_code})", status_code=exc.status_code
            ) from exc
        except (openai.APITimeoutError, TimeoutException) as exc:
            logger.error("OpenAI / HTTP timeout: %r", exc)
            raise LLMTransportError(TIMEOUT_MESSAGE) from exc
        except (openai.APIConnectionError, RequestError) as exc:
            logger.error("OpenAI / HTTP network error: %r", exc)
            raise LLMTransportError(NETWORK_ERROR_MESSAGE) from exc

        output_text = (response.output_text or "").strip()
        if not output_text:
            logger.error("OpenAI response carried no text", extra={"model": model})
            raise LLMEmptyResponseError(EMPTY_RESPONSE_MESSAGE)

        logger.debug("raw model output: %s", output_text)
        return LLMResult(raw_text=output_text, model=model)


def init_llm_client(settings: LLMSettings) -> LLMClient:
    """Create an ``LLMClient`` instance from the provided settings."""

    if not settings.api_key.startswith("sk-"):
        logger.warning("configured OpenAI API key does not start with 'sk-'")
    return LLMClient(settings)
