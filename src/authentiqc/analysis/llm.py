from __future__ import annotations

import json
import logging
import time
from typing import Any, Protocol, TypeVar
from urllib import error, request

from pydantic import BaseModel

TModel = TypeVar("TModel", bound=BaseModel)
logger = logging.getLogger(__name__)

ContentPart = dict[str, Any]


class VisionModelAdapter(Protocol):
    """Interface for structured multimodal completions."""

    def generate_structured(
        self,
        *,
        model: str,
        system_prompt: str,
        parts: list[ContentPart],
        response_model: type[TModel],
        timeout_s: float,
    ) -> TModel: ...


def text_part(text: str) -> ContentPart:
    return {"type": "text", "text": text}


def image_part(image: str) -> ContentPart:
    """Build an image content part from a data URL, an http(s) URL or raw base64."""
    if image.startswith(("data:", "http://", "https://")):
        url = image
    else:
        url = f"data:image/jpeg;base64,{image}"
    return {"type": "image_url", "image_url": {"url": url}}


class OpenAIVisionAdapter:
    """Small OpenAI adapter using the chat completions REST API with image parts."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        max_retries: int = 1,
        backoff_s: float = 0.2,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.max_retries = max(0, max_retries)
        self.backoff_s = max(0.0, backoff_s)

    def generate_structured(
        self,
        *,
        model: str,
        system_prompt: str,
        parts: list[ContentPart],
        response_model: type[TModel],
        timeout_s: float,
    ) -> TModel:
        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": parts},
            ],
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": response_model.__name__.lower(),
                    "strict": False,
                    "schema": response_model.model_json_schema(),
                },
            },
        }
        response_json = self._request_with_retry(payload, model=model, timeout_s=timeout_s)
        content = self._extract_content(response_json)
        parsed = json.loads(_strip_code_fence(content))
        return response_model.model_validate(parsed)

    def _request_with_retry(
        self, payload: dict[str, Any], *, model: str, timeout_s: float
    ) -> dict[str, Any]:
        last_error: Exception | None = None
        for attempt in range(self.max_retries + 1):
            try:
                return self._request(payload, timeout_s=timeout_s)
            except (TimeoutError, ValueError, error.URLError, error.HTTPError) as exc:
                last_error = exc
                logger.warning(
                    "OpenAI request failed attempt=%d/%d model=%s reason=%s",
                    attempt + 1,
                    self.max_retries + 1,
                    model,
                    exc,
                )
                if attempt < self.max_retries and self.backoff_s > 0:
                    time.sleep(self.backoff_s)
        if last_error is None:
            raise RuntimeError("Vision request failed with unknown error")
        raise last_error

    def _request(self, payload: dict[str, Any], timeout_s: float) -> dict[str, Any]:
        url = f"{self.base_url}/chat/completions"
        req = request.Request(
            url=url,
            data=json.dumps(payload).encode("utf-8"),
            method="POST",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )
        try:
            with request.urlopen(req, timeout=timeout_s) as response:
                body = response.read().decode("utf-8")
        except error.HTTPError as exc:
            raw_error = exc.read().decode("utf-8", errors="replace")
            raise error.HTTPError(
                exc.url,
                exc.code,
                f"OpenAI API request failed: {raw_error}",
                exc.headers,
                exc.fp,
            ) from exc
        return json.loads(body)

    @staticmethod
    def _extract_content(response_json: dict[str, Any]) -> str:
        choices = response_json.get("choices", [])
        if not choices:
            raise ValueError("OpenAI response did not contain choices")

        message = choices[0].get("message", {})
        content = message.get("content", "")
        if isinstance(content, str) and content.strip():
            return content
        if isinstance(content, list):
            text_segments: list[str] = []
            for item in content:
                if isinstance(item, dict):
                    text = item.get("text")
                    if isinstance(text, str):
                        text_segments.append(text)
            merged = "".join(text_segments).strip()
            if merged:
                return merged
        raise ValueError("OpenAI response content could not be parsed as text")


def _strip_code_fence(content: str) -> str:
    # Some models wrap JSON in ```json fences despite the response format.
    text = content.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()
