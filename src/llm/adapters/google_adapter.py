# src/llm/adapters/google_adapter.py - v1
"""Google Gemini adapter implementing BaseLLMClient.

Uses the google-generativeai SDK with inline image parts.
"""

from __future__ import annotations

import time
from typing import Any

from scribbledoc.llm.base_client import BaseLLMClient
from scribbledoc.llm.models import ImageInput, LLMResponse, Message


class GoogleAdapter(BaseLLMClient):
    """Google Gemini vision adapter."""

    def __init__(self, model: str = "gemini-3-flash-preview", api_key: str = "", **kwargs: Any):
        self._model = model
        self._api_key = api_key

    async def complete_with_vision(
        self,
        messages: list[Message],
        images: list[ImageInput],
        system: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.0,
    ) -> LLMResponse:
        import google.generativeai as genai

        genai.configure(api_key=self._api_key)
        model = genai.GenerativeModel(self._model, system_instruction=system)

        parts: list[dict[str, Any]] = []
        for img in images:
            parts.append({"inline_data": {"mime_type": img.media_type, "data": img.data}})
        for m in messages:
            parts.append({"text": m.content})

        t0 = time.monotonic()
        resp = await model.generate_content_async(
            parts,
            generation_config={
                "max_output_tokens": max_tokens,
                "temperature": temperature,
            },
        )
        latency = int((time.monotonic() - t0) * 1000)

        usage = getattr(resp, "usage_metadata", None)
        return LLMResponse(
            content=_response_text(resp),
            input_tokens=getattr(usage, "prompt_token_count", 0) if usage else 0,
            output_tokens=getattr(usage, "candidates_token_count", 0) if usage else 0,
            model=self._model,
            provider="google",
            latency_ms=latency,
            raw_response=resp,
        )

    @property
    def provider_name(self) -> str:
        return "google"

    @property
    def model_name(self) -> str:
        return self._model


def _response_text(resp: Any) -> str:
    # resp.text raises ValueError when the candidate carries no text part
    # (e.g. a blank page or a safety block); treat that as empty output.
    try:
        return resp.text or ""
    except ValueError:
        return ""
