# src/transcription/llm_transcriber.py - v1
"""Transcription port backed by a vision LLM.

Progress protocol: 0.3 once the image is prepared, 1.0 once the model has
answered. Every failure surfaces as TranscriptionError.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from scribbledoc.core.errors import TranscriptionError
from scribbledoc.llm.models import ImageInput, Message
from scribbledoc.llm.retry import LLMRetryExhausted, build_retry_configs, with_retry
from scribbledoc.transcription.base_transcriber import ProgressCallback, TranscriptionPort
from scribbledoc.transcription.image_prep import (
    DEFAULT_JPEG_QUALITY,
    DEFAULT_MAX_DIMENSION,
    prepare_image,
)

if TYPE_CHECKING:
    from scribbledoc.config.settings import Settings
    from scribbledoc.core.models import OCRConfig
    from scribbledoc.llm.base_client import BaseLLMClient

logger = logging.getLogger(__name__)

NO_TEXT_DETECTED = "No text detected in the image."

_PROMPT_TEMPLATE = """Transcribe the handwritten text in this image accurately.
Maintain original paragraphs and structure.
Language: {language}.
Output ONLY the transcribed text without any greetings or explanations."""


class LLMTranscriber(TranscriptionPort):
    """Transcribe handwritten notes through a vision LLM client.

    Args:
        llm: Vision-capable client; None means no credential was configured.
        max_dimension: Longest image side sent to the model.
        jpeg_quality: JPEG quality of the uploaded image.
        max_tokens: Output token cap per page.
        max_retries: Retries for rate-limit/server errors inside one call.
    """

    def __init__(
        self,
        llm: BaseLLMClient | None,
        max_dimension: int = DEFAULT_MAX_DIMENSION,
        jpeg_quality: int = DEFAULT_JPEG_QUALITY,
        max_tokens: int = 4096,
        max_retries: int = 2,
    ) -> None:
        self._llm = llm
        self._max_dimension = max_dimension
        self._jpeg_quality = jpeg_quality
        self._max_tokens = max_tokens
        self._retry_configs = build_retry_configs(max_retries)

    @classmethod
    def from_settings(cls, settings: Settings) -> LLMTranscriber:
        """Build from settings; the client is omitted when no key is set."""
        llm = None
        if settings.has_credentials:
            from scribbledoc.llm.client_factory import create_llm_client

            llm = create_llm_client(settings.llm_provider, settings.llm_model, settings)
        return cls(
            llm,
            max_dimension=settings.image_max_dimension,
            jpeg_quality=settings.image_jpeg_quality,
            max_tokens=settings.llm_max_tokens,
            max_retries=settings.transcription_max_retries,
        )

    @property
    def requires_credentials(self) -> bool:
        return True

    @property
    def has_credentials(self) -> bool:
        return self._llm is not None

    async def transcribe(
        self,
        image: bytes,
        config: OCRConfig,
        on_progress: ProgressCallback,
    ) -> str:
        if self._llm is None:
            raise TranscriptionError(
                "API key is missing. Configure GOOGLE_API_KEY before transcribing."
            )

        try:
            prepared = await asyncio.to_thread(
                prepare_image, image, config, self._max_dimension, self._jpeg_quality,
            )
        except Exception as exc:
            raise TranscriptionError(f"Could not read image: {exc}", cause=exc) from exc

        on_progress(0.3)

        try:
            response = await with_retry(
                self._llm.complete_with_vision,
                messages=[
                    Message(role="user", content=_PROMPT_TEMPLATE.format(language=config.language))
                ],
                images=[ImageInput(data=prepared, media_type="image/jpeg")],
                max_tokens=self._max_tokens,
                operation="transcription",
                retry_configs=self._retry_configs,
            )
        except LLMRetryExhausted as exc:
            logger.error("Transcription call failed: %s", exc)
            raise TranscriptionError(
                "Failed to extract text. Check the API key and network connection.",
                cause=exc.last_error,
            ) from exc

        on_progress(1.0)
        logger.debug(
            "Transcribed %d bytes in %dms (%d output tokens)",
            len(prepared), response.latency_ms, response.output_tokens,
        )
        return response.content.strip() or NO_TEXT_DETECTED
