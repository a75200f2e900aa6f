"""
OpenAI Backend - hosted Whisper transcription API.

Endpoint:
    POST /v1/audio/transcriptions  multipart(file, model, language, response_format)
    Authorization: Bearer <OPENAI_API_KEY>  ->  {text}
"""

import logging
import time
from typing import Optional

import httpx

from .base import (
    AudioUpload,
    CancellationToken,
    ProviderError,
    ProviderResult,
    TranscriptionBackend,
)

logger = logging.getLogger('TypeMyworDz.Transcription.OpenAI')


class OpenAIBackend(TranscriptionBackend):
    """
    Transcription backend using the OpenAI audio API.

    Answers synchronously; the provider's ``{text}`` body is normalized to
    a completed ProviderResult.
    """

    name = "api"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        from ...config import Config
        super().__init__(base_url or Config.OPENAI_BASE_URL, timeout=timeout, transport=transport)
        self.api_key = api_key if api_key is not None else Config.OPENAI_API_KEY
        self.model = model or Config.OPENAI_TRANSCRIBE_MODEL

    def is_available(self) -> bool:
        return bool(self.base_url and self.api_key)

    def _get_headers(self) -> dict:
        """Get request headers including auth if configured."""
        headers = {}
        if self.api_key:
            headers['Authorization'] = f'Bearer {self.api_key}'
        return headers

    async def transcribe(
        self,
        upload: AudioUpload,
        language: str,
        token: CancellationToken,
    ) -> ProviderResult:
        """Transcribe audio using the OpenAI API."""
        if not self.api_key:
            raise ProviderError("OPENAI_API_KEY not configured")

        start_time = time.time()
        logger.info(f"Sending {upload.file_name} to OpenAI ({self.model})...")

        data = {
            'model': self.model,
            'language': language,
            'response_format': 'json',
        }
        result = await self._post_multipart('/v1/audio/transcriptions', upload, data, token)

        text = result.get('text')
        if not isinstance(text, str):
            raise ProviderError("OpenAI response has no text field")

        processing_time = time.time() - start_time
        logger.info(f"OpenAI transcription complete in {processing_time:.1f}s")

        return ProviderResult(
            status='completed',
            backend=self.name,
            transcript=text,
            processing_time=processing_time,
            raw=result,
        )

    def get_status(self) -> dict:
        status = super().get_status()
        status['model'] = self.model
        return status
