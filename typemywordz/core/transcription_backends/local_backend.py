"""
Local Backend - Whisper-style transcription service on the local network.

The only backend that accepts files above the large-file threshold.

Endpoint:
    POST /transcribe  multipart(file) -> {status, transcript}
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

logger = logging.getLogger('TypeMyworDz.Transcription.Local')


class LocalBackend(TranscriptionBackend):
    """Synchronous transcription on a self-hosted Whisper service."""

    name = "local"

    def __init__(
        self,
        server_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if server_url is None:
            from ...config import Config
            server_url = Config.LOCAL_TRANSCRIBE_URL
        super().__init__(server_url, timeout=timeout, transport=transport)

    async def transcribe(
        self,
        upload: AudioUpload,
        language: str,
        token: CancellationToken,
    ) -> ProviderResult:
        """Transcribe audio on the local service."""
        start_time = time.time()
        logger.info(f"Sending {upload.file_name} ({upload.size_mb:.1f} MB) to local service...")

        result = await self._post_multipart('/transcribe', upload, {}, token)

        transcript = result.get('transcript')
        if not isinstance(transcript, str):
            raise ProviderError(f"local service returned no transcript (status={result.get('status')})")
        if result.get('status') not in (None, 'completed', 'success'):
            raise ProviderError(f"local service reported status {result.get('status')}")

        processing_time = time.time() - start_time
        logger.info(f"Local transcription complete in {processing_time:.1f}s")

        return ProviderResult(
            status='completed',
            backend=self.name,
            transcript=transcript,
            processing_time=processing_time,
            raw=result,
        )
