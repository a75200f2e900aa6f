"""
Queued Backend - asynchronous job-queue transcription service.

Submitting returns a job id straight away; the transcript is fetched later
by the JobPoller.

Endpoints:
    POST /transcribe-fallback  multipart(file, language_code) -> {job_id}
    GET  /status/{job_id}      -> {status, transcript?, error?}
    POST /cancel/{job_id}      best effort
"""

import logging
import time
from typing import Any, Dict, Optional

import httpx

from .base import (
    AudioUpload,
    CancellationToken,
    PollTimeoutError,
    ProviderError,
    ProviderResult,
    TranscriptionBackend,
)

logger = logging.getLogger('TypeMyworDz.Transcription.Queued')


class QueuedBackend(TranscriptionBackend):
    """Job-queue backend (AssemblyAI-style worker behind a small HTTP API)."""

    name = "queued"

    def __init__(
        self,
        server_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if server_url is None:
            from ...config import Config
            server_url = Config.QUEUE_SERVICE_URL
        super().__init__(server_url, timeout=timeout, transport=transport)

    async def transcribe(
        self,
        upload: AudioUpload,
        language: str,
        token: CancellationToken,
    ) -> ProviderResult:
        """Submit audio to the queue. Does not wait for the transcript."""
        start_time = time.time()
        logger.info(f"Queueing {upload.file_name} ({upload.size_mb:.1f} MB)...")

        result = await self._post_multipart(
            '/transcribe-fallback', upload, {'language_code': language}, token
        )

        job_id = result.get('job_id')
        if not job_id:
            raise ProviderError("queue service accepted the upload but returned no job_id")

        processing_time = time.time() - start_time
        logger.info(f"Queued as job {job_id} in {processing_time:.1f}s")

        return ProviderResult(
            status='processing',
            backend=self.name,
            job_id=str(job_id),
            processing_time=processing_time,
            raw=result,
        )

    async def check_status(
        self,
        job_id: str,
        timeout: float,
        token: CancellationToken,
    ) -> Dict[str, Any]:
        """
        Fetch the status of a queued job.

        Raises:
            PollTimeoutError: This single request exceeded ``timeout``
            ProviderError: Network failure, non-2xx or malformed body
            AbortError: The token fired mid-request
        """
        url = f"{self.base_url}/status/{job_id}"
        try:
            async with self._client(timeout) as client:
                response = await token.run(client.get(url, headers=self._get_headers()))
        except httpx.TimeoutException as e:
            raise PollTimeoutError(f"Status request for {job_id} timed out after {timeout}s") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Status request for {job_id} failed: {e}") from e

        if not response.is_success:
            raise ProviderError(f"Status request for {job_id} returned {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise ProviderError(f"Status for {job_id} is not JSON") from e

        if not isinstance(body, dict):
            raise ProviderError(f"Status for {job_id} is malformed")
        return body

    async def cancel_job(self, job_id: str, timeout: float = 5.0) -> bool:
        """Ask the queue to drop a job. Failures are logged and ignored."""
        url = f"{self.base_url}/cancel/{job_id}"
        try:
            async with self._client(timeout) as client:
                response = await client.post(url, headers=self._get_headers())
            if response.is_success:
                logger.info(f"Cancel request for job {job_id} accepted")
                return True
            logger.warning(f"Cancel request for job {job_id} returned {response.status_code}")
        except httpx.HTTPError as e:
            logger.warning(f"Cancel request for job {job_id} failed: {e}")
        return False

    async def ping(self, timeout: float = 10.0) -> bool:
        """Hit the service root so a sleeping free-tier host stays warm."""
        try:
            async with self._client(timeout) as client:
                response = await client.get(f"{self.base_url}/")
            logger.debug(f"Keep-alive ping returned {response.status_code}")
            return response.is_success
        except httpx.HTTPError as e:
            logger.warning(f"Keep-alive ping failed: {e}")
            return False
