"""
Base classes for transcription backends.
"""

import asyncio
import logging
import math
import mimetypes
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Dict, Optional, TypeVar

import httpx

logger = logging.getLogger('TypeMyworDz.Transcription.Base')

T = TypeVar('T')

# Rough bitrate used when the real duration cannot be probed (~128 kbps).
BYTES_PER_MINUTE_ESTIMATE = 1024 * 1024


class BackendError(Exception):
    """Base exception for backend errors."""
    pass


class ProviderError(BackendError):
    """Provider answered non-2xx or broke its response contract."""
    pass


class AbortError(BackendError):
    """The request was aborted because its job was cancelled."""
    pass


class PollTimeoutError(BackendError):
    """A single status request ran past its timeout."""
    pass


class AllProvidersFailedError(BackendError):
    """Every provider was tried and none produced a result."""
    pass


class SizeLimitError(BackendError):
    """A large file failed on the only backend that accepts it."""
    pass


class CancellationToken:
    """
    Cooperative cancellation shared by one job's requests and polling loop.

    Requests awaited through ``run()`` are aborted as soon as ``cancel()``
    is called and surface as ``AbortError``.
    """

    def __init__(self, job_id: Optional[str] = None):
        self.job_id = job_id
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise AbortError(f"Job {self.job_id} was cancelled")

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, seconds: float) -> None:
        """Sleep, waking early with AbortError if the token fires."""
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise AbortError(f"Job {self.job_id} was cancelled")

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first."""
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise AbortError(f"Job {self.job_id} was cancelled")
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if self.cancelled:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.debug(f"Aborted request ended with: {e}")
            raise AbortError(f"Job {self.job_id} was cancelled")

        return task.result()


@dataclass
class AudioUpload:
    """An uploaded or recorded audio/video file."""
    file_name: str
    content: bytes
    content_type: str = 'application/octet-stream'
    duration_seconds: Optional[float] = None

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def size_mb(self) -> float:
        return self.size / 1024 / 1024

    @property
    def estimated_minutes(self) -> int:
        """Billable minutes, rounded up."""
        if self.duration_seconds:
            return max(1, math.ceil(self.duration_seconds / 60))
        return max(1, math.ceil(self.size / BYTES_PER_MINUTE_ESTIMATE))

    def as_file_field(self) -> tuple:
        return (self.file_name, self.content, self.content_type)

    @classmethod
    def from_path(cls, audio_path: Path, content_type: Optional[str] = None) -> 'AudioUpload':
        """Read a file from disk, probing its duration with ffprobe via pydub."""
        audio_path = Path(audio_path)
        duration = None
        try:
            from pydub.utils import mediainfo
            info = mediainfo(str(audio_path))
            duration = float(info.get('duration', 0)) or None
        except Exception as e:
            logger.debug(f"Could not get audio duration: {e}")

        return cls(
            file_name=audio_path.name,
            content=audio_path.read_bytes(),
            content_type=content_type or _guess_content_type(audio_path),
            duration_seconds=duration,
        )


def _guess_content_type(audio_path: Path) -> str:
    guessed, _ = mimetypes.guess_type(audio_path.name)
    return guessed or 'application/octet-stream'


@dataclass
class ProviderResult:
    """Normalized answer from any backend."""
    status: str  # "completed" or "processing"
    backend: str
    transcript: Optional[str] = None
    job_id: Optional[str] = None
    processing_time: float = 0.0
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        return self.status == 'completed'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status,
            'backend': self.backend,
            'transcript': self.transcript,
            'job_id': self.job_id,
            'processing_time': self.processing_time,
        }


class TranscriptionBackend(ABC):
    """Abstract base class for transcription backends."""

    name: str = "base"

    def __init__(
        self,
        base_url: Optional[str],
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: Root URL of the provider
            timeout: Upload timeout in seconds (None waits indefinitely)
            transport: Optional httpx transport, used to fake the network in tests
        """
        self.base_url = (base_url or '').rstrip('/')
        self.timeout = timeout
        self._transport = transport

    def is_available(self) -> bool:
        """Check if this backend is configured."""
        return bool(self.base_url)

    def _client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(timeout if timeout is not None else self.timeout),
            transport=self._transport,
        )

    def _get_headers(self) -> dict:
        return {}

    async def _post_multipart(
        self,
        path: str,
        upload: AudioUpload,
        data: Dict[str, str],
        token: CancellationToken,
    ) -> Dict[str, Any]:
        """POST the file and return the decoded JSON body of a 2xx response."""
        if not self.base_url:
            raise ProviderError(f"{self.name} backend has no URL configured")

        url = f"{self.base_url}{path}"
        try:
            async with self._client() as client:
                response = await token.run(client.post(
                    url,
                    files={'file': upload.as_file_field()},
                    data=data,
                    headers=self._get_headers(),
                ))
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.name} request failed: {e}") from e

        if not response.is_success:
            raise ProviderError(f"{self.name} server error: {response.status_code} - {response.text[:200]}")

        try:
            body = response.json()
        except ValueError as e:
            raise ProviderError(f"{self.name} returned a malformed body") from e

        if not isinstance(body, dict):
            raise ProviderError(f"{self.name} returned a malformed body")
        return body

    @abstractmethod
    async def transcribe(
        self,
        upload: AudioUpload,
        language: str,
        token: CancellationToken,
    ) -> ProviderResult:
        """
        Send an upload to this provider.

        Args:
            upload: File to transcribe
            language: Language code (e.g., 'en', 'fr')
            token: Cancellation token of the job this request belongs to

        Returns:
            ProviderResult, either completed with a transcript or processing with a job id

        Raises:
            ProviderError: Provider failed or broke its contract
            AbortError: The token fired before the provider answered
        """
        pass

    def get_status(self) -> Dict[str, Any]:
        """Get backend status information."""
        return {
            'name': self.name,
            'available': self.is_available(),
            'url': self.base_url,
        }
