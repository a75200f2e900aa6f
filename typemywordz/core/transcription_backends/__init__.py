"""
Transcription Backends - multi-provider routing with failover.

Supports three backends:
- local: Whisper-style service on the local network (the only one for large files)
- api: OpenAI audio transcription API
- queued: asynchronous job-queue service, polled until done

Usage:
    from typemywordz.core.transcription_backends import get_transcription_router

    router = get_transcription_router()
    job = await router.transcribe(AudioUpload.from_path(path), language='en', user_id=uid)
"""

from .base import (
    AbortError,
    AllProvidersFailedError,
    AudioUpload,
    BackendError,
    CancellationToken,
    PollTimeoutError,
    ProviderError,
    ProviderResult,
    SizeLimitError,
    TranscriptionBackend,
)
from .local_backend import LocalBackend
from .openai_backend import OpenAIBackend
from .poller import JobPoller, PollResult
from .queued_backend import QueuedBackend
from .router import TranscriptionRouter, get_transcription_router, reset_router
from .selector import ServiceSelector, ServiceStats

__all__ = [
    'TranscriptionRouter',
    'get_transcription_router',
    'reset_router',
    'TranscriptionBackend',
    'LocalBackend',
    'OpenAIBackend',
    'QueuedBackend',
    'JobPoller',
    'PollResult',
    'ServiceSelector',
    'ServiceStats',
    'AudioUpload',
    'ProviderResult',
    'CancellationToken',
    'BackendError',
    'ProviderError',
    'AbortError',
    'PollTimeoutError',
    'AllProvidersFailedError',
    'SizeLimitError',
]
