import asyncio
from typing import Any, Callable, Dict, List, Optional, Union

import pytest

from typemywordz.core.transcription_backends import (
    AudioUpload,
    CancellationToken,
    ProviderError,
    ProviderResult,
    QueuedBackend,
    TranscriptionBackend,
    TranscriptionRouter,
)
from typemywordz.notifications import Notifier
from typemywordz.usage import InMemoryUsageGate


HANG = object()

Outcome = Union[ProviderResult, Exception, object]


class FakeBackend(TranscriptionBackend):
    """Backend that replays scripted outcomes; HANG waits until cancelled."""

    def __init__(self, name: str, outcomes: Optional[List[Outcome]] = None):
        super().__init__(f"https://{name}.mock")
        self.name = name
        self.outcomes = list(outcomes or [])
        self.calls: List[str] = []

    async def _respond(self, outcome):
        if outcome is HANG:
            await asyncio.Event().wait()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def transcribe(self, upload, language, token):
        self.calls.append(upload.file_name)
        outcome = self.outcomes.pop(0) if self.outcomes else ProviderError(f"{self.name} has no scripted outcome")
        return await token.run(self._respond(outcome))


class FakeQueuedBackend(QueuedBackend):
    """Queue backend with scripted submit outcomes and status bodies."""

    def __init__(
        self,
        submit: Optional[List[Outcome]] = None,
        statuses: Optional[List[Any]] = None,
        default_status: Optional[Dict[str, Any]] = None,
    ):
        super().__init__("https://queue.mock")
        self.submit_outcomes = list(submit or [])
        self.statuses = list(statuses or [])
        self.default_status = default_status or {'status': 'processing'}
        self.calls: List[str] = []
        self.status_calls: List[str] = []
        self.cancelled: List[str] = []

    async def transcribe(self, upload, language, token):
        self.calls.append(upload.file_name)
        outcome = self.submit_outcomes.pop(0) if self.submit_outcomes else ProviderError("queue has no scripted outcome")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def check_status(self, job_id, timeout, token):
        self.status_calls.append(job_id)
        body = self.statuses.pop(0) if self.statuses else self.default_status
        if isinstance(body, Exception):
            raise body
        return dict(body)

    async def cancel_job(self, job_id, timeout=5.0):
        self.cancelled.append(job_id)
        return True


def completed(backend: str, transcript: str = "hello world") -> ProviderResult:
    return ProviderResult(status='completed', backend=backend, transcript=transcript)


def queued(job_id: str = "remote-1") -> ProviderResult:
    return ProviderResult(status='processing', backend='queued', job_id=job_id)


def make_upload(size: int = 1024, name: str = "memo.mp3") -> AudioUpload:
    return AudioUpload(file_name=name, content=b"\0" * size, content_type="audio/mpeg", duration_seconds=90)


def make_router(
    local: Optional[TranscriptionBackend] = None,
    api: Optional[TranscriptionBackend] = None,
    queue: Optional[QueuedBackend] = None,
    usage_gate: Optional[InMemoryUsageGate] = None,
    **kwargs,
) -> TranscriptionRouter:
    backends = {
        'local': local or FakeBackend('local'),
        'api': api or FakeBackend('api'),
        'queued': queue or FakeQueuedBackend(),
    }
    options = dict(
        usage_gate=usage_gate,
        notifier=Notifier(webhook_url=''),
        large_file_threshold=25 * 1024 * 1024,
        poll_interval=0,
        poll_request_timeout=1,
        max_poll_duration=0,
        cancel_grace=0,
    )
    options.update(kwargs)
    return TranscriptionRouter(backends=backends, **options)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)


@pytest.fixture
def gate():
    usage_gate = InMemoryUsageGate(admin_emails=["admin@typemywordz.com"])
    usage_gate.create_profile("user-1", "user@example.com", "User One")
    return usage_gate


@pytest.fixture
def token():
    return CancellationToken("job-test")
