"""
Transcription Router - backend selection, failover and job lifecycle.

Routes each submitted file to a backend:
1. Files over the large-file threshold (25 MB) go to the local service only.
   If it fails the job fails; nothing else accepts files that size.
2. Smaller files start on the backend picked by the ServiceSelector, then
   fall back through the others in fixed order (local, api, queued), one at
   a time, until one succeeds.
3. A queued backend answers with a job id; the JobPoller takes it from there.

Only one job is active at a time: submitting a new one cancels the current
job first. Every attempt carries the job's CancellationToken, and anything
that arrives for a job that is no longer active is dropped.

Configuration:
    LARGE_FILE_THRESHOLD_MB, POLL_INTERVAL_SECONDS, POLL_REQUEST_TIMEOUT_SECONDS,
    MAX_POLL_DURATION_SECONDS, UPLOAD_TIMEOUT_SECONDS, CANCEL_GRACE_SECONDS
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional, Set

from ..job import TranscriptionJob
from ...notifications import (
    ALL_SERVICES_FAILED,
    Notifier,
    build_processing_complete_message,
    build_processing_error_message,
    build_processing_started_message,
    build_size_limit_message,
    build_usage_limit_message,
)
from ...usage import UsageGate, UsageLimitError
from .base import (
    AbortError,
    AllProvidersFailedError,
    AudioUpload,
    CancellationToken,
    ProviderError,
    ProviderResult,
    SizeLimitError,
    TranscriptionBackend,
)
from .poller import JobPoller
from .queued_backend import QueuedBackend
from .selector import PROVIDER_ORDER, ServiceSelector

logger = logging.getLogger('TypeMyworDz.Transcription.Router')

# Global router instance
_router = None


class TranscriptionRouter:
    """
    Drives one submitted file at a time to completed, failed or cancelled.

    Owns the provider stats (through its ServiceSelector), the active job
    and its cancellation token, and the set of job ids already finalized.
    """

    def __init__(
        self,
        backends: Optional[Dict[str, TranscriptionBackend]] = None,
        usage_gate: Optional[UsageGate] = None,
        notifier: Optional[Notifier] = None,
        selector: Optional[ServiceSelector] = None,
        large_file_threshold: Optional[int] = None,
        poll_interval: Optional[float] = None,
        poll_request_timeout: Optional[float] = None,
        max_poll_duration: Optional[float] = None,
        cancel_grace: Optional[float] = None,
    ):
        """
        Initialize transcription router.

        Args:
            backends: Backends by name (local, api, queued); built from Config if omitted
            usage_gate: Plan/usage gate; without one no limits apply and nothing is persisted
            notifier: Receives the user-facing notices
            selector: Service selector holding the provider stats
            large_file_threshold: Size in bytes above which only the local backend is used
            poll_interval: Seconds between status polls of a queued job
            poll_request_timeout: Timeout of a single status poll
            max_poll_duration: Give up on a queued job after this many seconds (0 = never)
            cancel_grace: Seconds the cancellation flag stays raised after teardown
        """
        from ...config import Config

        self.backends = backends or self._default_backends(Config.UPLOAD_TIMEOUT_SECONDS)
        self.provider_order = [name for name in PROVIDER_ORDER if name in self.backends]
        self.selector = selector or ServiceSelector(self.provider_order)
        self.usage_gate = usage_gate
        self.notifier = notifier

        self.large_file_threshold = (
            large_file_threshold if large_file_threshold is not None
            else Config.large_file_threshold_bytes()
        )
        self.cancel_grace = cancel_grace if cancel_grace is not None else Config.CANCEL_GRACE_SECONDS

        queued = self.backends.get('queued')
        self.poller = None
        if isinstance(queued, QueuedBackend):
            self.poller = JobPoller(
                queued,
                interval=poll_interval if poll_interval is not None else Config.POLL_INTERVAL_SECONDS,
                request_timeout=(
                    poll_request_timeout if poll_request_timeout is not None
                    else Config.POLL_REQUEST_TIMEOUT_SECONDS
                ),
                max_duration=max_poll_duration if max_poll_duration is not None else Config.MAX_POLL_DURATION_SECONDS,
            )

        self.cancellation_flag = False
        self.job: Optional[TranscriptionJob] = None
        self._token: Optional[CancellationToken] = None
        self._task: Optional[asyncio.Task] = None
        self._finalized: Set[str] = set()
        self._background: Set[asyncio.Task] = set()
        self._cancelling: Optional[asyncio.Task] = None

    @staticmethod
    def _default_backends(upload_timeout: Optional[float]) -> Dict[str, TranscriptionBackend]:
        from .local_backend import LocalBackend
        from .openai_backend import OpenAIBackend

        return {
            'local': LocalBackend(timeout=upload_timeout),
            'api': OpenAIBackend(timeout=upload_timeout),
            'queued': QueuedBackend(timeout=upload_timeout),
        }

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    async def submit(
        self,
        upload: AudioUpload,
        language: str = 'en',
        user_id: Optional[str] = None,
    ) -> TranscriptionJob:
        """
        Start transcribing ``upload`` in the background and return its job.

        Any job still in flight is cancelled first, and a cancellation that
        is still in its grace period is waited out.

        Raises:
            UsageLimitError: The usage gate refused; nothing was started
        """
        if self._cancelling is not None and not self._cancelling.done():
            await asyncio.shield(self._cancelling)
        if self._task is not None and not self._task.done():
            logger.info(f"New submission while job {self.job.id} is in flight, cancelling it")
            await self.cancel()
        self._clear()

        minutes = upload.estimated_minutes
        await self._check_usage(user_id, minutes)

        job = TranscriptionJob(
            file_name=upload.file_name,
            language=language,
            user_id=user_id,
            duration_minutes=minutes,
        )
        token = CancellationToken(job.id)
        self.job = job
        self._token = token
        self._task = asyncio.create_task(self._run(job, upload, token))
        return job

    async def transcribe(
        self,
        upload: AudioUpload,
        language: str = 'en',
        user_id: Optional[str] = None,
    ) -> TranscriptionJob:
        """Submit ``upload`` and wait until its job reaches a terminal state."""
        job = await self.submit(upload, language=language, user_id=user_id)
        await self.wait()
        return job

    async def wait(self) -> Optional[TranscriptionJob]:
        """Wait for the active job without cancelling it if the caller goes away."""
        task, job = self._task, self.job
        if task is not None:
            await asyncio.shield(task)
        return job

    async def cancel(self) -> Optional[TranscriptionJob]:
        """
        Cancel the active job.

        Aborts in-flight requests, asks the queue service to drop the remote
        job (fire-and-forget), waits for teardown and keeps the cancellation
        flag raised for a short grace period. Concurrent callers share one
        teardown.
        """
        if self._cancelling is None or self._cancelling.done():
            if self.job is None:
                return None
            self._cancelling = asyncio.create_task(self._teardown(self.job, self._token, self._task))
        return await asyncio.shield(self._cancelling)

    async def _teardown(
        self,
        job: TranscriptionJob,
        token: Optional[CancellationToken],
        task: Optional[asyncio.Task],
    ) -> TranscriptionJob:
        self.cancellation_flag = True
        try:
            if token is not None:
                token.cancel()

            if job.remote_job_id and not job.is_terminal:
                self._cancel_remote(job.remote_job_id)

            if task is not None and not task.done():
                await asyncio.wait({task})

            if not job.is_terminal:
                job.finish('cancelled')
                logger.info(f"Job {job.id} cancelled")

            if self.cancel_grace:
                await asyncio.sleep(self.cancel_grace)
        finally:
            self.cancellation_flag = False

        return job

    async def reset(self) -> None:
        """Cancel anything in flight and forget the current job."""
        await self.cancel()
        self._clear()

    async def finalize(self, job: TranscriptionJob, transcript: str) -> bool:
        """
        Record usage and persist the transcript, at most once per job id.

        Only the active job can be finalized. Returns False if the job was
        already finalized or is no longer active.
        """
        if job.id in self._finalized or job is not self.job:
            logger.warning(f"Job {job.id} already finalized or inactive, skipping")
            return False
        self._finalized.add(job.id)

        if self.usage_gate is None or not job.user_id:
            return True

        try:
            await asyncio.to_thread(self.usage_gate.record_usage, job.user_id, job.duration_minutes)
            await asyncio.to_thread(
                self.usage_gate.persist_result,
                job.user_id,
                job.file_name,
                transcript,
                job.duration_minutes,
                job.remote_job_id or job.id,
            )
        except Exception as e:
            logger.error(f"Failed to save transcription for job {job.id}: {e}", exc_info=True)
            await self._notify('error', "Transcript is ready but could not be saved to your history.", job)
        return True

    def get_status(self) -> Dict[str, Any]:
        """Current job, provider stats and backend status."""
        return {
            'job': self.job.to_dict() if self.job else None,
            'cancelling': self.cancellation_flag,
            'rotation_cursor': self.selector.rotation_cursor,
            'stats': self.selector.snapshot(),
            'backends': {name: backend.get_status() for name, backend in self.backends.items()},
        }

    # =========================================================================
    # ORCHESTRATION
    # =========================================================================

    async def _run(self, job: TranscriptionJob, upload: AudioUpload, token: CancellationToken) -> None:
        try:
            await self._notify('info', build_processing_started_message(upload.file_name, upload.size_mb), job)

            if upload.size > self.large_file_threshold:
                await self._run_large_file(job, upload, token)
            else:
                await self._run_with_fallback(job, upload, token)

        except AbortError:
            logger.info(f"Job {job.id} stopped after cancellation")
            if self.job is job and not job.is_terminal:
                job.finish('cancelled')
        except (SizeLimitError, AllProvidersFailedError) as e:
            if self._is_current(job, token):
                job.finish('failed', str(e))
                await self._notify('error', str(e), job)
        except Exception as e:
            logger.error(f"Unexpected error in job {job.id}: {e}", exc_info=True)
            if self._is_current(job, token):
                job.finish('failed', "Transcription failed")
                await self._notify('error', build_processing_error_message(job.file_name, str(e)), job)

    async def _run_large_file(self, job: TranscriptionJob, upload: AudioUpload, token: CancellationToken) -> None:
        threshold_mb = self.large_file_threshold / 1024 / 1024
        logger.info(f"{upload.file_name} is {upload.size_mb:.1f} MB (> {threshold_mb:.0f} MB), local backend only")

        try:
            result = await self._attempt('local', job, upload, token)
        except ProviderError as e:
            logger.error(f"Large file failed on local backend: {e}")
            raise SizeLimitError(build_size_limit_message(upload.file_name, upload.size_mb, threshold_mb)) from e

        await self._complete(job, result.transcript or '', token)

    async def _run_with_fallback(self, job: TranscriptionJob, upload: AudioUpload, token: CancellationToken) -> None:
        primary = self.selector.select()
        order = [primary] + self.selector.fallback_order(primary)
        logger.info(f"Job {job.id}: trying {' -> '.join(order)}")

        last_error = None
        for name in order:
            try:
                result = await self._attempt(name, job, upload, token)
            except ProviderError as e:
                logger.warning(f"Backend '{name}' failed: {e}")
                last_error = e
                continue

            if result.is_complete:
                await self._complete(job, result.transcript or '', token)
            else:
                await self._hand_off(job, result, token)
            return

        raise AllProvidersFailedError(ALL_SERVICES_FAILED) from last_error

    async def _attempt(
        self,
        name: str,
        job: TranscriptionJob,
        upload: AudioUpload,
        token: CancellationToken,
    ) -> ProviderResult:
        """One timed call to one backend, recorded in the provider stats."""
        token.raise_if_cancelled()
        backend = self.backends[name]
        job.status = 'uploading'
        job.source_provider = name
        job.progress = 10

        start = time.monotonic()
        try:
            result = await backend.transcribe(upload, job.language, token)
        except AbortError:
            raise
        except Exception as e:
            # A failure caused by our own cancellation is not the provider's fault
            token.raise_if_cancelled()
            self.selector.record_failure(name)
            if isinstance(e, ProviderError):
                raise
            raise ProviderError(f"{name} failed unexpectedly: {e}") from e

        if not self._is_current(job, token):
            raise AbortError(f"Dropping {name} response for inactive job {job.id}")

        elapsed_ms = (time.monotonic() - start) * 1000
        self.selector.record_success(name, elapsed_ms)
        logger.info(f"Backend '{name}' answered in {elapsed_ms:.0f}ms with status {result.status}")
        return result

    async def _hand_off(self, job: TranscriptionJob, result: ProviderResult, token: CancellationToken) -> None:
        if self.poller is None:
            raise ProviderError(f"{result.backend} returned a job id but no poller is configured")

        job.remote_job_id = result.job_id
        job.status = 'processing'
        job.progress = 50

        def on_tick(polls: int) -> None:
            if self._is_current(job, token):
                job.progress = min(90, 50 + polls * 5)

        poll = await self.poller.poll(
            result.job_id,
            token,
            on_complete=lambda transcript: self._complete(job, transcript, token),
            on_tick=on_tick,
        )

        if not self._is_current(job, token) or poll.state == 'completed':
            return

        if poll.state == 'cancelled':
            job.finish('cancelled')
            logger.info(f"Job {job.id} was cancelled by the queue service")
        else:
            job.finish('failed', poll.error)
            await self._notify('error', build_processing_error_message(job.file_name, poll.error or 'unknown error'), job)

    async def _complete(self, job: TranscriptionJob, transcript: str, token: CancellationToken) -> None:
        if not self._is_current(job, token):
            raise AbortError(f"Dropping transcript for inactive job {job.id}")

        await self.finalize(job, transcript)
        job.transcript = transcript
        job.finish('completed')

        elapsed = (job.finished_at - job.created_at).total_seconds()
        await self._notify('success', build_processing_complete_message(job.file_name, len(transcript), elapsed), job)

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _check_usage(self, user_id: Optional[str], minutes: int) -> None:
        if self.usage_gate is None:
            return

        if not user_id:
            raise UsageLimitError("Sign in to transcribe.")

        try:
            allowed = await asyncio.to_thread(self.usage_gate.can_transcribe, user_id, minutes)
        except UsageLimitError as e:
            await self._notify('error', build_usage_limit_message(str(e)))
            raise

        if not allowed:
            await self._notify('error', build_usage_limit_message())
            raise UsageLimitError("Monthly transcription limit reached.")

    def _is_current(self, job: TranscriptionJob, token: CancellationToken) -> bool:
        return self.job is job and self._token is token and not token.cancelled and not self.cancellation_flag

    def _cancel_remote(self, remote_job_id: str) -> None:
        queued = self.backends.get('queued')
        if not isinstance(queued, QueuedBackend):
            return
        task = asyncio.create_task(queued.cancel_job(remote_job_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _notify(self, level: str, message: str, job: Optional[TranscriptionJob] = None) -> None:
        if self.notifier is not None:
            await self.notifier.notify(level, message, job.id if job else None)

    def _clear(self) -> None:
        # Inactive jobs can no longer be finalized, so their ids are not needed
        self._finalized.clear()
        self.job = None
        self._token = None
        self._task = None


def get_transcription_router() -> TranscriptionRouter:
    """Get or create the global transcription router, wired from Config."""
    global _router

    if _router is None:
        from ...usage import get_usage_gate
        _router = TranscriptionRouter(usage_gate=get_usage_gate(), notifier=Notifier())

    return _router


def reset_router():
    """Reset the global router (for testing)."""
    global _router
    _router = None
