"""
Job Poller - drives one queued job to a terminal state.

    polling -> completed | failed | cancelled | timed_out

A status request that times out only counts as "still processing". Local
cancellation stops the loop with AbortError and never reaches finalize.
"""

import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .base import CancellationToken, PollTimeoutError, ProviderError
from .queued_backend import QueuedBackend

logger = logging.getLogger('TypeMyworDz.Transcription.Poller')

PENDING_STATUSES = ('processing', 'idle', 'queued')
CANCELLED_STATUSES = ('cancelled', 'canceled')
STATUS_CHECK_FAILED = "Status check failed"


@dataclass
class PollResult:
    state: str  # completed, failed, cancelled, timed_out
    transcript: Optional[str] = None
    error: Optional[str] = None
    polls: int = 0


class JobPoller:
    def __init__(
        self,
        backend: QueuedBackend,
        interval: float = 2.0,
        request_timeout: float = 10.0,
        max_duration: Optional[float] = None,
    ):
        """
        Args:
            backend: Queue service client
            interval: Seconds between status requests
            request_timeout: Timeout for each status request
            max_duration: Overall deadline in seconds (None or 0 polls forever)
        """
        self.backend = backend
        self.interval = interval
        self.request_timeout = request_timeout
        self.max_duration = max_duration or None

    async def poll(
        self,
        job_id: str,
        token: CancellationToken,
        on_complete: Callable[[str], Awaitable[None]],
        on_tick: Optional[Callable[[int], None]] = None,
    ) -> PollResult:
        """
        Poll until the job reaches a terminal state.

        ``on_complete`` runs once, with the transcript, only when the server
        reports completion and the token has not fired.

        Raises:
            AbortError: The token fired; nothing was finalized
        """
        started = time.monotonic()
        polls = 0
        logger.info(f"Polling job {job_id} every {self.interval}s")

        while True:
            token.raise_if_cancelled()
            polls += 1
            body = None
            try:
                body = await self.backend.check_status(job_id, self.request_timeout, token)
            except PollTimeoutError as e:
                token.raise_if_cancelled()
                logger.warning(f"{e}; still processing")
            except ProviderError as e:
                token.raise_if_cancelled()
                logger.error(f"Status check for job {job_id} failed: {e}")
                return PollResult('failed', error=STATUS_CHECK_FAILED, polls=polls)

            token.raise_if_cancelled()

            if body is not None:
                status = str(body.get('status', '')).lower()

                if status == 'completed':
                    transcript = body.get('transcript') or body.get('transcription') or ''
                    logger.info(f"Job {job_id} completed after {polls} poll(s)")
                    await on_complete(transcript)
                    return PollResult('completed', transcript=transcript, polls=polls)

                if status == 'failed':
                    error = body.get('error') or 'Transcription failed'
                    logger.warning(f"Job {job_id} failed on the server: {error}")
                    return PollResult('failed', error=error, polls=polls)

                if status in CANCELLED_STATUSES:
                    logger.info(f"Job {job_id} was cancelled on the server")
                    return PollResult('cancelled', polls=polls)

                if status not in PENDING_STATUSES:
                    logger.error(f"Job {job_id} reported unexpected status '{status}'")
                    return PollResult('failed', error=STATUS_CHECK_FAILED, polls=polls)

            if on_tick:
                on_tick(polls)

            if self.max_duration and time.monotonic() - started >= self.max_duration:
                logger.error(f"Job {job_id} still pending after {self.max_duration:.0f}s, giving up")
                return PollResult(
                    'timed_out',
                    error=f"Transcription timed out after {self.max_duration / 60:.0f} minutes",
                    polls=polls,
                )

            await token.sleep(self.interval)
