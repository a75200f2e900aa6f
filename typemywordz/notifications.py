"""
User-facing notices for the transcription flow.
One toast-style message per started job and per terminal outcome,
optionally forwarded to a webhook.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

import httpx

logger = logging.getLogger('TypeMyworDz.Notifications')

ALL_SERVICES_FAILED = "All transcription services failed. Please try again later."


@dataclass
class Notice:
    level: str  # info, success, error
    message: str
    job_id: Optional[str] = None
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict:
        return {
            'level': self.level,
            'message': self.message,
            'job_id': self.job_id,
            'created_at': self.created_at,
        }


class Notifier:
    """Collects notices for the UI and forwards them to NOTIFY_WEBHOOK_URL if set."""

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        history: int = 50,
    ):
        if webhook_url is None:
            from .config import Config
            webhook_url = Config.NOTIFY_WEBHOOK_URL
        self.webhook_url = webhook_url
        self._transport = transport
        self._history = history
        self.notices: List[Notice] = []

    def latest(self) -> Optional[Notice]:
        return self.notices[-1] if self.notices else None

    async def notify(self, level: str, message: str, job_id: Optional[str] = None) -> Notice:
        notice = Notice(level=level, message=message, job_id=job_id)
        self.notices.append(notice)
        del self.notices[:-self._history]

        log = logger.error if level == 'error' else logger.info
        log(f"[{level}] {message}")

        if self.webhook_url:
            await self._send_webhook(notice)
        return notice

    async def _send_webhook(self, notice: Notice) -> bool:
        try:
            async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
                response = await client.post(self.webhook_url, json=notice.to_dict())

            if response.status_code == 200:
                logger.debug("Webhook notification sent")
                return True
            logger.error(f"Webhook send failed: {response.status_code}")
            return False

        except httpx.HTTPError as e:
            logger.error(f"Error sending webhook notification: {e}")
            return False


def build_processing_started_message(filename: str, file_size_mb: float = None, backend: str = None) -> str:
    """Build message when starting to process a file."""
    parts = [f"Transcribing {filename}"]
    if file_size_mb:
        parts.append(f"({file_size_mb:.1f} MB)")
    if backend:
        parts.append(f"via {backend}")
    return " ".join(parts) + "..."


def build_processing_complete_message(
    filename: str,
    transcript_length: int = 0,
    processing_time_seconds: float = 0,
) -> str:
    """Build the completion message with rough word count and timing."""
    stats = []
    if transcript_length > 0:
        words = transcript_length // 5  # Rough word count
        stats.append(f"~{words} words")
    if processing_time_seconds > 0:
        if processing_time_seconds < 60:
            stats.append(f"{processing_time_seconds:.0f}s")
        else:
            stats.append(f"{processing_time_seconds / 60:.1f}min")

    message = f"Transcription complete: {filename}"
    if stats:
        message += f" ({', '.join(stats)})"
    return message


def build_processing_error_message(filename: str, error: str) -> str:
    """Build error message for failed processing."""
    return f"Transcription failed for {filename}: {error[:200]}"


def build_size_limit_message(filename: str, file_size_mb: float, threshold_mb: float) -> str:
    return (
        f"{filename} is {file_size_mb:.1f} MB. Files over {threshold_mb:.0f} MB can only be "
        f"handled by our large-file service, which failed. Please try again or upload a smaller file."
    )


def build_usage_limit_message(reason: Optional[str] = None) -> str:
    message = reason or "You have reached your monthly transcription limit."
    return f"{message} Upgrade your plan to continue."
