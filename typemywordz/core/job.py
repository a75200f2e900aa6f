"""Transcription job state."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

JOB_STATUSES = ('idle', 'uploading', 'processing', 'completed', 'failed', 'cancelled')
TERMINAL_STATUSES = ('completed', 'failed', 'cancelled')


@dataclass
class TranscriptionJob:
    """One submitted file, from upload to a terminal state."""
    file_name: str
    language: str
    user_id: Optional[str] = None
    duration_minutes: int = 0
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: str = 'idle'
    source_provider: Optional[str] = None  # local, api or queued
    remote_job_id: Optional[str] = None
    transcript: str = ''
    error: Optional[str] = None
    progress: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def finish(self, status: str, error: Optional[str] = None) -> None:
        self.status = status
        self.error = error
        self.finished_at = datetime.now(timezone.utc)
        if status == 'completed':
            self.progress = 100
        else:
            self.transcript = ''
            self.progress = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'file_name': self.file_name,
            'language': self.language,
            'user_id': self.user_id,
            'status': self.status,
            'source_provider': self.source_provider,
            'remote_job_id': self.remote_job_id,
            'transcript': self.transcript,
            'error': self.error,
            'progress': self.progress,
            'duration_minutes': self.duration_minutes,
            'created_at': self.created_at.isoformat(),
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
        }
