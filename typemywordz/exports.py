"""
Transcript export formats and plan gating.

txt is available on every plan; the other formats and clipboard copy need
a paid plan.
"""

import html
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .core.job import TranscriptionJob
from .usage.plans import is_paid

SERVICE_NAME = "TypeMyworDz"
TAGLINE = "You Talk, We Type"

FREE_FORMATS = ('txt',)
PAID_FORMATS = ('json', 'html', 'doc')
EXPORT_FORMATS = FREE_FORMATS + PAID_FORMATS

MEDIA_TYPES = {
    'txt': 'text/plain; charset=utf-8',
    'json': 'application/json',
    'html': 'text/html; charset=utf-8',
    'doc': 'application/msword',
}

EXTENSIONS = {
    'txt': 'txt',
    'json': 'json',
    'html': 'html',
    'doc': 'doc',
}


class ExportNotAllowedError(Exception):
    pass


def can_use_format(plan: Optional[str], fmt: str) -> bool:
    if fmt not in EXPORT_FORMATS:
        return False
    return fmt in FREE_FORMATS or is_paid(plan)


def can_copy(plan: Optional[str]) -> bool:
    return is_paid(plan)


def export_filename(file_name: Optional[str], fmt: str, today: Optional[datetime] = None) -> str:
    """TypeMyworDz_<name>_<YYYY-MM-DD>.<ext>"""
    today = today or datetime.now(timezone.utc)
    stem = Path(file_name).stem if file_name else 'recording'
    return f"{SERVICE_NAME}_{stem}_{today.strftime('%Y-%m-%d')}.{EXTENSIONS[fmt]}"


def to_txt(transcript: str) -> str:
    return transcript


def to_json(job: TranscriptionJob) -> str:
    data = {
        'service': SERVICE_NAME,
        'filename': job.file_name or 'recording',
        'transcription': job.transcript,
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'jobId': job.remote_job_id or job.id,
        'status': job.status,
    }
    return json.dumps(data, indent=2, ensure_ascii=False)


def _paragraphs(transcript: str) -> str:
    return ''.join(f"<p>{html.escape(line)}</p>" for line in transcript.split('\n'))


def to_html(transcript: str) -> str:
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<title>{SERVICE_NAME}</title></head><body>"
        f"<h1>{SERVICE_NAME}</h1><h2>{TAGLINE}</h2>"
        f"{_paragraphs(transcript)}</body></html>"
    )


def to_word_html(transcript: str) -> str:
    """HTML with the Office namespaces, which Word opens as a document."""
    return (
        "<html xmlns:o=\"urn:schemas-microsoft-com:office:office\" "
        "xmlns:w=\"urn:schemas-microsoft-com:office:word\" "
        "xmlns=\"http://www.w3.org/TR/REC-html40\">"
        f"<head><meta charset=\"utf-8\"><title>{SERVICE_NAME}</title></head>"
        f"<body>{_paragraphs(transcript)}</body></html>"
    )


def render(job: TranscriptionJob, fmt: str, plan: Optional[str]) -> str:
    """
    Render a finished job in ``fmt``.

    Raises:
        ExportNotAllowedError: The plan does not include this format
        ValueError: Unknown format
    """
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unknown export format: {fmt}")
    if not can_use_format(plan, fmt):
        raise ExportNotAllowedError(f"{fmt} downloads need a paid plan")

    if fmt == 'txt':
        return to_txt(job.transcript)
    if fmt == 'json':
        return to_json(job)
    if fmt == 'html':
        return to_html(job.transcript)
    return to_word_html(job.transcript)
