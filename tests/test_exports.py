import json
from datetime import datetime

import pytest

from typemywordz import exports
from typemywordz.core.job import TranscriptionJob


def _job(transcript="line one\nline <two>"):
    job = TranscriptionJob(file_name="interview.mp3", language="en")
    job.transcript = transcript
    job.finish('completed')
    return job


@pytest.mark.parametrize("plan,fmt,allowed", [
    ("free", "txt", True),
    ("free", "json", False),
    ("free", "doc", False),
    ("starter", "html", True),
    ("pro", "doc", True),
    ("pro", "pdf", False),
])
def test_format_gating(plan, fmt, allowed):
    assert exports.can_use_format(plan, fmt) is allowed


def test_copy_needs_paid_plan():
    assert exports.can_copy("free") is False
    assert exports.can_copy("starter") is True


def test_render_txt_on_free_plan():
    assert exports.render(_job(), "txt", "free") == "line one\nline <two>"


def test_render_rejects_gated_format():
    with pytest.raises(exports.ExportNotAllowedError):
        exports.render(_job(), "json", "free")


def test_render_unknown_format():
    with pytest.raises(ValueError):
        exports.render(_job(), "pdf", "business")


def test_json_export_fields():
    data = json.loads(exports.render(_job(), "json", "pro"))

    assert data['service'] == "TypeMyworDz"
    assert data['filename'] == "interview.mp3"
    assert data['status'] == "completed"
    assert data['transcription'].startswith("line one")


def test_html_export_escapes_and_splits_lines():
    body = exports.render(_job(), "html", "pro")

    assert "<p>line one</p><p>line &lt;two&gt;</p>" in body
    assert "<h2>You Talk, We Type</h2>" in body


def test_export_filename():
    name = exports.export_filename("interview.mp3", "doc", today=datetime(2026, 3, 4))

    assert name == "TypeMyworDz_interview_2026-03-04.doc"
    assert exports.export_filename(None, "txt", today=datetime(2026, 3, 4)) == "TypeMyworDz_recording_2026-03-04.txt"
