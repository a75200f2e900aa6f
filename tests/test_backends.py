import asyncio

import httpx
import pytest

from conftest import make_upload
from typemywordz.core.transcription_backends import (
    AbortError,
    CancellationToken,
    LocalBackend,
    OpenAIBackend,
    PollTimeoutError,
    ProviderError,
    QueuedBackend,
)


def _transport(handler, captured=None):
    def wrapped(request: httpx.Request):
        if captured is not None:
            captured.append(request)
        return handler(request)
    return httpx.MockTransport(wrapped)


def test_local_backend_returns_transcript():
    captured = []
    transport = _transport(
        lambda request: httpx.Response(200, json={"status": "completed", "transcript": "hi there"}),
        captured,
    )
    backend = LocalBackend("http://local.mock", transport=transport)

    result = asyncio.run(backend.transcribe(make_upload(), "en", CancellationToken()))

    assert result.is_complete
    assert result.transcript == "hi there"
    assert result.backend == "local"
    request = captured[0]
    assert request.method == "POST"
    assert str(request.url) == "http://local.mock/transcribe"
    assert b'filename="memo.mp3"' in request.content


def test_local_backend_non_2xx_is_provider_error():
    transport = _transport(lambda request: httpx.Response(503, text="busy"))
    backend = LocalBackend("http://local.mock", transport=transport)

    with pytest.raises(ProviderError) as ei:
        asyncio.run(backend.transcribe(make_upload(), "en", CancellationToken()))
    assert "503" in str(ei.value)


@pytest.mark.parametrize("response", [
    httpx.Response(200, text="<html>oops</html>"),
    httpx.Response(200, json={"status": "completed"}),
    httpx.Response(200, json=["not", "an", "object"]),
])
def test_local_backend_malformed_body_is_provider_error(response):
    backend = LocalBackend("http://local.mock", transport=_transport(lambda request: response))

    with pytest.raises(ProviderError):
        asyncio.run(backend.transcribe(make_upload(), "en", CancellationToken()))


def test_local_backend_network_error_is_provider_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    backend = LocalBackend("http://local.mock", transport=_transport(handler))

    with pytest.raises(ProviderError):
        asyncio.run(backend.transcribe(make_upload(), "en", CancellationToken()))


def test_openai_backend_sends_model_language_and_bearer():
    captured = []
    transport = _transport(lambda request: httpx.Response(200, json={"text": "bonjour"}), captured)
    backend = OpenAIBackend(api_key="sk-test", base_url="https://openai.mock", model="whisper-1", transport=transport)

    result = asyncio.run(backend.transcribe(make_upload(), "fr", CancellationToken()))

    assert result.status == "completed"
    assert result.transcript == "bonjour"
    request = captured[0]
    assert str(request.url) == "https://openai.mock/v1/audio/transcriptions"
    assert request.headers["authorization"] == "Bearer sk-test"
    body = request.content
    assert b'name="model"' in body and b"whisper-1" in body
    assert b'name="language"' in body and b"fr" in body
    assert b'name="response_format"' in body


def test_openai_backend_without_key_fails_without_calling_out():
    captured = []
    transport = _transport(lambda request: httpx.Response(200, json={"text": "x"}), captured)
    backend = OpenAIBackend(api_key="", base_url="https://openai.mock", transport=transport)

    with pytest.raises(ProviderError):
        asyncio.run(backend.transcribe(make_upload(), "en", CancellationToken()))
    assert captured == []
    assert backend.is_available() is False


def test_queued_backend_returns_job_id_without_waiting():
    captured = []
    transport = _transport(lambda request: httpx.Response(200, json={"job_id": "abc123"}), captured)
    backend = QueuedBackend("https://queue.mock", transport=transport)

    result = asyncio.run(backend.transcribe(make_upload(), "es", CancellationToken()))

    assert result.status == "processing"
    assert result.job_id == "abc123"
    assert str(captured[0].url) == "https://queue.mock/transcribe-fallback"
    assert b'name="language_code"' in captured[0].content


def test_queued_backend_missing_job_id_is_provider_error():
    transport = _transport(lambda request: httpx.Response(200, json={"status": "accepted"}))
    backend = QueuedBackend("https://queue.mock", transport=transport)

    with pytest.raises(ProviderError):
        asyncio.run(backend.transcribe(make_upload(), "en", CancellationToken()))


def test_queued_status_timeout_is_poll_timeout():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    backend = QueuedBackend("https://queue.mock", transport=_transport(handler))

    with pytest.raises(PollTimeoutError):
        asyncio.run(backend.check_status("abc", 10, CancellationToken()))


def test_queued_status_returns_body():
    captured = []
    transport = _transport(lambda request: httpx.Response(200, json={"status": "processing"}), captured)
    backend = QueuedBackend("https://queue.mock", transport=transport)

    body = asyncio.run(backend.check_status("abc", 10, CancellationToken()))

    assert body == {"status": "processing"}
    assert str(captured[0].url) == "https://queue.mock/status/abc"


def test_queued_cancel_failure_is_ignored():
    def handler(request):
        raise httpx.ConnectError("down", request=request)

    backend = QueuedBackend("https://queue.mock", transport=_transport(handler))

    assert asyncio.run(backend.cancel_job("abc")) is False


def test_queued_cancel_posts_to_cancel_endpoint():
    captured = []
    transport = _transport(lambda request: httpx.Response(200, json={"ok": True}), captured)
    backend = QueuedBackend("https://queue.mock", transport=transport)

    assert asyncio.run(backend.cancel_job("abc")) is True
    assert captured[0].method == "POST"
    assert str(captured[0].url) == "https://queue.mock/cancel/abc"


def test_in_flight_request_is_aborted_when_token_fires():
    async def handler(request):
        await asyncio.sleep(10)
        return httpx.Response(200, json={"transcript": "late"})

    backend = LocalBackend("http://local.mock", transport=httpx.MockTransport(handler))

    async def scenario():
        token = CancellationToken("job-1")
        task = asyncio.create_task(backend.transcribe(make_upload(), "en", token))
        await asyncio.sleep(0.01)
        token.cancel()
        return await asyncio.wait_for(task, timeout=1)

    with pytest.raises(AbortError):
        asyncio.run(scenario())


def test_cancelled_token_refuses_new_requests():
    captured = []
    transport = _transport(lambda request: httpx.Response(200, json={"transcript": "x"}), captured)
    backend = LocalBackend("http://local.mock", transport=transport)

    async def scenario():
        token = CancellationToken()
        token.cancel()
        await backend.transcribe(make_upload(), "en", token)

    with pytest.raises(AbortError):
        asyncio.run(scenario())
    assert captured == []
