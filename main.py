"""
TypeMyworDz - HTTP API
Upload or record audio, follow the transcription, download the result.
"""

import os
import asyncio
import logging
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Optional
from fastapi import FastAPI, HTTPException, UploadFile, File, Form, Query
from fastapi.responses import JSONResponse, Response
from contextlib import asynccontextmanager

from typemywordz.config import Config

# Configure logging
logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)
logger = logging.getLogger('TypeMyworDz.API')

# Reduce noise
logging.getLogger('httpx').setLevel(logging.WARNING)

from typemywordz import exports
from typemywordz.core.transcription_backends import AudioUpload, QueuedBackend, get_transcription_router
from typemywordz.languages import LANGUAGES, DEFAULT_LANGUAGE, is_supported
from typemywordz.usage import UsageLimitError

# Global router instance
router = None


async def keep_alive(backend: QueuedBackend, interval: int):
    """Ping the queue service so its free-tier host does not fall asleep."""
    while True:
        await asyncio.sleep(interval)
        if await backend.ping():
            logger.debug("Server ping successful")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize router on startup."""
    global router
    if router is None:
        try:
            Config.validate()
            router = get_transcription_router()
            logger.info("Transcription router initialized")
        except Exception as e:
            logger.error(f"Failed to initialize router: {e}")

    keep_alive_task = None
    queued = router.backends.get('queued') if router else None
    if isinstance(queued, QueuedBackend) and Config.KEEP_ALIVE_INTERVAL_SECONDS > 0:
        keep_alive_task = asyncio.create_task(keep_alive(queued, Config.KEEP_ALIVE_INTERVAL_SECONDS))

    yield

    if keep_alive_task:
        keep_alive_task.cancel()
    if router:
        await router.reset()
    logger.info("Shutting down")


app = FastAPI(
    title="TypeMyworDz",
    description="You Talk, We Type - speech to text",
    lifespan=lifespan
)


def _require_router():
    if router is None:
        raise HTTPException(status_code=500, detail="Router not initialized")
    return router


async def _plan_for(user_id: Optional[str]) -> str:
    gate = _require_router().usage_gate
    if gate is None or not user_id:
        return 'free'
    return await asyncio.to_thread(gate.get_plan_name, user_id)


def _read_upload(file_name: str, content: bytes, content_type: str) -> AudioUpload:
    """Write the upload to a temp file so its duration can be probed. Blocking; run it in a thread."""
    fd, temp_name = tempfile.mkstemp(suffix=Path(file_name).suffix)
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(content)
        upload = AudioUpload.from_path(temp_path, content_type=content_type)
        upload.file_name = file_name
        return upload
    finally:
        temp_path.unlink(missing_ok=True)


async def _start(upload: AudioUpload, language: str, user_id: Optional[str]):
    active = _require_router()

    if not is_supported(language):
        raise HTTPException(status_code=422, detail=f"Unsupported language: {language}")

    logger.info(f"Upload received: {upload.file_name} ({upload.size} bytes) from {user_id or 'anonymous'}")

    try:
        job = await active.submit(upload, language=language, user_id=user_id)
    except UsageLimitError as e:
        raise HTTPException(status_code=402, detail={"message": str(e), "upgrade_url": "/pricing"})

    return JSONResponse(status_code=202, content=job.to_dict())


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "TypeMyworDz is running"}


@app.get("/health")
async def health_check():
    return {"status": "healthy", "router_ready": router is not None}


@app.get("/languages")
async def languages():
    return {
        "default": DEFAULT_LANGUAGE,
        "languages": [{"code": code, "name": name} for code, name in LANGUAGES.items()],
    }


@app.post("/transcriptions")
async def create_transcription(
    file: UploadFile = File(...),
    language: str = Form(default=DEFAULT_LANGUAGE),
    user_id: Optional[str] = Form(default=None),
):
    """Transcribe an uploaded audio or video file."""
    content_type = file.content_type or ''
    if not (content_type.startswith('audio/') or content_type.startswith('video/')):
        raise HTTPException(status_code=415, detail="Please upload an audio or video file")

    content = await file.read()
    upload = await asyncio.to_thread(_read_upload, file.filename or 'upload', content, content_type)
    return await _start(upload, language, user_id)


@app.post("/transcriptions/record")
async def create_recording_transcription(
    file: UploadFile = File(...),
    language: str = Form(default=DEFAULT_LANGUAGE),
    user_id: Optional[str] = Form(default=None),
):
    """Transcribe audio recorded in the browser."""
    file_name = f"recording_{datetime.now().strftime('%Y-%m-%dT%H-%M-%S')}.wav"
    content = await file.read()
    upload = await asyncio.to_thread(_read_upload, file_name, content, file.content_type or 'audio/wav')
    return await _start(upload, language, user_id)


@app.get("/transcriptions/current")
async def current_transcription():
    active = _require_router()
    status = active.get_status()
    notice = active.notifier.latest() if active.notifier else None
    status["notice"] = notice.to_dict() if notice else None
    return status


@app.post("/transcriptions/cancel")
async def cancel_transcription():
    job = await _require_router().cancel()
    if job is None:
        raise HTTPException(status_code=404, detail="No transcription in progress")
    return job.to_dict()


@app.post("/transcriptions/reset")
async def reset_transcription():
    await _require_router().reset()
    return {"status": "reset"}


def _completed_job():
    job = _require_router().job
    if job is None:
        raise HTTPException(status_code=404, detail="No transcription available")
    if job.status != 'completed':
        raise HTTPException(status_code=409, detail=f"Transcription is {job.status}")
    return job


@app.get("/transcriptions/current/download")
async def download_transcription(
    format: str = Query(default='txt'),
    user_id: Optional[str] = Query(default=None),
):
    """Download the transcript; formats other than txt need a paid plan."""
    job = _completed_job()
    plan = await _plan_for(user_id)

    try:
        body = exports.render(job, format, plan)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except exports.ExportNotAllowedError as e:
        raise HTTPException(status_code=403, detail={"message": str(e), "upgrade_url": "/pricing"})

    filename = exports.export_filename(job.file_name, format)
    return Response(
        content=body,
        media_type=exports.MEDIA_TYPES[format],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/transcriptions/current/copy")
async def copy_transcription(user_id: Optional[str] = Query(default=None)):
    """Transcript text for the clipboard (paid plans)."""
    job = _completed_job()
    plan = await _plan_for(user_id)
    if not exports.can_copy(plan):
        raise HTTPException(status_code=403, detail={"message": "Copy needs a paid plan", "upgrade_url": "/pricing"})
    return {"text": job.transcript}


@app.get("/transcriptions/history")
async def transcription_history(user_id: str = Query(...)):
    gate = _require_router().usage_gate
    if gate is None:
        return {"transcriptions": []}
    items = await asyncio.to_thread(gate.list_transcriptions, user_id)
    return {"transcriptions": items}


if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8080))
    uvicorn.run(app, host="0.0.0.0", port=port)
