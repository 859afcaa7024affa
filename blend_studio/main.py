# blend_studio/main.py
# FastAPI uygulamasinin giris noktasi

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, PlainTextResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from sse_starlette.sse import EventSourceResponse

from .config import settings
from .credentials import ApiKeyStore, default_key_store
from .errors import JobNotFoundError, JobNotRetryableError
from .gemini import GeminiService
from .models import JobKind, JobStatus, MockupResult, TranscriptionResult
from .presets import PRESETS, MockupPreset, resolve_prompt
from .queue import JobQueue
from .schemas import ApiKeyIn, ApiKeyStatus, JobOut
from .storage import ImageStore

logger = logging.getLogger(__name__)

MEDIA_PREFIXES = ("audio/", "video/")

router = APIRouter()

# -------------------------------------------------------------------
# Uygulama kurulumu
# -------------------------------------------------------------------
def create_app(
    job_queue: Optional[JobQueue] = None,
    key_store: Optional[ApiKeyStore] = None,
    image_store: Optional[ImageStore] = None,
) -> FastAPI:
    key_store = key_store or default_key_store()
    image_store = image_store or ImageStore.from_settings()
    if job_queue is None:
        job_queue = JobQueue.from_settings(GeminiService.from_settings(key_store), image_store=image_store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.basicConfig(level=settings.LOG_LEVEL.upper())
        logger.info("[GEMINI] model: %s  image model: %s", settings.GEMINI_MODEL, settings.GEMINI_IMAGE_MODEL)
        yield
        await job_queue.aclose()

    app = FastAPI(title="Blend Studio", version="1.0.0", lifespan=lifespan)
    app.state.queue = job_queue
    app.state.key_store = key_store
    app.state.image_store = image_store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    image_store.static_dir.mkdir(exist_ok=True, parents=True)
    app.mount("/static", StaticFiles(directory=image_store.static_dir), name="static")
    app.include_router(router)
    return app


def get_queue(request: Request) -> JobQueue:
    return request.app.state.queue


def get_key_store(request: Request) -> ApiKeyStore:
    return request.app.state.key_store


def get_image_store(request: Request) -> ImageStore:
    return request.app.state.image_store


def _get_job_or_404(job_queue: JobQueue, job_id: str):
    try:
        return job_queue.get(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")


@router.get("/health")
async def health():
    return {"ok": True, "time": datetime.now(timezone.utc).isoformat()}


#-----------TRANSKRIPSIYON--------------------------------------------------------------------
# Ses/video dosyalarini kuyruga ekler (audio/* ve video/* disindakiler atlanir)
#*******************************************************************************************************
@router.post("/api/transcriptions", response_model=List[JobOut])
async def create_transcriptions(
    files: List[UploadFile] = File(...),
    job_queue: JobQueue = Depends(get_queue),
):
    job_ids = []
    for upload in files:
        content_type = upload.content_type or ""
        if not content_type.startswith(MEDIA_PREFIXES):
            logger.info("skipping %s (%s): not audio or video", upload.filename, content_type)
            continue
        job_id = job_queue.enqueue_transcription(await upload.read(), content_type, upload.filename or "audio")
        if job_id:
            job_ids.append(job_id)

    if not job_ids:
        raise HTTPException(status_code=400, detail="No audio or video files in upload")
    return [JobOut.from_job(job_queue.get(job_id)) for job_id in job_ids]


@router.get("/api/transcriptions", response_model=List[JobOut])
async def list_transcriptions(job_queue: JobQueue = Depends(get_queue)):
    return [JobOut.from_job(j) for j in job_queue.snapshot(JobKind.TRANSCRIPTION)]


#-----------MOCKUP----------------------------------------------------------------------------
# Gorsel + senaryo (prompt veya hazir preset) ile mockup isi olusturur
#*******************************************************************************************************
@router.post("/api/mockups", response_model=JobOut)
async def create_mockup(
    image: UploadFile = File(...),
    prompt: str = Form(""),
    preset: Optional[str] = Form(None),
    job_queue: JobQueue = Depends(get_queue),
):
    if preset and preset not in PRESETS:
        raise HTTPException(status_code=400, detail=f"Unknown preset: {preset}")
    content_type = image.content_type or "image/png"
    if not content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="Mockup source must be an image")

    job_id = job_queue.enqueue_mockup(
        await image.read(),
        content_type,
        resolve_prompt(prompt, preset),
        filename=image.filename,
        preset=preset,
    )
    if not job_id:
        raise HTTPException(status_code=400, detail="Image and prompt are required")
    return JobOut.from_job(job_queue.get(job_id))


@router.get("/api/mockups", response_model=List[JobOut])
async def list_mockups(job_queue: JobQueue = Depends(get_queue)):
    return [JobOut.from_job(j) for j in job_queue.snapshot(JobKind.MOCKUP)]


@router.get("/api/mockups/presets", response_model=List[MockupPreset])
async def list_presets():
    return list(PRESETS.values())


#-----------ISLER-----------------------------------------------------------------------------
#*******************************************************************************************************
@router.get("/api/jobs", response_model=List[JobOut])
async def list_jobs(kind: Optional[JobKind] = None, job_queue: JobQueue = Depends(get_queue)):
    return [JobOut.from_job(j) for j in job_queue.snapshot(kind)]


@router.get("/api/jobs/{job_id}", response_model=JobOut)
async def get_job(job_id: str, job_queue: JobQueue = Depends(get_queue)):
    return JobOut.from_job(_get_job_or_404(job_queue, job_id))


# Hatali isi (veya biten mockup) yeni id ile tekrar kuyruga ekler; eski kayit yerinde kalir
@router.post("/api/jobs/{job_id}/retry", response_model=JobOut)
async def retry_job(job_id: str, job_queue: JobQueue = Depends(get_queue)):
    try:
        new_id = job_queue.retry(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    except JobNotRetryableError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return JobOut.from_job(job_queue.get(new_id))


# Isi siler (islemdeyse iptal edilir) ve uretilmis gorseli temizler
@router.delete("/api/jobs/{job_id}")
async def delete_job(
    job_id: str,
    job_queue: JobQueue = Depends(get_queue),
    image_store: ImageStore = Depends(get_image_store),
):
    job = job_queue.remove(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    if isinstance(job.result, MockupResult):
        await asyncio.to_thread(image_store.discard, job.result.image_url)
    return {"detail": "Job deleted"}


@router.delete("/api/jobs")
async def clear_jobs(
    kind: Optional[JobKind] = None,
    job_queue: JobQueue = Depends(get_queue),
    image_store: ImageStore = Depends(get_image_store),
):
    removed = job_queue.clear(kind)
    for job in removed:
        if isinstance(job.result, MockupResult):
            await asyncio.to_thread(image_store.discard, job.result.image_url)
    return {"detail": f"{len(removed)} jobs deleted"}


# Transkripsiyonu .txt olarak indirir
@router.get("/api/jobs/{job_id}/transcription")
async def download_transcription(job_id: str, job_queue: JobQueue = Depends(get_queue)):
    job = _get_job_or_404(job_queue, job_id)
    if job.status is not JobStatus.COMPLETED or not isinstance(job.result, TranscriptionResult):
        raise HTTPException(status_code=400, detail="Job has no transcription yet")

    filename = Path(job.input.filename).stem + "_transcription.txt"
    return PlainTextResponse(
        job.result.transcription,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# Mockup sonucunu indirir (redirect veya local dosya)
@router.get("/api/jobs/{job_id}/download")
async def download_job_result(
    job_id: str,
    job_queue: JobQueue = Depends(get_queue),
    image_store: ImageStore = Depends(get_image_store),
):
    job = _get_job_or_404(job_queue, job_id)
    if not isinstance(job.result, MockupResult):
        raise HTTPException(status_code=400, detail="Job has no result yet")

    ru = job.result.image_url
    # /static/xyz_out.png gibi ise
    path = image_store.local_path(ru)
    if path is not None:
        if not path.exists():
            raise HTTPException(status_code=404, detail="Result file not found")
        return FileResponse(path, filename=path.name, media_type="application/octet-stream")

    return RedirectResponse(url=ru)


# Is degisikliklerini server-sent events olarak yayinlar
@router.get("/api/events")
async def stream_events(job_queue: JobQueue = Depends(get_queue)):
    async def _generate():
        async for event in job_queue.events():
            data = JobOut.from_job(event.job).model_dump(mode="json")
            yield {"event": event.type, "data": json.dumps(data)}

    return EventSourceResponse(_generate())


#-----------AYARLAR---------------------------------------------------------------------------
#*******************************************************************************************************
@router.get("/api/settings/api-key", response_model=ApiKeyStatus)
async def get_api_key_status(key_store: ApiKeyStore = Depends(get_key_store)):
    return ApiKeyStatus(configured=key_store.get() is not None, source=key_store.source)


@router.put("/api/settings/api-key", response_model=ApiKeyStatus)
async def save_api_key(body: ApiKeyIn, key_store: ApiKeyStore = Depends(get_key_store)):
    try:
        key_store.set(body.api_key)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ApiKeyStatus(configured=True, source=key_store.source)


@router.delete("/api/settings/api-key", response_model=ApiKeyStatus)
async def clear_api_key(key_store: ApiKeyStore = Depends(get_key_store)):
    key_store.clear()
    return ApiKeyStatus(configured=key_store.get() is not None, source=key_store.source)


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8000)
