# API'nin disari dondugu Pydantic semalari

from typing import Optional
from datetime import datetime
from pydantic import BaseModel

from .models import JobKind, JobState, JobStatus, MockupInput, MockupResult, TranscriptionInput, TranscriptionResult

# JobOut'un API yaniti icin semasi (ornegin /api/jobs, /api/jobs/{job_id})
class JobOut(BaseModel):
    job_id: str
    kind: JobKind
    status: JobStatus
    filename: Optional[str] = None
    size: Optional[int] = None
    prompt: Optional[str] = None
    preset: Optional[str] = None
    current_chunk: Optional[int] = None
    total_chunks: Optional[int] = None
    transcription: Optional[str] = None
    summary: Optional[str] = None
    result_url: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_job(cls, job: JobState) -> "JobOut":
        out = cls(
            job_id=job.id,
            kind=job.kind,
            status=job.status,
            error=job.error,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )
        if job.progress is not None:
            out.current_chunk = job.progress.current_chunk
            out.total_chunks = job.progress.total_chunks

        match job.input:
            case TranscriptionInput(filename=filename, size=size):
                out.filename, out.size = filename, size
            case MockupInput(filename=filename, prompt=prompt, preset=preset):
                out.filename, out.prompt, out.preset = filename, prompt, preset

        match job.result:
            case TranscriptionResult(transcription=transcription, summary=summary):
                out.transcription, out.summary = transcription, summary
            case MockupResult(image_url=image_url):
                out.result_url = image_url
        return out

# Settings ekraninin API anahtari durumu
class ApiKeyStatus(BaseModel):
    configured: bool
    source: Optional[str] = None

class ApiKeyIn(BaseModel):
    api_key: str
