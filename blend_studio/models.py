#Is modelleri – JobState ve tur bazli girdi/sonuc tipleri burada

from enum import Enum
from typing import Annotated, Literal, Optional, Union
from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


class JobStatus(str, Enum):
    IDLE = "IDLE"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


class JobKind(str, Enum):
    TRANSCRIPTION = "transcription"
    MOCKUP = "mockup"


class TranscriptionInput(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["transcription"] = "transcription"
    data: bytes
    mime_type: str
    filename: str
    size: int = 0

    @model_validator(mode="before")
    @classmethod
    def _fill_size(cls, values):
        if isinstance(values, dict) and not values.get("size") and values.get("data") is not None:
            values = {**values, "size": len(values["data"])}
        return values


class MockupInput(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["mockup"] = "mockup"
    image: bytes
    mime_type: str
    prompt: str
    filename: Optional[str] = None
    preset: Optional[str] = None


class TranscriptionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["transcription"] = "transcription"
    transcription: str
    summary: str


class MockupResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["mockup"] = "mockup"
    image_url: str
    mime_type: str


JobInput = Annotated[Union[TranscriptionInput, MockupInput], Field(discriminator="kind")]
JobResult = Annotated[Union[TranscriptionResult, MockupResult], Field(discriminator="kind")]


class ChunkProgress(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_chunk: int
    total_chunks: int


class JobState(BaseModel):
    """
    One submitted unit of work. Values are immutable: every status or
    progress change produces a new JobState via ``model_copy``.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    input: JobInput
    status: JobStatus = JobStatus.IDLE
    progress: Optional[ChunkProgress] = None
    result: Optional[JobResult] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def kind(self) -> JobKind:
        return JobKind(self.input.kind)

    @model_validator(mode="after")
    def _check_outcome(self):
        check_outcome(self)
        return self


def check_outcome(job: JobState) -> None:
    """Result and error are exclusive and tied to the terminal status."""
    if job.status is JobStatus.COMPLETED:
        if job.result is None or job.error is not None:
            raise ValueError("completed job must carry a result and no error")
    elif job.status is JobStatus.ERROR:
        if job.error is None or job.result is not None:
            raise ValueError("failed job must carry an error and no result")
    elif job.result is not None or job.error is not None:
        raise ValueError(f"{job.status.value} job must not carry a result or error")
    if job.result is not None and job.result.kind != job.input.kind:
        raise ValueError("result kind does not match job kind")
