# blend_studio/config.py
from pathlib import Path
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .chunker import encoded_size, max_chunk_size

BASE_DIR = Path(__file__).resolve().parent.parent

class Settings(BaseSettings):
    # CORS
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    # Gemini
    GEMINI_API_KEY: str | None = None
    GEMINI_ENDPOINT: str = "https://generativelanguage.googleapis.com"
    GEMINI_API_VERSION: str = "v1beta"
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_IMAGE_MODEL: str = "gemini-2.5-flash-image"
    GEMINI_TIMEOUT: int = 300
    TRANSCRIPT_LANGUAGE: str = "Portuguese"

    # Chunking: 0 derives the chunk size from MAX_REQUEST_BYTES
    CHUNK_SIZE: int = 6 * 1024 * 1024
    MAX_REQUEST_BYTES: int = 20 * 1024 * 1024
    REQUEST_OVERHEAD_BYTES: int = 64 * 1024
    MIN_SUMMARY_CHARS: int = 50

    # Queue: 0 means no cap on simultaneous jobs
    MAX_CONCURRENT_JOBS: int = 0
    CANCEL_ON_REMOVE: bool = True

    # Storage backend: "local" (default) or "s3" (for AWS S3 / R2 / S3-compatible)
    STORAGE_BACKEND: str = "local"

    # S3 configuration (used when STORAGE_BACKEND == "s3")
    S3_BUCKET: str | None = None
    S3_REGION: str | None = None
    S3_ENDPOINT: str | None = None  # optional (useful for R2 or custom endpoints)
    S3_ACCESS_KEY_ID: str | None = None
    S3_SECRET_ACCESS_KEY: str | None = None
    # Example: https://cdn.example.com/ or https://<accountid>.r2.cloudflarestorage.com/<bucket>/
    S3_PUBLIC_BASE_URL: str | None = None

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        extra="ignore",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def _check_chunk_size(self):
        if self.CHUNK_SIZE < 0:
            raise ValueError("CHUNK_SIZE must not be negative")
        if self.CHUNK_SIZE and encoded_size(self.CHUNK_SIZE) + self.REQUEST_OVERHEAD_BYTES > self.MAX_REQUEST_BYTES:
            raise ValueError(
                f"CHUNK_SIZE={self.CHUNK_SIZE} exceeds MAX_REQUEST_BYTES={self.MAX_REQUEST_BYTES} once base64 encoded"
            )
        return self

    @property
    def effective_chunk_size(self) -> int:
        if self.CHUNK_SIZE:
            return self.CHUNK_SIZE
        return max_chunk_size(self.MAX_REQUEST_BYTES, self.REQUEST_OVERHEAD_BYTES)

    @property
    def allowed_origins(self) -> list[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

settings = Settings()
