# blend_studio/storage.py
# Uretilen mockup gorsellerini kaydeder (local static/ veya S3) ve URL dondurur

import base64
import logging
import mimetypes
from pathlib import Path
from typing import Optional

from .config import BASE_DIR, settings
from .gemini import GeneratedImage

logger = logging.getLogger(__name__)

STATIC_DIR = BASE_DIR / "static"
RESULTS_PREFIX = "results/"


def image_to_data_url(image: GeneratedImage) -> str:
    """Gorsel baytlarini base64 data-URL'e cevirir."""
    b64 = base64.b64encode(image.data).decode("utf-8")
    return f"data:{image.mime_type};base64,{b64}"


def _extension_for(mime_type: str) -> str:
    ext = mimetypes.guess_extension(mime_type or "") or ".png"
    return ".jpg" if ext == ".jpe" else ext


def _safe_unlink(p: str | Path | None) -> None:
    if not p:
        return
    path = Path(p)
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("could not delete %s: %s", path, e)


class ImageStore:
    """
    Stores generated images on the configured backend.
    - local: writes under static_dir and returns "/static/<file>"
    - s3: uploads to the configured bucket and returns a public URL
    """

    def __init__(self, backend: str = "local", static_dir: Path = STATIC_DIR):
        self.backend = (backend or "local").lower()
        self.static_dir = Path(static_dir)
        self._client = None

    @classmethod
    def from_settings(cls) -> "ImageStore":
        return cls(backend=settings.STORAGE_BACKEND)

    def save(self, job_id: str, image: GeneratedImage) -> str:
        filename = f"{job_id}_out{_extension_for(image.mime_type)}"
        if self.backend == "s3":
            return self._save_s3(filename, image)

        self.static_dir.mkdir(parents=True, exist_ok=True)
        out_path = self.static_dir / filename
        with out_path.open("wb") as f:
            f.write(image.data)
        return f"/static/{filename}"

    def local_path(self, url: str) -> Optional[Path]:
        """Maps a "/static/<file>" URL back to the file on disk."""
        if not url.startswith("/static/"):
            return None
        return self.static_dir / url.split("/static/")[-1]

    def discard(self, url: Optional[str]) -> None:
        if not url or url.startswith("data:"):
            return
        if self.backend != "s3":
            _safe_unlink(self.local_path(url))
            return
        if settings.S3_BUCKET:
            key = RESULTS_PREFIX + url.rsplit("/", 1)[-1]
            self._bucket().delete_object(Bucket=settings.S3_BUCKET, Key=key)

    def public_url(self, key: str) -> str:
        """Public address of an uploaded object: base URL, then AWS region, then custom endpoint."""
        bucket = settings.S3_BUCKET
        if settings.S3_PUBLIC_BASE_URL:
            return "/".join([settings.S3_PUBLIC_BASE_URL.rstrip("/"), key])
        if settings.S3_REGION:
            return f"https://{bucket}.s3.{settings.S3_REGION}.amazonaws.com/{key}"
        if settings.S3_ENDPOINT:
            return "/".join([settings.S3_ENDPOINT.rstrip("/"), bucket, key])
        raise RuntimeError("cannot build a public URL for S3 results; set S3_PUBLIC_BASE_URL, S3_REGION or S3_ENDPOINT")

    def _bucket(self):
        # boto3 sadece s3 backend'de gerekli
        if self._client is not None:
            return self._client
        try:
            import boto3  # type: ignore
        except ImportError as e:
            raise RuntimeError("STORAGE_BACKEND=s3 needs boto3 (pip install blend-studio[s3])") from e

        credentials = {}
        if settings.S3_ACCESS_KEY_ID and settings.S3_SECRET_ACCESS_KEY:
            credentials = dict(
                aws_access_key_id=settings.S3_ACCESS_KEY_ID,
                aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY,
            )
        self._client = boto3.client(
            "s3",
            region_name=settings.S3_REGION or None,
            endpoint_url=settings.S3_ENDPOINT or None,
            **credentials,
        )
        return self._client

    def _save_s3(self, filename: str, image: GeneratedImage) -> str:
        if not settings.S3_BUCKET:
            raise RuntimeError("S3_BUCKET must be set when STORAGE_BACKEND=s3")
        key = RESULTS_PREFIX + filename
        self._bucket().put_object(Bucket=settings.S3_BUCKET, Key=key, Body=image.data, ContentType=image.mime_type)
        return self.public_url(key)
