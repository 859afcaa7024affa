# blend_studio/gemini.py
# Gemini (generativelanguage REST) istemcisi: transkripsiyon, ozet ve mockup uretimi

import base64
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

import httpx

from .config import settings
from .credentials import ApiKeyStore
from .errors import GenerationError, MissingCredentialError

logger = logging.getLogger(__name__)

INSUFFICIENT_AUDIO_SUMMARY = "Insufficient audio to generate a detailed summary."
SUMMARY_UNAVAILABLE = "Could not generate the summary."


@dataclass(frozen=True)
class GeneratedImage:
    data: bytes
    mime_type: str


class ContentGenerationService(Protocol):
    """What the job pipelines need from the remote generative service."""

    def check_credentials(self) -> None: ...

    async def transcribe_segment(self, payload: bytes, mime_type: str, index: int, total: int) -> str: ...

    async def summarize(self, full_text: str) -> str: ...

    async def generate_image(self, image: bytes, mime_type: str, instruction: str) -> GeneratedImage: ...


def _inline_part(data: bytes, mime_type: str) -> dict:
    return {
        "inlineData": {
            "mimeType": mime_type or "application/octet-stream",
            "data": base64.b64encode(data).decode("utf-8"),
        }
    }


def _json_config(field: str) -> dict:
    return {
        "responseMimeType": "application/json",
        "responseSchema": {
            "type": "OBJECT",
            "properties": {field: {"type": "STRING"}},
        },
    }


def _response_parts(body: dict) -> list:
    candidates = body.get("candidates") or []
    if not candidates or not isinstance(candidates[0], dict):
        return []
    content = candidates[0].get("content") or {}
    return content.get("parts") or []


def _json_field(body: dict, field: str) -> Optional[str]:
    """Reads ``field`` from the model's JSON answer; None when missing or unparseable."""
    text = "".join(p.get("text", "") for p in _response_parts(body) if isinstance(p, dict))
    if not text.strip():
        return None
    try:
        data = json.loads(text)
    except ValueError:
        logger.debug("unparseable structured response: %s", text[:200])
        return None
    if not isinstance(data, dict):
        return None
    value = data.get(field)
    return value if isinstance(value, str) else None


class GeminiService:
    """
    ContentGenerationService backed by the Gemini REST API.

    The API key is resolved on every call, so a key changed in Settings is
    picked up by the next request. Calls are never retried here; failures
    raise GenerationError for the job pipeline to handle.
    """

    def __init__(
        self,
        api_key: Callable[[], Optional[str]],
        *,
        endpoint: str = "https://generativelanguage.googleapis.com",
        api_version: str = "v1beta",
        model: str = "gemini-2.5-flash",
        image_model: str = "gemini-2.5-flash-image",
        timeout: float = 300,
        language: str = "Portuguese",
        min_summary_chars: int = 50,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key
        self._base_url = f"{endpoint.rstrip('/')}/{api_version.strip('/')}"
        self.model = model
        self.image_model = image_model
        self._timeout = timeout
        self._language = language
        self._min_summary_chars = min_summary_chars
        self._transport = transport

    @classmethod
    def from_settings(cls, key_store: ApiKeyStore, **overrides: Any) -> "GeminiService":
        options = dict(
            endpoint=settings.GEMINI_ENDPOINT,
            api_version=settings.GEMINI_API_VERSION,
            model=settings.GEMINI_MODEL,
            image_model=settings.GEMINI_IMAGE_MODEL,
            timeout=settings.GEMINI_TIMEOUT,
            language=settings.TRANSCRIPT_LANGUAGE,
            min_summary_chars=settings.MIN_SUMMARY_CHARS,
        )
        options.update(overrides)
        return cls(key_store.get, **options)

    def _require_key(self) -> str:
        api_key = self._api_key()
        if not api_key:
            raise MissingCredentialError()
        return api_key

    def check_credentials(self) -> None:
        self._require_key()

    async def _generate_content(self, model: str, parts: list, generation_config: dict) -> dict:
        api_key = self._require_key()
        url = f"{self._base_url}/models/{model}:generateContent"
        headers = {
            "x-goog-api-key": api_key,
            "Content-Type": "application/json",
        }
        payload = {
            "contents": [{"parts": parts}],
            "generationConfig": generation_config,
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                r = await client.post(url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            raise GenerationError(f"gemini request failed: {e}") from e

        if r.status_code != 200:
            raise GenerationError(f"gemini error {r.status_code}: {r.text[:300]}")
        try:
            return r.json()
        except ValueError as e:
            raise GenerationError(f"gemini returned invalid JSON: {r.text[:300]}") from e

    async def transcribe_segment(self, payload: bytes, mime_type: str, index: int, total: int) -> str:
        if not 0 <= index < total:
            raise ValueError(f"segment index {index} out of range for {total} segments")
        if not payload:
            # bos dosya: istek atmadan bos metin (ozet "insufficient audio" olur)
            return ""
        instruction = (
            f"This is part {index + 1} of {total} of an audio file.\n"
            f"Your task is ONLY to transcribe the provided audio faithfully, word for word, in {self._language}.\n"
            "Do not include headers, do not describe background sounds, do not write \"Continued in the next part\".\n"
            "Only the spoken text. If the audio is empty or only noise, return an empty string."
        )
        logger.debug("transcribing segment %d/%d (%d bytes)", index + 1, total, len(payload))
        body = await self._generate_content(
            self.model,
            [_inline_part(payload, mime_type), {"text": instruction}],
            _json_config("text"),
        )
        return _json_field(body, "text") or ""

    async def summarize(self, full_text: str) -> str:
        if not full_text or len(full_text) < self._min_summary_chars:
            return INSUFFICIENT_AUDIO_SUMMARY

        instruction = (
            "Here is the full transcription of an audio/video recording:\n\n"
            f"\"{full_text}\"\n\n"
            "Based ONLY on this text:\n"
            "Provide a detailed, structured executive summary of the main idea discussed, "
            "highlighting key points, arguments and conclusions.\n"
            f"The summary must be rich and useful, written in {self._language}."
        )
        body = await self._generate_content(self.model, [{"text": instruction}], _json_config("summary"))
        return _json_field(body, "summary") or SUMMARY_UNAVAILABLE

    async def generate_image(self, image: bytes, mime_type: str, instruction: str) -> GeneratedImage:
        prompt = (
            "Create a photorealistic product mockup. Apply the artwork from the provided image "
            f"to the following scenario, keeping the artwork faithful: {instruction}"
        )
        body = await self._generate_content(
            self.image_model,
            [_inline_part(image, mime_type), {"text": prompt}],
            {"responseModalities": ["IMAGE"]},
        )
        for part in _response_parts(body):
            if not isinstance(part, dict):
                continue
            inline = part.get("inlineData") or part.get("inline_data")
            if inline and inline.get("data"):
                out_mime = inline.get("mimeType") or inline.get("mime_type") or "image/png"
                return GeneratedImage(data=base64.b64decode(inline["data"]), mime_type=out_mime)

        feedback = body.get("promptFeedback") or {}
        if feedback.get("blockReason"):
            raise GenerationError(f"image generation blocked: {feedback['blockReason']}")
        raise GenerationError(f"no image in response: {json.dumps(body)[:300]}")
