"""Shared fixtures: a scriptable stand-in for the Gemini service."""
import asyncio
from typing import Callable, List, Optional

import pytest

from blend_studio.errors import GenerationError, MissingCredentialError
from blend_studio.gemini import GeneratedImage
from blend_studio.queue import JobQueue


class FakeService:
    """
    Records every call. ``gate`` (when set) holds each remote call until
    released, ``started`` fires when the first call begins.
    """

    def __init__(self, api_key: Optional[str] = "test-key"):
        self.api_key = api_key
        self.calls: List[tuple] = []
        self.cancelled: List[tuple] = []
        self.segment_text: Callable[[int, int], str] = lambda index, total: f"part-{index}-of-{total}"
        self.fail_on_segment: Optional[int] = None
        self.image_error: Optional[str] = None
        self.gate: Optional[asyncio.Event] = None
        self.started = asyncio.Event()

    def check_credentials(self) -> None:
        if not self.api_key:
            raise MissingCredentialError()

    async def _remote(self, call: tuple) -> None:
        self.calls.append(call)
        self.started.set()
        if self.gate is not None:
            try:
                await self.gate.wait()
            except asyncio.CancelledError:
                self.cancelled.append(call)
                raise

    async def transcribe_segment(self, payload, mime_type, index, total):
        await self._remote(("transcribe", index, total, bytes(payload)))
        if self.fail_on_segment == index:
            raise GenerationError("gemini error 500: boom")
        return self.segment_text(index, total)

    async def summarize(self, full_text):
        await self._remote(("summarize", full_text))
        return f"summary: {full_text[:20]}"

    async def generate_image(self, image, mime_type, instruction):
        await self._remote(("image", instruction))
        if self.image_error:
            raise GenerationError(self.image_error)
        return GeneratedImage(data=b"\x89PNG-generated", mime_type="image/png")

    def calls_named(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]


@pytest.fixture
def service():
    return FakeService()


@pytest.fixture
async def queue(service):
    q = JobQueue(service, chunk_size=4)
    yield q
    await q.aclose()
