"""Tests for the transcription and mockup pipelines."""
import asyncio
import base64
import threading

import pytest

from blend_studio.errors import GenerationError
from blend_studio.models import MockupInput, TranscriptionInput
from blend_studio.pipelines import run_mockup, run_transcription
from blend_studio.storage import ImageStore


def audio(data: bytes) -> TranscriptionInput:
    return TranscriptionInput(data=data, mime_type="audio/mpeg", filename="talk.mp3")


async def test_segments_transcribed_in_order(service):
    progress = []

    result = await run_transcription(audio(b"0123456789"), service, 4, lambda c, t: progress.append((c, t)))

    calls = service.calls_named("transcribe")
    assert [(c[1], c[2]) for c in calls] == [(0, 3), (1, 3), (2, 3)]
    assert [c[3] for c in calls] == [b"0123", b"4567", b"89"]
    assert result.transcription == "part-0-of-3 part-1-of-3 part-2-of-3"
    assert progress == [(0, 3), (1, 3), (2, 3), (3, 3), (3, 3)]


async def test_summary_sees_full_trimmed_transcript(service):
    result = await run_transcription(audio(b"abcdefgh"), service, 4, lambda c, t: None)

    summarize_calls = service.calls_named("summarize")
    assert summarize_calls == [("summarize", "part-0-of-2 part-1-of-2")]
    assert service.calls[-1][0] == "summarize"
    assert result.summary == "summary: part-0-of-2 part-1-o"


async def test_empty_segments_keep_separator(service):
    service.segment_text = lambda index, total: "" if index == 1 else f"s{index}"

    result = await run_transcription(audio(b"abcdefghij"), service, 4, lambda c, t: None)

    assert result.transcription == "s0  s2"


async def test_empty_payload_is_one_empty_segment(service):
    service.segment_text = lambda index, total: ""

    result = await run_transcription(audio(b""), service, 4, lambda c, t: None)

    assert [(c[1], c[2], c[3]) for c in service.calls_named("transcribe")] == [(0, 1, b"")]
    assert result.transcription == ""


async def test_segment_failure_aborts_before_summary(service):
    service.fail_on_segment = 1

    with pytest.raises(GenerationError):
        await run_transcription(audio(b"0123456789"), service, 4, lambda c, t: None)

    assert len(service.calls_named("transcribe")) == 2
    assert service.calls_named("summarize") == []


async def test_mockup_stored_locally(service, tmp_path):
    job_input = MockupInput(image=b"art", mime_type="image/png", prompt="on a mug")

    result = await run_mockup("job1", job_input, service, ImageStore(static_dir=tmp_path))

    assert service.calls == [("image", "on a mug")]
    assert result.image_url == "/static/job1_out.png"
    assert (tmp_path / "job1_out.png").read_bytes() == b"\x89PNG-generated"


async def test_mockup_without_store_is_inlined(service):
    job_input = MockupInput(image=b"art", mime_type="image/png", prompt="on a mug")

    result = await run_mockup("job1", job_input, service)

    expected = base64.b64encode(b"\x89PNG-generated").decode()
    assert result.image_url == f"data:image/png;base64,{expected}"
    assert result.mime_type == "image/png"


async def test_mockup_failure_propagates(service):
    service.image_error = "gemini error 429: quota"
    job_input = MockupInput(image=b"art", mime_type="image/png", prompt="on a mug")

    with pytest.raises(GenerationError, match="quota"):
        await run_mockup("job1", job_input, service)


class BlockingStore(ImageStore):
    """Local store whose save waits on ``release``, so a job can be cancelled mid-write."""

    def __init__(self, static_dir):
        super().__init__(static_dir=static_dir)
        self.entered = threading.Event()
        self.release = threading.Event()
        self.discarded = threading.Event()

    def save(self, job_id, image):
        self.entered.set()
        self.release.wait(5)
        return super().save(job_id, image)

    def discard(self, url):
        super().discard(url)
        self.discarded.set()


async def test_mockup_cancelled_during_save_deletes_image(service, tmp_path):
    store = BlockingStore(tmp_path)
    job_input = MockupInput(image=b"art", mime_type="image/png", prompt="on a mug")

    task = asyncio.ensure_future(run_mockup("job1", job_input, service, store))
    assert await asyncio.to_thread(store.entered.wait, 5)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    store.release.set()
    assert await asyncio.to_thread(store.discarded.wait, 5)
    assert not (tmp_path / "job1_out.png").exists()
