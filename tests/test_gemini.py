"""Tests for the Gemini REST adapter, with HTTP faked by httpx.MockTransport."""
import base64
import json

import httpx
import pytest

from blend_studio.credentials import ApiKeyStore
from blend_studio.errors import GenerationError, MissingCredentialError
from blend_studio.gemini import INSUFFICIENT_AUDIO_SUMMARY, SUMMARY_UNAVAILABLE, GeminiService
from blend_studio.models import JobStatus
from blend_studio.queue import JobQueue


def text_response(payload) -> httpx.Response:
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})


class Recorder:
    def __init__(self, respond):
        self.respond = respond
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.respond(request)

    def body(self, i: int = -1) -> dict:
        return json.loads(self.requests[i].content)


def make_service(respond, api_key="secret", **kwargs):
    recorder = Recorder(respond)
    store = ApiKeyStore(default=api_key)
    service = GeminiService(store.get, transport=httpx.MockTransport(recorder), **kwargs)
    return service, recorder, store


async def test_transcribe_segment_sends_part_context():
    service, recorder, _ = make_service(lambda r: text_response({"text": "olá mundo"}))

    text = await service.transcribe_segment(b"audio-bytes", "audio/mpeg", 1, 3)

    assert text == "olá mundo"
    request = recorder.requests[0]
    assert request.url.path == "/v1beta/models/gemini-2.5-flash:generateContent"
    assert request.headers["x-goog-api-key"] == "secret"

    parts = recorder.body()["contents"][0]["parts"]
    assert parts[0]["inlineData"] == {
        "mimeType": "audio/mpeg",
        "data": base64.b64encode(b"audio-bytes").decode(),
    }
    assert "part 2 of 3" in parts[1]["text"]
    assert recorder.body()["generationConfig"]["responseMimeType"] == "application/json"


@pytest.mark.parametrize("payload", [
    {},
    {"text": None},
    "not json at all",
    "",
])
async def test_transcribe_degrades_to_empty_string(payload):
    service, _, _ = make_service(lambda r: text_response(payload))
    assert await service.transcribe_segment(b"noise", "audio/wav", 0, 1) == ""


async def test_transcribe_without_candidates_is_empty():
    service, _, _ = make_service(lambda r: httpx.Response(200, json={"candidates": []}))
    assert await service.transcribe_segment(b"noise", "audio/wav", 0, 1) == ""


async def test_transcribe_rejects_out_of_range_index():
    service, recorder, _ = make_service(lambda r: text_response({"text": "x"}))
    with pytest.raises(ValueError):
        await service.transcribe_segment(b"a", "audio/wav", 2, 2)
    assert recorder.requests == []


async def test_empty_segment_skips_remote_call():
    service, recorder, _ = make_service(lambda r: httpx.Response(400, text="empty inline data"))

    assert await service.transcribe_segment(b"", "audio/wav", 0, 1) == ""
    assert recorder.requests == []


async def test_empty_upload_completes_as_insufficient_audio():
    service, recorder, _ = make_service(lambda r: httpx.Response(400, text="empty inline data"))
    queue = JobQueue(service, chunk_size=4)

    job_id = queue.enqueue_transcription(b"", "audio/mpeg", "silence.mp3")
    await queue.join()

    job = queue.get(job_id)
    assert job.status is JobStatus.COMPLETED
    assert job.result.transcription == ""
    assert job.result.summary == INSUFFICIENT_AUDIO_SUMMARY
    assert recorder.requests == []
    await queue.aclose()


async def test_http_error_raises_generation_error():
    service, _, _ = make_service(lambda r: httpx.Response(403, text="API key not valid"))
    with pytest.raises(GenerationError, match="gemini error 403: API key not valid"):
        await service.transcribe_segment(b"a", "audio/wav", 0, 1)


async def test_transport_error_raises_generation_error():
    def respond(request):
        raise httpx.ConnectError("connection refused", request=request)

    service, _, _ = make_service(respond)
    with pytest.raises(GenerationError, match="connection refused"):
        await service.transcribe_segment(b"a", "audio/wav", 0, 1)


async def test_missing_key_fails_before_any_request():
    service, recorder, _ = make_service(lambda r: text_response({"text": "x"}), api_key=None)

    with pytest.raises(MissingCredentialError):
        service.check_credentials()
    with pytest.raises(MissingCredentialError):
        await service.transcribe_segment(b"a", "audio/wav", 0, 1)
    assert recorder.requests == []


async def test_api_key_is_read_on_every_call():
    service, recorder, store = make_service(lambda r: text_response({"text": "x"}))

    await service.transcribe_segment(b"a", "audio/wav", 0, 1)
    store.set("rotated")
    await service.transcribe_segment(b"a", "audio/wav", 0, 1)

    assert [r.headers["x-goog-api-key"] for r in recorder.requests] == ["secret", "rotated"]


@pytest.mark.parametrize("text", ["", "too short", "x" * 49])
async def test_summarize_short_transcript_skips_remote_call(text):
    service, recorder, _ = make_service(lambda r: text_response({"summary": "never"}))

    assert await service.summarize(text) == INSUFFICIENT_AUDIO_SUMMARY
    assert recorder.requests == []


async def test_summarize_returns_summary_field():
    service, recorder, _ = make_service(lambda r: text_response({"summary": "Key points: ..."}))
    transcript = "word " * 20

    assert await service.summarize(transcript) == "Key points: ..."
    assert transcript in recorder.body()["contents"][0]["parts"][0]["text"]
    schema = recorder.body()["generationConfig"]["responseSchema"]
    assert schema["properties"] == {"summary": {"type": "STRING"}}


async def test_summarize_missing_field_uses_fallback():
    service, _, _ = make_service(lambda r: text_response({"other": "x"}))
    assert await service.summarize("word " * 20) == SUMMARY_UNAVAILABLE


async def test_generate_image_decodes_inline_data():
    png = b"\x89PNG\r\n\x1a\nfake"

    def respond(request):
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [
            {"text": "Here is your mockup"},
            {"inlineData": {"mimeType": "image/png", "data": base64.b64encode(png).decode()}},
        ]}}]})

    service, recorder, _ = make_service(respond)
    image = await service.generate_image(b"art", "image/jpeg", "on a mug")

    assert image.data == png
    assert image.mime_type == "image/png"
    assert recorder.requests[0].url.path.endswith("/models/gemini-2.5-flash-image:generateContent")
    assert recorder.body()["generationConfig"] == {"responseModalities": ["IMAGE"]}
    assert "on a mug" in recorder.body()["contents"][0]["parts"][1]["text"]


async def test_generate_image_without_image_part_fails():
    service, _, _ = make_service(lambda r: text_response("I cannot do that"))
    with pytest.raises(GenerationError, match="no image in response"):
        await service.generate_image(b"art", "image/png", "on a mug")


async def test_generate_image_reports_block_reason():
    service, _, _ = make_service(
        lambda r: httpx.Response(200, json={"promptFeedback": {"blockReason": "SAFETY"}})
    )
    with pytest.raises(GenerationError, match="SAFETY"):
        await service.generate_image(b"art", "image/png", "on a mug")


async def test_custom_endpoint_and_model():
    service, recorder, _ = make_service(
        lambda r: text_response({"text": "ok"}),
        endpoint="https://proxy.example.com/",
        api_version="v1",
        model="gemini-pro",
    )
    await service.transcribe_segment(b"a", "audio/wav", 0, 1)
    assert str(recorder.requests[0].url) == "https://proxy.example.com/v1/models/gemini-pro:generateContent"
