# blend_studio/pipelines.py
# Is turune gore calisan islem hatlari (transkripsiyon / mockup)

import asyncio
import logging
from typing import Callable, Optional

from .chunker import count_chunks, iter_chunks
from .gemini import ContentGenerationService
from .models import MockupInput, MockupResult, TranscriptionInput, TranscriptionResult
from .storage import ImageStore, image_to_data_url

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


async def run_transcription(
    job_input: TranscriptionInput,
    service: ContentGenerationService,
    chunk_size: int,
    on_progress: ProgressCallback,
) -> TranscriptionResult:
    """
    Transcribes the payload segment by segment, in order, then summarizes the
    assembled transcript. Any segment failure propagates and aborts the job;
    the partial transcript is dropped with it.
    """
    total = count_chunks(len(job_input.data), chunk_size)
    on_progress(0, total)

    transcript = ""
    for index, chunk in enumerate(iter_chunks(job_input.data, chunk_size)):
        on_progress(index + 1, total)
        text = await service.transcribe_segment(chunk, job_input.mime_type, index, total)
        transcript += text + " "

    transcript = transcript.strip()
    # summary has no progress of its own
    on_progress(total, total)

    summary = await service.summarize(transcript)
    logger.debug("transcribed %s: %d segments, %d chars", job_input.filename, total, len(transcript))
    return TranscriptionResult(transcription=transcript, summary=summary)


async def run_mockup(
    job_id: str,
    job_input: MockupInput,
    service: ContentGenerationService,
    image_store: Optional[ImageStore] = None,
) -> MockupResult:
    image = await service.generate_image(job_input.image, job_input.mime_type, job_input.prompt)
    if image_store is None:
        url = image_to_data_url(image)
    else:
        url = await _save_image(image_store, job_id, image)
    return MockupResult(image_url=url, mime_type=image.mime_type)


async def _save_image(image_store: ImageStore, job_id: str, image) -> str:
    save = asyncio.ensure_future(asyncio.to_thread(image_store.save, job_id, image))
    try:
        return await asyncio.shield(save)
    except asyncio.CancelledError:
        # is iptal edildi ama thread yazmaya devam ediyor; bitince dosyayi sil
        save.add_done_callback(lambda f: _discard_saved(image_store, f))
        raise


def _discard_saved(image_store: ImageStore, save: asyncio.Future) -> None:
    if save.cancelled() or save.exception() is not None:
        return
    logger.info("discarding image saved for cancelled job: %s", save.result())
    asyncio.get_running_loop().run_in_executor(None, image_store.discard, save.result())
