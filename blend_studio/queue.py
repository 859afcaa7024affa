# blend_studio/queue.py
# Is kuyrugu: kayitlari tutar, IDLE isleri claim eder ve islem hatlarini calistirir

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Dict, List, Optional, Set, Tuple, Union

from . import state
from .config import settings
from .errors import JobError, JobNotFoundError, JobNotRetryableError, MissingCredentialError
from .gemini import ContentGenerationService
from .models import (
    JobKind,
    JobResult,
    JobState,
    JobStatus,
    MockupInput,
    MockupResult,
    TranscriptionInput,
)
from .pipelines import run_mockup, run_transcription
from .storage import ImageStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobEvent:
    """A change to one job: enqueued, claimed, progress, completed, failed or removed."""
    type: str
    job: JobState


@dataclass(frozen=True)
class ProgressUpdate:
    job_id: str
    current_chunk: int
    total_chunks: int
    event = "progress"

    def apply(self, job: JobState) -> JobState:
        return state.with_progress(job, self.current_chunk, self.total_chunks)


@dataclass(frozen=True)
class CompletedUpdate:
    job_id: str
    result: JobResult
    event = "completed"

    def apply(self, job: JobState) -> JobState:
        return state.complete(job, self.result)


@dataclass(frozen=True)
class FailedUpdate:
    job_id: str
    error: str
    event = "failed"

    def apply(self, job: JobState) -> JobState:
        return state.fail(job, self.error)


JobUpdate = Union[ProgressUpdate, CompletedUpdate, FailedUpdate]
Listener = Callable[[JobEvent], None]


class JobQueue:
    """
    In-memory queue of transcription and mockup jobs.

    Every change to the collection triggers a processing pass that claims
    IDLE jobs (up to ``max_concurrent_jobs`` in flight, 0 for no cap) and
    starts one asyncio task per claimed job. Pipelines never touch the
    collection directly: they post updates to a channel that a single
    consumer task applies in order. Updates for a job that was removed in
    the meantime are dropped.
    """

    def __init__(
        self,
        service: ContentGenerationService,
        *,
        chunk_size: Optional[int] = None,
        image_store: Optional[ImageStore] = None,
        max_concurrent_jobs: int = 0,
        cancel_on_remove: bool = True,
    ):
        self._service = service
        self._chunk_size = chunk_size or settings.effective_chunk_size
        if self._chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._image_store = image_store
        self._max_concurrent = max(0, max_concurrent_jobs)
        self._cancel_on_remove = cancel_on_remove

        self._jobs: Dict[str, JobState] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._cancelling: Set[asyncio.Task] = set()
        self._cleanup: Set[asyncio.Task] = set()
        self._updates: asyncio.Queue = asyncio.Queue()
        self._consumer: Optional[asyncio.Task] = None
        self._listeners: List[Listener] = []
        self._subscribers: List[asyncio.Queue] = []

    @classmethod
    def from_settings(
        cls, service: ContentGenerationService, image_store: Optional[ImageStore] = None
    ) -> "JobQueue":
        return cls(
            service,
            chunk_size=settings.effective_chunk_size,
            image_store=image_store,
            max_concurrent_jobs=settings.MAX_CONCURRENT_JOBS,
            cancel_on_remove=settings.CANCEL_ON_REMOVE,
        )

    # ── Public operations ────────────────────────────────────────────

    def enqueue(self, job_input: Union[TranscriptionInput, MockupInput]) -> Optional[str]:
        """Adds a new IDLE job and returns its id; None when a required field is missing."""
        if not _has_required_fields(job_input):
            logger.debug("ignoring incomplete %s input", job_input.kind)
            return None
        return self._add(JobState(input=job_input))

    def enqueue_transcription(
        self, data: Optional[bytes], mime_type: str, filename: str
    ) -> Optional[str]:
        if data is None:
            return None
        return self.enqueue(
            TranscriptionInput(data=data, mime_type=mime_type or "application/octet-stream", filename=filename)
        )

    def enqueue_mockup(
        self,
        image: Optional[bytes],
        mime_type: str,
        prompt: Optional[str],
        filename: Optional[str] = None,
        preset: Optional[str] = None,
    ) -> Optional[str]:
        if not image or not prompt or not prompt.strip():
            return None
        return self.enqueue(
            MockupInput(image=image, mime_type=mime_type or "image/png", prompt=prompt, filename=filename, preset=preset)
        )

    def retry(self, job_id: str) -> str:
        """
        Creates a fresh IDLE job from a failed job's input. Completed mockups
        can also be regenerated this way. The original job stays in the
        collection until removed.
        """
        job = self.get(job_id)
        regenerate = job.status is JobStatus.COMPLETED and isinstance(job.input, MockupInput)
        if job.status is not JobStatus.ERROR and not regenerate:
            raise JobNotRetryableError(job_id, job.status.value)
        return self._add(state.fresh_copy(job))

    def remove(self, job_id: str) -> Optional[JobState]:
        job = self._jobs.get(job_id)
        if job is None:
            return None
        self._install({k: v for k, v in self._jobs.items() if k != job_id})
        self._detach(job)
        self._notify("removed", job)
        self._process_pass()
        return job

    def clear(self, kind: Optional[JobKind] = None) -> List[JobState]:
        removed = [j for j in self._jobs.values() if kind is None or j.kind is kind]
        if not removed:
            return []
        removed_ids = {j.id for j in removed}
        self._install({k: v for k, v in self._jobs.items() if k not in removed_ids})
        for job in removed:
            self._detach(job)
            self._notify("removed", job)
        self._process_pass()
        return removed

    def get(self, job_id: str) -> JobState:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def snapshot(self, kind: Optional[JobKind] = None) -> Tuple[JobState, ...]:
        """Transcriptions in insertion order, mockups most recent first."""
        jobs = list(self._jobs.values())
        transcriptions = [j for j in jobs if j.kind is JobKind.TRANSCRIPTION]
        mockups = [j for j in reversed(jobs) if j.kind is JobKind.MOCKUP]
        if kind is JobKind.TRANSCRIPTION:
            return tuple(transcriptions)
        if kind is JobKind.MOCKUP:
            return tuple(mockups)
        return tuple(transcriptions + mockups)

    @property
    def processing_count(self) -> int:
        return sum(1 for j in self._jobs.values() if j.status is JobStatus.PROCESSING)

    # ── Notifications ────────────────────────────────────────────────

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Registers a callback for every job event; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def events(self) -> AsyncIterator[JobEvent]:
        """Yields job events as they happen, until the consumer stops iterating."""
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            if queue in self._subscribers:
                self._subscribers.remove(queue)

    def _notify(self, event_type: str, job: JobState) -> None:
        event = JobEvent(event_type, job)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("job listener failed on %s event for %s", event_type, job.id)
        for queue in list(self._subscribers):
            queue.put_nowait(event)

    # ── Lifecycle ────────────────────────────────────────────────────

    async def join(self) -> None:
        """Waits until no pipeline is running and every posted update has been applied."""
        while True:
            tasks = [*self._tasks.values(), *self._cancelling, *self._cleanup]
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
            await self._updates.join()
            if not self._tasks and not self._cancelling and not self._cleanup:
                return

    async def aclose(self) -> None:
        """Cancels in-flight pipelines and the update consumer."""
        tasks = [*self._tasks.values(), *self._cancelling, *self._cleanup]
        if self._consumer is not None:
            tasks.append(self._consumer)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._cancelling.clear()
        self._cleanup.clear()
        self._consumer = None

    # ── Processing ───────────────────────────────────────────────────

    def _install(self, jobs: Dict[str, JobState]) -> None:
        self._jobs = jobs

    def _add(self, job: JobState) -> str:
        self._install({**self._jobs, job.id: job})
        self._notify("enqueued", job)
        self._process_pass()
        return job.id

    def _process_pass(self) -> None:
        """
        Claims IDLE jobs as one batch and launches their pipelines. A no-op
        when nothing is IDLE or every slot is taken.
        """
        while True:
            idle = [j for j in self._jobs.values() if j.status is JobStatus.IDLE]
            if not idle:
                return
            if self._max_concurrent:
                free = self._max_concurrent - self.processing_count
                if free <= 0:
                    return
                idle = idle[:free]

            claimed = [state.claim(j) for j in idle]
            self._install({**self._jobs, **{j.id: j for j in claimed}})

            launched = 0
            for job in claimed:
                self._notify("claimed", job)
                if job.id in self._jobs and self._launch(job):
                    launched += 1
            # jobs failed at launch freed their slots; look again
            if launched == len(claimed):
                return

    def _launch(self, job: JobState) -> bool:
        try:
            self._service.check_credentials()
        except MissingCredentialError as exc:
            logger.warning("Job %s failed: %s", job.id, exc)
            self._apply(FailedUpdate(job.id, str(exc)))
            return False

        self._ensure_consumer()
        task = asyncio.get_running_loop().create_task(self._run(job), name=f"job-{job.id}")
        self._tasks[job.id] = task
        return True

    async def _run(self, job: JobState) -> None:
        def report(current: int, total: int) -> None:
            self._updates.put_nowait(ProgressUpdate(job.id, current, total))

        try:
            match job.input:
                case TranscriptionInput():
                    result = await run_transcription(job.input, self._service, self._chunk_size, report)
                case MockupInput():
                    result = await run_mockup(job.id, job.input, self._service, self._image_store)
                case _:
                    raise TypeError(f"unsupported job input: {type(job.input).__name__}")
        except asyncio.CancelledError:
            logger.info("Job %s cancelled", job.id)
            raise
        except Exception as exc:
            logger.warning("Job %s failed: %s", job.id, exc)
            self._updates.put_nowait(FailedUpdate(job.id, str(exc) or type(exc).__name__))
        else:
            self._updates.put_nowait(CompletedUpdate(job.id, result))
        finally:
            if self._tasks.get(job.id) is asyncio.current_task():
                del self._tasks[job.id]

    def _detach(self, job: JobState) -> None:
        if not self._cancel_on_remove:
            return
        task = self._tasks.pop(job.id, None)
        if task is not None and not task.done():
            logger.info("cancelling job %s", job.id)
            task.cancel()
            self._cancelling.add(task)
            task.add_done_callback(self._cancelling.discard)

    def _ensure_consumer(self) -> None:
        if self._consumer is None or self._consumer.done():
            self._consumer = asyncio.get_running_loop().create_task(self._consume_updates(), name="job-updates")

    async def _consume_updates(self) -> None:
        while True:
            update = await self._updates.get()
            try:
                job = self._apply(update)
                if job is not None and state.is_job_terminal(job.status):
                    self._process_pass()
            except JobError:
                logger.exception("could not apply %s update for job %s", update.event, update.job_id)
            finally:
                self._updates.task_done()

    def _apply(self, update: JobUpdate) -> Optional[JobState]:
        job = self._jobs.get(update.job_id)
        if job is None:
            logger.debug("discarding %s update for removed job %s", update.event, update.job_id)
            if isinstance(update, CompletedUpdate):
                self._discard_result(update.result)
            return None
        updated = update.apply(job)
        self._install({**self._jobs, job.id: updated})
        self._notify(update.event, updated)
        return updated

    def _discard_result(self, result: JobResult) -> None:
        """Deletes the stored image of a result whose job no longer exists."""
        if self._image_store is None or not isinstance(result, MockupResult):
            return
        task = asyncio.get_running_loop().create_task(
            asyncio.to_thread(self._image_store.discard, result.image_url), name="discard-result"
        )
        self._cleanup.add(task)
        task.add_done_callback(self._cleanup.discard)


def _has_required_fields(job_input: Union[TranscriptionInput, MockupInput]) -> bool:
    match job_input:
        case TranscriptionInput():
            return job_input.data is not None
        case MockupInput():
            return bool(job_input.image) and bool(job_input.prompt.strip())
    return False
