# blend_studio/state.py
# Is durum gecisleri: IDLE -> PROCESSING -> COMPLETED | ERROR
# PROCESSING'e sadece kuyrugun claim adimi gecirir; bitmis is degismez,
# hatali is yeni bir isle tekrar denenir (eski kayit IDLE'a donmez)

from datetime import datetime
from typing import FrozenSet, Set, Tuple

from .errors import InvalidStateTransitionError
from .models import ChunkProgress, JobResult, JobState, JobStatus, check_outcome


TERMINAL_JOB_STATES: FrozenSet[JobStatus] = frozenset({
    JobStatus.COMPLETED,
    JobStatus.ERROR,
})

_JOB_TRANSITIONS: Set[Tuple[JobStatus, JobStatus]] = {
    (JobStatus.IDLE, JobStatus.PROCESSING),
    (JobStatus.PROCESSING, JobStatus.COMPLETED),
    (JobStatus.PROCESSING, JobStatus.ERROR),
}


def is_job_terminal(status: JobStatus) -> bool:
    return status in TERMINAL_JOB_STATES


def can_transition_job(from_status: JobStatus, to_status: JobStatus) -> bool:
    return (from_status, to_status) in _JOB_TRANSITIONS


def _transition(job: JobState, to_status: JobStatus, **changes) -> JobState:
    if not can_transition_job(job.status, to_status):
        raise InvalidStateTransitionError(job.id, job.status.value, to_status.value)
    updated = job.model_copy(update={"status": to_status, "updated_at": datetime.now(), **changes})
    check_outcome(updated)
    return updated


def claim(job: JobState) -> JobState:
    return _transition(job, JobStatus.PROCESSING)


def complete(job: JobState, result: JobResult) -> JobState:
    return _transition(job, JobStatus.COMPLETED, result=result)


def fail(job: JobState, error: str) -> JobState:
    return _transition(job, JobStatus.ERROR, error=error)


def with_progress(job: JobState, current_chunk: int, total_chunks: int) -> JobState:
    """Progress is only reported while the job is PROCESSING."""
    if job.status is not JobStatus.PROCESSING:
        raise InvalidStateTransitionError(job.id, job.status.value, "progress")
    progress = ChunkProgress(current_chunk=current_chunk, total_chunks=total_chunks)
    return job.model_copy(update={"progress": progress, "updated_at": datetime.now()})


def fresh_copy(job: JobState) -> JobState:
    """New IDLE job with the same input, used for retries."""
    return JobState(input=job.input)
