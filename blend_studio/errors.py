# blend_studio/errors.py
# Hata tipleri: uzak servis hatalari GenerationError (ise yazilir),
# kuyruk kullanimi hatalari JobError (HTTP katmaninda 4xx)


class StudioError(Exception):
    """Base exception for all studio failures."""
    pass


class GenerationError(StudioError):
    """Raised when the content generation service call fails."""
    pass


class MissingCredentialError(GenerationError):
    """Raised before any network attempt when no API key is configured."""

    def __init__(self):
        super().__init__("API key not found. Please configure your key in Settings.")


class JobError(StudioError):
    """Base exception for job queue failures."""
    pass


class JobNotFoundError(JobError):
    """Raised when a job id matches no record."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class JobNotRetryableError(JobError):
    """Raised when retry is requested for a job that is neither failed nor a finished mockup."""

    def __init__(self, job_id: str, status: str):
        self.job_id = job_id
        self.status = status
        super().__init__(f"Job {job_id} cannot be retried from status {status}")


class InvalidStateTransitionError(JobError):
    """Raised when attempting an illegal state transition."""

    def __init__(self, job_id: str, current_state: str, target_state: str):
        self.job_id = job_id
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(
            f"Invalid job state transition for {job_id}: "
            f"{current_state} -> {target_state}"
        )
