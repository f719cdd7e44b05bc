"""Retry policy for failed processing jobs."""

from dataclasses import dataclass
from datetime import datetime, timedelta, UTC

from app.core.config import settings
from app.models.job import ProcessingJob


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff capped at ``max_delay_seconds``.

    A failure that names the time the provider becomes usable again
    (``retry_after``, e.g. a daily quota reset) waits until then and does
    not use up an attempt.
    """

    max_attempts: int = 3
    base_delay_seconds: int = 30
    max_delay_seconds: int = 3600

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.max_retry_attempts,
            base_delay_seconds=settings.retry_backoff_base_seconds,
            max_delay_seconds=settings.retry_backoff_max_seconds,
        )

    def should_retry(self, job: ProcessingJob) -> bool:
        """A retryable job is retried while it has attempts left or awaits a provider reset."""
        if not job.retryable:
            return False
        return job.retry_after is not None or job.attempt < self.max_attempts

    def is_exhausted(self, job: ProcessingJob) -> bool:
        return not self.should_retry(job)

    def next_attempt(self, job: ProcessingJob) -> int:
        """Attempt number of the job that retries ``job``."""
        return job.attempt if job.retry_after is not None else job.attempt + 1

    def delay_for(self, attempt: int) -> timedelta:
        """Delay before running ``attempt`` (the first retry is attempt 2)."""
        exponent = max(attempt - 2, 0)
        seconds = min(self.base_delay_seconds * (2**exponent), self.max_delay_seconds)
        return timedelta(seconds=seconds)

    def next_run_at(
        self,
        attempt: int,
        now: datetime | None = None,
        not_before: datetime | None = None,
    ) -> datetime:
        run_at = (now or datetime.now(UTC)) + self.delay_for(attempt)
        if not_before is not None and not_before > run_at:
            return not_before
        return run_at
