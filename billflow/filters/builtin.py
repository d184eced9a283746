# billflow/filters/builtin.py
from datetime import timedelta
from typing import Callable

from billflow.filters.base import JobFilter
from billflow.common.states import DelayedState, FailedState
import logging
from billflow.server.context import ElectStateContext

logger = logging.getLogger(__name__)

BACKOFF_BASE_MS = 2000


def exponential_backoff(attempt: int, base_ms: int = BACKOFF_BASE_MS) -> int:
    """Delay before the next try after ``attempt`` failed: 2s, 4s, 8s, ..."""
    return base_ms * 2 ** (attempt - 1)


class RetryFilter(JobFilter):
    def __init__(
        self,
        attempts: int = 3,
        backoff: Callable[[int], int] = exponential_backoff,
    ):
        self.attempts = attempts
        self.backoff = backoff

    def on_state_election(self, elect_state_context: ElectStateContext):
        job = elect_state_context.job
        candidate_state = elect_state_context.candidate_state

        if not isinstance(candidate_state, FailedState):
            return
        if not elect_state_context.retryable:
            logger.debug(f"RetryFilter: Job {job.id} failed fatally, not retrying.")
            return

        max_attempts = min(self.attempts, job.max_attempts)
        logger.debug(
            f"RetryFilter: Job {job.id} failed. Attempts made: {job.attempts}, Max attempts: {max_attempts}"
        )

        if job.attempts < max_attempts:
            delay_ms = self.backoff(job.attempts)
            logger.debug(f"RetryFilter: Re-delaying job {job.id} by {delay_ms}ms.")
            elect_state_context.candidate_state = DelayedState(
                enqueue_at=elect_state_context.now + timedelta(milliseconds=delay_ms),
                reason=f"Retrying after attempt {job.attempts} of {max_attempts}: "
                f"{candidate_state.exception_message}",
                created_at=elect_state_context.now,
            )
        else:
            logger.debug(
                f"RetryFilter: Job {job.id} retries exhausted. Moving to Failed state."
            )
