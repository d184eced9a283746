# billflow/server/processor.py
import logging
from datetime import datetime, UTC
from typing import Callable, List, Optional

from billflow.common.job import Job
from billflow.common.reminders import ReminderPayload
from billflow.common.results import FatalError, JobResult, Ok, RetryableError
from billflow.common.states import (
    ActiveState,
    BaseState,
    CompletedState,
    DelayedState,
    FailedState,
)
from billflow.storage.base import JobStorage
from ..filters.base import JobFilter
from ..filters.builtin import RetryFilter
from .context import ElectStateContext

logger = logging.getLogger(__name__)

JobHandler = Callable[[ReminderPayload], JobResult]


class JobProcessor:
    def __init__(
        self,
        job: Job,
        storage: JobStorage,
        handler: JobHandler,
        filters: Optional[List[JobFilter]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.job = job
        self.storage = storage
        self.handler = handler
        self.filters = filters if filters is not None else [RetryFilter(attempts=3)]
        self._clock = clock or (lambda: datetime.now(UTC))

    def _perform(self) -> JobResult:
        try:
            return self.handler(self.job.payload)
        except Exception as e:
            # A handler that raises instead of returning a result gets retried.
            logger.error(f"Job {self.job.id} raised an unexpected error.", exc_info=True)
            return RetryableError(reason=str(e) or type(e).__name__, exception_type=type(e).__name__)

    def process(self) -> BaseState:
        now = self._clock()
        result = self._perform()

        if isinstance(result, Ok):
            final_state: BaseState = CompletedState(result=result.result, created_at=now)
        else:
            logger.warning(f"Job {self.job.id} attempt {self.job.attempts} failed: {result.reason}")
            failed_state = FailedState(
                exception_type=result.exception_type,
                exception_message=result.reason,
                created_at=now,
            )
            elect_state_context = ElectStateContext(
                job=self.job,
                candidate_state=failed_state,
                retryable=isinstance(result, RetryableError),
                now=now,
            )
            for f in self.filters:
                f.on_state_election(elect_state_context)
            final_state = elect_state_context.candidate_state
            logger.debug(f"Job {self.job.id}: final_state={final_state.name}")

        updated = self.storage.set_job_state(
            self.job.id, final_state, expected_old_state=ActiveState.NAME
        )
        if not updated:
            # Deleted by an operator (or recovered) while it was running.
            logger.info(f"Job {self.job.id} left the active state during processing; result dropped")
            return final_state

        # Re-delayed jobs were moved out of the active list by set_job_state.
        if not isinstance(final_state, DelayedState):
            self.storage.acknowledge(self.job.id)

        if isinstance(final_state, CompletedState) and self.job.remove_on_complete:
            self.storage.remove(self.job.id, states=[CompletedState.NAME])
        elif isinstance(final_state, FailedState):
            logger.error(
                f"Job {self.job.id} failed permanently after {self.job.attempts} attempt(s): "
                f"{final_state.exception_message}"
            )
        return final_state
