# billflow/client.py
import logging
from typing import Any, Callable, Optional, List, Dict
from datetime import datetime, UTC

from .common.job import Job, DEFAULT_QUEUE, DEFAULT_MAX_ATTEMPTS
from .common.reminders import ReminderKind, ReminderPayload, manual_job_id
from .common.states import (
    ALL_STATES,
    CompletedState,
    DelayedState,
    FailedState,
    WaitingState,
)
from .storage.base import JobStorage
from .serialization.base import BaseSerializer
from .serialization.json_serializer import JsonSerializer

logger = logging.getLogger(__name__)


class QueueClient:
    """
    Entry point for putting reminder jobs on a queue and for the operator
    actions exposed by the admin dashboard.
    """

    def __init__(
        self,
        storage: JobStorage,
        serializer: Optional[BaseSerializer] = None,
        queue: str = DEFAULT_QUEUE,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        remove_on_complete: bool = True,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.storage = storage
        self.serializer = serializer or JsonSerializer()
        self.queue = queue
        self.max_attempts = max_attempts
        self.remove_on_complete = remove_on_complete
        self.clock = clock or (lambda: datetime.now(UTC))

    def _new_job(self, payload: ReminderPayload, job_id: Optional[str], state, enqueue_at=None) -> Job:
        job = Job(
            payload=payload,
            state_name=state.name,
            state_data=state.serialize_data(),
            created_at=state.created_at,
            queue=self.queue,
            max_attempts=self.max_attempts,
            enqueue_at=enqueue_at,
            remove_on_complete=self.remove_on_complete,
        )
        if job_id:
            job.id = job_id
        return job

    def enqueue(self, payload: ReminderPayload, job_id: Optional[str] = None) -> Optional[str]:
        """Creates a job that is ready to run now. Returns None if the id is taken."""
        state = WaitingState(created_at=self.clock())
        job = self._new_job(payload, job_id, state)
        if not self.storage.add(job):
            logger.info(f"Job {job.id} is already pending; enqueue ignored")
            return None
        return job.id

    def schedule(
        self, payload: ReminderPayload, enqueue_at: datetime, job_id: Optional[str] = None
    ) -> Optional[str]:
        """Creates a job that becomes runnable at ``enqueue_at``.

        A time that is not in the future makes the job runnable immediately.
        Returns None if a pending job already holds ``job_id``.
        """
        now = self.clock()
        if enqueue_at <= now:
            return self.enqueue(payload, job_id)

        state = DelayedState(enqueue_at, created_at=now)
        job = self._new_job(payload, job_id, state, enqueue_at=enqueue_at)
        if not self.storage.add(job):
            logger.info(f"Job {job.id} is already pending; schedule ignored")
            return None
        return job.id

    def cancel(self, job_id: str) -> bool:
        """Removes a job that has not started yet. Missing or running jobs are left alone."""
        return self.storage.remove(job_id, states=[DelayedState.NAME, WaitingState.NAME])

    # --- Admin Methods ---

    def trigger_now(self, task_id: str, kind: ReminderKind) -> str:
        """Queues an immediate reminder that is never deduplicated against the schedule."""
        timestamp_ms = int(self.clock().timestamp() * 1000)
        job_id = manual_job_id(kind, task_id, timestamp_ms)
        payload = ReminderPayload(task_id=task_id, kind=kind)
        while self.enqueue(payload, job_id) is None:
            # Two triggers in the same millisecond.
            timestamp_ms += 1
            job_id = manual_job_id(kind, task_id, timestamp_ms)
        logger.info(f"Manually triggered {kind.value} for task {task_id} as job {job_id}")
        return job_id

    def promote(self, job_id: str) -> bool:
        promoted = self.storage.promote(job_id)
        if promoted:
            logger.info(f"Promoted delayed job {job_id}")
        return promoted

    def promote_all_delayed(self) -> int:
        count = 0
        for job_id in self.storage.get_job_ids_by_state(DelayedState.NAME):
            try:
                if self.storage.promote(job_id):
                    count += 1
            except Exception as e:
                # The job moved on between listing and promoting it.
                logger.warning(f"Skipping job {job_id} while promoting delayed jobs: {e}")
        logger.info(f"Promoted {count} delayed job(s)")
        return count

    def delete_job(self, job_id: str) -> bool:
        deleted = self.storage.remove(job_id)
        if deleted:
            logger.info(f"Deleted job {job_id}")
        return deleted

    def purge(self, state_name: str) -> int:
        if state_name not in (CompletedState.NAME, FailedState.NAME):
            raise ValueError(f"Only finished jobs can be purged, not '{state_name}'")
        count = 0
        for job_id in self.storage.get_job_ids_by_state(state_name):
            try:
                if self.storage.remove(job_id, states=[state_name]):
                    count += 1
            except Exception:
                logger.warning(f"Skipping job {job_id} while purging {state_name} jobs", exc_info=True)
        logger.info(f"Purged {count} {state_name} job(s)")
        return count

    def purge_failed(self) -> int:
        return self.purge(FailedState.NAME)

    def purge_completed(self) -> int:
        return self.purge(CompletedState.NAME)

    def get_jobs_by_state(
        self, state_name: str, page: int = 1, page_size: int = 20
    ) -> List[Job]:
        start = (page - 1) * page_size
        return self.storage.get_jobs_by_state(state_name, start, page_size)

    def get_job_details(self, job_id: str) -> Optional[Job]:
        return self.storage.get_job_data(job_id)

    def get_state_counts(self) -> Dict[str, int]:
        return {state: self.storage.get_state_job_count(state) for state in ALL_STATES}

    def get_queue_details(self, page_size: int = 100) -> Dict[str, Any]:
        jobs = {
            state: [
                self.serializer.job_to_dict(job)
                for job in self.get_jobs_by_state(state, page_size=page_size)
            ]
            for state in ALL_STATES
        }
        return {"name": self.queue, "jobs": jobs, "counts": self.get_state_counts()}
