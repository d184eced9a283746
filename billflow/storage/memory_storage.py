# billflow/storage/memory_storage.py
import dataclasses
import time
from collections import deque
from datetime import datetime, UTC, timedelta
from threading import RLock, Condition
from typing import Callable, Collection, Optional, List, Dict

from billflow.storage.base import JobStorage
from billflow.common.exceptions import JobNotFoundError, InvalidJobStateError
from billflow.common.job import Job
from billflow.common.states import (
    BaseState,
    ActiveState,
    DelayedState,
    FailedState,
    WaitingState,
    FINAL_STATES,
)


class MemoryStorage(JobStorage):
    def __init__(
        self,
        clock: Optional[Callable[[], datetime]] = None,
        poll_interval: float = 0.05,
    ):
        self._clock = clock or (lambda: datetime.now(UTC))
        self._poll_interval = poll_interval
        self._jobs: Dict[str, Job] = {}
        self._waiting: Dict[str, deque[str]] = {}
        self._delayed: Dict[str, datetime] = {}
        self._processing: Dict[str, Job] = {}  # Jobs currently being processed
        self._lock = RLock()
        self._condition = Condition(self._lock)

    def _copy(self, job: Job) -> Job:
        return dataclasses.replace(job, state_data=dict(job.state_data))

    def _detach(self, job: Job) -> None:
        """Drop the job from whatever structure its current state lives in."""
        self._delayed.pop(job.id, None)
        self._processing.pop(job.id, None)
        waiting = self._waiting.get(job.queue)
        if waiting and job.id in waiting:
            waiting.remove(job.id)

    def _attach(self, job: Job) -> None:
        if job.state_name == DelayedState.NAME:
            self._delayed[job.id] = job.enqueue_at or self._clock()
        elif job.state_name == WaitingState.NAME:
            self._waiting.setdefault(job.queue, deque()).append(job.id)
            self._condition.notify()  # Notify any waiting worker
        elif job.state_name == ActiveState.NAME:
            self._processing[job.id] = job

    def _apply_state(self, job: Job, state: BaseState) -> None:
        self._detach(job)
        job.state_name = state.name
        job.state_data = state.serialize_data()
        if isinstance(state, DelayedState):
            job.enqueue_at = state.enqueue_at
        job.last_error = state.exception_message if isinstance(state, FailedState) else None
        self._attach(job)

    def add(self, job: Job) -> bool:
        with self._lock:
            existing = self._jobs.get(job.id)
            if existing and existing.state_name not in FINAL_STATES:
                return False
            if existing:
                self._detach(existing)
            stored = self._copy(job)
            self._jobs[job.id] = stored
            self._attach(stored)
        return True

    def dequeue(
        self,
        queues: List[str],
        timeout_seconds: float,
        server_id: str = "server-memory",
        worker_id: str = "worker-1",
    ) -> Optional[Job]:
        deadline = time.monotonic() + timeout_seconds
        with self._condition:
            while True:
                self.promote_due_jobs()
                for queue_name in queues:
                    if self._waiting.get(queue_name):
                        job = self._jobs[self._waiting[queue_name].popleft()]
                        job.attempts += 1
                        # Atomically move to active
                        self._apply_state(
                            job, ActiveState(server_id, worker_id, created_at=self._clock())
                        )
                        return self._copy(job)

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                # Delayed jobs can come due without a notify, so wake up periodically.
                self._condition.wait(min(remaining, self._poll_interval))

    def acknowledge(self, job_id: str) -> None:
        with self._lock:
            self._processing.pop(job_id, None)

    def set_job_state(
        self, job_id: str, state: BaseState, expected_old_state: Optional[str] = None
    ) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return False
            if expected_old_state and job.state_name != expected_old_state:
                return False
            self._apply_state(job, state)
            return True

    def promote(self, job_id: str) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(f"Job {job_id} not found")
            if job.state_name == WaitingState.NAME:
                return False
            if job.state_name != DelayedState.NAME:
                raise InvalidJobStateError(
                    f"Job {job_id} is {job.state_name} and cannot be promoted"
                )
            self._apply_state(job, WaitingState(reason="Promoted", created_at=self._clock()))
            return True

    def promote_due_jobs(self, limit: int = 100) -> List[str]:
        with self._lock:
            now = self._clock()
            due = sorted(
                (enqueue_at, job_id)
                for job_id, enqueue_at in self._delayed.items()
                if enqueue_at <= now
            )[:limit]
            for _, job_id in due:
                self._apply_state(self._jobs[job_id], WaitingState(created_at=now))
            return [job_id for _, job_id in due]

    def remove(self, job_id: str, states: Optional[Collection[str]] = None) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return False
            if states is not None and job.state_name not in states:
                return False
            self._detach(job)
            del self._jobs[job_id]
            return True

    def get_job_data(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            return self._copy(job) if job else None

    def get_job_ids_by_state(
        self, state_name: str, start: int = 0, count: int = -1
    ) -> List[str]:
        with self._lock:
            jobs = sorted(
                (job for job in self._jobs.values() if job.state_name == state_name),
                key=lambda job: job.created_at,
                reverse=True,
            )
            ids = [job.id for job in jobs]
        return ids[start:] if count < 0 else ids[start : start + count]

    def get_state_job_count(self, state_name: str) -> int:
        with self._lock:
            return sum(1 for job in self._jobs.values() if job.state_name == state_name)

    def recover_stuck_jobs(self, max_age_seconds: int, limit: int = 100) -> List[str]:
        cutoff = self._clock() - timedelta(seconds=max_age_seconds)
        recovered: List[str] = []
        with self._lock:
            for job in list(self._processing.values()):
                if len(recovered) >= limit:
                    break
                started_at = datetime.fromisoformat(job.state_data["created_at"])
                if started_at > cutoff:
                    continue
                self._apply_state(
                    job, WaitingState(reason="Recovered stalled job", created_at=self._clock())
                )
                recovered.append(job.id)
        return recovered
