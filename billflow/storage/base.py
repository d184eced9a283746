# billflow/storage/base.py
from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Collection

from billflow.common.job import Job
from billflow.common.states import BaseState, ALL_STATES


class JobStorage(ABC):
    """Durable, time-ordered home of every job in one or more queues.

    Implementations must make each transition of a given job id atomic and
    hand any waiting job to exactly one caller of ``dequeue``.
    """

    def connect(self) -> None:
        """Open backend resources. Safe to call more than once."""

    def close(self) -> None:
        """Release backend resources."""

    @abstractmethod
    def add(self, job: Job) -> bool:
        """Store a new delayed or waiting job.

        Returns False without touching anything when a job with the same id
        is still delayed, waiting or active. A finished job with the same id
        is replaced.
        """

    @abstractmethod
    def dequeue(
        self,
        queues: List[str],
        timeout_seconds: float,
        server_id: str = "server",
        worker_id: str = "worker",
    ) -> Optional[Job]:
        """Promote due jobs, then claim the oldest waiting job as active."""

    @abstractmethod
    def acknowledge(self, job_id: str) -> None: ...

    @abstractmethod
    def set_job_state(
        self, job_id: str, state: BaseState, expected_old_state: Optional[str] = None
    ) -> bool: ...

    @abstractmethod
    def promote(self, job_id: str) -> bool:
        """Clear a delayed job's remaining delay.

        Returns True if the job moved to waiting, False if it was already
        waiting. Raises JobNotFoundError or InvalidJobStateError otherwise.
        """

    @abstractmethod
    def promote_due_jobs(self, limit: int = 100) -> List[str]: ...

    @abstractmethod
    def remove(self, job_id: str, states: Optional[Collection[str]] = None) -> bool:
        """Delete a job, optionally only when it is in one of ``states``."""

    @abstractmethod
    def get_job_data(self, job_id: str) -> Optional[Job]: ...

    @abstractmethod
    def get_job_ids_by_state(
        self, state_name: str, start: int = 0, count: int = -1
    ) -> List[str]:
        """Ids in ``state_name``, newest first. ``count=-1`` means all."""

    @abstractmethod
    def get_state_job_count(self, state_name: str) -> int: ...

    @abstractmethod
    def recover_stuck_jobs(self, max_age_seconds: int, limit: int = 100) -> List[str]:
        """Return jobs active for longer than ``max_age_seconds`` to waiting."""

    def get_jobs_by_state(
        self, state_name: str, start: int = 0, count: int = -1
    ) -> List[Job]:
        jobs = []
        for job_id in self.get_job_ids_by_state(state_name, start, count):
            job = self.get_job_data(job_id)
            if job:
                jobs.append(job)
        return jobs

    def get_job_counts(self) -> Dict[str, int]:
        return {state: self.get_state_job_count(state) for state in ALL_STATES}
