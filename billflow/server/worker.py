# billflow/server/worker.py
import logging
import time
import uuid
from datetime import datetime
from typing import Callable, List, Optional

from billflow.common.job import DEFAULT_QUEUE
from billflow.filters.base import JobFilter
from billflow.storage.base import JobStorage
from billflow.server.processor import JobHandler, JobProcessor

logger = logging.getLogger(__name__)


class Worker:
    def __init__(
        self,
        storage: JobStorage,
        handler: JobHandler,
        queues: Optional[List[str]] = None,
        filters: Optional[List[JobFilter]] = None,
        poll_timeout: float = 1.0,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.storage = storage
        self.handler = handler
        self.queues = queues or [DEFAULT_QUEUE]
        self.filters = filters
        self.poll_timeout = poll_timeout
        self.clock = clock
        self.server_id = f"server:{uuid.uuid4()}"
        self.worker_id = f"worker:{uuid.uuid4()}"
        self._shutdown_requested = False

    def stop(self) -> None:
        self._shutdown_requested = True

    def run_once(self, timeout_seconds: Optional[float] = None) -> bool:
        """Claim and process at most one job. Returns True if one was processed."""
        timeout = self.poll_timeout if timeout_seconds is None else timeout_seconds
        job = self.storage.dequeue(
            self.queues, timeout_seconds=timeout, server_id=self.server_id, worker_id=self.worker_id
        )
        if not job:
            return False

        logger.info(f"[{self.worker_id}] Picked up job {job.id} (attempt {job.attempts})")
        processor = JobProcessor(job, self.storage, self.handler, self.filters, self.clock)
        final_state = processor.process()
        logger.info(f"[{self.worker_id}] Finished job {job.id}: {final_state.name}")
        return True

    def run(self):
        """Starts the worker's processing loop."""
        logger.info(f"[{self.worker_id}] Starting worker for queues: {', '.join(self.queues)}")
        while not self._shutdown_requested:
            try:
                self.run_once()
            except KeyboardInterrupt:
                logger.info(f"[{self.worker_id}] Shutdown requested...")
                self._shutdown_requested = True
            except Exception:
                logger.exception(f"[{self.worker_id}] Unhandled exception in worker loop")
                time.sleep(5)  # Cooldown period after a major failure

        logger.info(f"[{self.worker_id}] Worker has stopped.")
