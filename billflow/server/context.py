from datetime import datetime

from billflow.common.job import Job
from billflow.common.states import BaseState


class ElectStateContext:
    def __init__(
        self, job: Job, candidate_state: BaseState, retryable: bool, now: datetime
    ):
        self.job = job
        self.candidate_state = candidate_state
        self.retryable = retryable
        self.now = now
