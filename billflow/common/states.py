# billflow/common/states.py

from datetime import datetime, UTC
from typing import Dict, Any, Optional


class BaseState:
    NAME = "base"
    IS_FINAL = False

    def __init__(self, created_at: Optional[datetime] = None):
        self.created_at = created_at or datetime.now(UTC)

    @property
    def name(self) -> str:
        return self.NAME

    def serialize_data(self) -> Dict[str, Any]:
        return {"created_at": self.created_at.isoformat()}


class DelayedState(BaseState):
    NAME = "delayed"

    def __init__(self, enqueue_at: datetime, reason: Optional[str] = None, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.enqueue_at = enqueue_at
        self.reason = reason

    def serialize_data(self) -> Dict[str, Any]:
        data = super().serialize_data()
        data["enqueue_at"] = self.enqueue_at.isoformat()
        if self.reason:
            data["reason"] = self.reason
        return data


class WaitingState(BaseState):
    NAME = "waiting"

    def __init__(self, reason: Optional[str] = None, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.reason = reason

    def serialize_data(self) -> Dict[str, Any]:
        data = super().serialize_data()
        if self.reason:
            data["reason"] = self.reason
        return data


class ActiveState(BaseState):
    NAME = "active"

    def __init__(self, server_id: str, worker_id: str, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.server_id = server_id
        self.worker_id = worker_id

    def serialize_data(self) -> Dict[str, Any]:
        data = super().serialize_data()
        data.update({"server_id": self.server_id, "worker_id": self.worker_id})
        return data


class CompletedState(BaseState):
    NAME = "completed"
    IS_FINAL = True

    def __init__(self, result: Any, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.result = result

    def serialize_data(self) -> Dict[str, Any]:
        data = super().serialize_data()
        data["result"] = self.result
        return data


class FailedState(BaseState):
    NAME = "failed"
    IS_FINAL = True

    def __init__(self, exception_type: str, exception_message: str, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.exception_type = exception_type
        self.exception_message = exception_message

    def serialize_data(self) -> Dict[str, Any]:
        data = super().serialize_data()
        data["exception_type"] = self.exception_type
        data["exception_message"] = self.exception_message
        return data


ALL_STATES = [
    WaitingState.NAME,
    ActiveState.NAME,
    CompletedState.NAME,
    FailedState.NAME,
    DelayedState.NAME,
]

PENDING_STATES = frozenset({DelayedState.NAME, WaitingState.NAME, ActiveState.NAME})
FINAL_STATES = frozenset({CompletedState.NAME, FailedState.NAME})
