# billflow/serialization/base.py
from abc import ABC, abstractmethod
from typing import Dict, Any

from billflow.common.job import Job
from billflow.common.reminders import ReminderPayload


class BaseSerializer(ABC):
    @abstractmethod
    def serialize_payload(self, payload: ReminderPayload) -> str: ...

    @abstractmethod
    def deserialize_payload(self, data: str) -> ReminderPayload: ...

    @abstractmethod
    def serialize_state_data(self, data: Dict[str, Any]) -> str: ...

    @abstractmethod
    def deserialize_state_data(self, data_str: str) -> Dict[str, Any]: ...

    @abstractmethod
    def job_to_dict(self, job: Job) -> Dict[str, Any]: ...
