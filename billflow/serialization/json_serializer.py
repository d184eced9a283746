# billflow/serialization/json_serializer.py
import json
from typing import Dict, Any

from billflow.serialization.base import BaseSerializer
from billflow.common.job import Job
from billflow.common.reminders import ReminderPayload


class JsonSerializer(BaseSerializer):
    def serialize_payload(self, payload: ReminderPayload) -> str:
        return json.dumps(payload.to_dict())

    def deserialize_payload(self, data: str) -> ReminderPayload:
        return ReminderPayload.from_dict(json.loads(data))

    def serialize_state_data(self, data: Dict[str, Any]) -> str:
        # Handler results may carry datetimes; stringify anything json can't encode.
        return json.dumps(data, default=str)

    def deserialize_state_data(self, data_str: str) -> Dict[str, Any]:
        if not data_str:
            return {}
        try:
            return json.loads(data_str)
        except (json.JSONDecodeError, TypeError):
            return {}

    def job_to_dict(self, job: Job) -> Dict[str, Any]:
        """Shape used by the admin API when listing jobs."""
        return {
            "id": job.id,
            "queue": job.queue,
            "data": job.payload.to_dict(),
            "state": job.state_name,
            "attemptsMade": job.attempts,
            "maxAttempts": job.max_attempts,
            "timestamp": job.created_at.isoformat(),
            "delay": job.delay_ms,
            "enqueueAt": job.enqueue_at.isoformat() if job.enqueue_at else None,
            "failedReason": job.last_error,
            "stateData": job.state_data,
        }
