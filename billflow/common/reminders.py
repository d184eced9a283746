# billflow/common/reminders.py
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict


class ReminderKind(str, Enum):
    DUE_SOON = "DUE_SOON"
    DUE_TODAY = "DUE_TODAY"

    @property
    def slug(self) -> str:
        return self.value.lower().replace("_", "-")

    @property
    def lead_time(self) -> timedelta:
        """How long before the due date this reminder fires."""
        if self is ReminderKind.DUE_SOON:
            return timedelta(hours=24)
        return timedelta(0)

    def fire_time(self, due_date: datetime) -> datetime:
        return due_date - self.lead_time


@dataclass(frozen=True)
class ReminderPayload:
    """What a reminder job carries: the task and which reminder to send."""

    task_id: str
    kind: ReminderKind

    def to_dict(self) -> Dict[str, Any]:
        return {"taskId": self.task_id, "type": self.kind.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReminderPayload":
        return cls(task_id=str(data["taskId"]), kind=ReminderKind(data["type"]))


def reminder_job_id(kind: ReminderKind, task_id: str) -> str:
    """Deterministic id used to deduplicate scheduled reminders."""
    return f"{kind.slug}-{task_id}"


def manual_job_id(kind: ReminderKind, task_id: str, timestamp_ms: int) -> str:
    # Never collides with reminder_job_id, so manual sends bypass dedup.
    return f"manual-{kind.value.lower()}-{task_id}-{timestamp_ms}"
