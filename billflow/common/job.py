# billflow/common/job.py
import uuid
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Optional, Dict, Any

from .reminders import ReminderPayload

DEFAULT_QUEUE = "billNotifications"
DEFAULT_MAX_ATTEMPTS = 3


@dataclass
class Job:
    """
    A reminder waiting to be delivered.

    This is the central data model that gets stored and passed around. The id
    doubles as the dedup key for scheduled reminders.
    """

    payload: ReminderPayload

    # State information
    state_name: str

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    state_data: Dict[str, Any] = field(default_factory=dict)

    # Job metadata
    queue: str = DEFAULT_QUEUE
    attempts: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    enqueue_at: Optional[datetime] = None
    last_error: Optional[str] = None
    remove_on_complete: bool = True

    @property
    def delay_ms(self) -> int:
        """Delay of the current wait, measured from when the job entered it."""
        if self.enqueue_at is None:
            return 0
        delayed_since = self.created_at
        if self.state_name == "delayed" and self.state_data.get("created_at"):
            # A retry re-delays from the failed attempt, not from job creation.
            delayed_since = datetime.fromisoformat(self.state_data["created_at"])
        delta = self.enqueue_at - delayed_since
        return max(0, int(delta.total_seconds() * 1000))
