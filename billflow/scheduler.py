# billflow/scheduler.py
"""Turns a task's due date into reminder jobs, and takes them back off the queue."""
import logging
from datetime import datetime, UTC
from typing import Callable, List, Optional

from .client import QueueClient
from .common.reminders import ReminderKind, ReminderPayload, reminder_job_id

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class NotificationScheduler:
    def __init__(self, client: QueueClient, clock: Optional[Callable[[], datetime]] = None):
        self.client = client
        self.clock = clock or client.clock

    def schedule_task_notifications(self, task_id: str, due_date: datetime) -> List[str]:
        """Queue the DUE_TODAY and DUE_SOON reminders that still lie in the future.

        Calling this again for the same task does not add duplicates.
        """
        now = self.clock()
        due_date = _as_utc(due_date)
        scheduled: List[str] = []
        for kind in (ReminderKind.DUE_TODAY, ReminderKind.DUE_SOON):
            fire_at = kind.fire_time(due_date)
            if fire_at <= now:
                logger.debug(f"Skipping {kind.value} for task {task_id}: {fire_at.isoformat()} has passed")
                continue

            job_id = self.client.schedule(
                ReminderPayload(task_id=task_id, kind=kind),
                enqueue_at=fire_at,
                job_id=reminder_job_id(kind, task_id),
            )
            if job_id is None:
                logger.info(f"{kind.value} notification for task {task_id} is already scheduled")
                continue

            delay_ms = int((fire_at - now).total_seconds() * 1000)
            logger.info(f"Scheduled {kind.value} notification for task {task_id} in {delay_ms}ms")
            scheduled.append(job_id)
        return scheduled

    def cancel_task_notifications(self, task_id: str) -> List[str]:
        removed = [
            job_id
            for job_id in (
                reminder_job_id(ReminderKind.DUE_TODAY, task_id),
                reminder_job_id(ReminderKind.DUE_SOON, task_id),
            )
            if self.client.cancel(job_id)
        ]
        logger.info(f"Cancelled notifications for task {task_id}: {removed or 'none pending'}")
        return removed

    def reschedule_task_notifications(self, task_id: str, due_date: datetime) -> List[str]:
        self.cancel_task_notifications(task_id)
        return self.schedule_task_notifications(task_id, due_date)
