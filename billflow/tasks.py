# billflow/tasks.py
"""Hooks the bill/task application calls when its tasks change."""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from .common.exceptions import TaskNotFoundError
from .notifications.delivery import send_bill_created_notification
from .notifications.messaging import LineMessagingClient
from .notifications.store import BillStore, Task, TaskStatus
from .scheduler import NotificationScheduler

logger = logging.getLogger(__name__)


class TaskLifecycle:
    def __init__(
        self,
        store: BillStore,
        scheduler: NotificationScheduler,
        messaging: Optional[LineMessagingClient] = None,
        liff_id: str = "default-liff-id",
    ):
        self.store = store
        self.scheduler = scheduler
        self.messaging = messaging
        self.liff_id = liff_id

    def _get_task(self, task_id: str) -> Task:
        task = self.store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(f"Task {task_id} not found")
        return task

    def task_created(self, task_id: str) -> Dict[str, Any]:
        """Announce a new task and schedule its reminders."""
        task = self._get_task(task_id)
        announcement = None
        if self.messaging is not None:
            announcement = send_bill_created_notification(
                self.store, self.messaging, task, self.liff_id, clock=self.scheduler.clock
            )
        scheduled = self.scheduler.schedule_task_notifications(task.id, task.due_date)
        return {"scheduled": scheduled, "announcement": announcement}

    def due_date_changed(self, task_id: str, due_date: datetime) -> List[str]:
        task = self._get_task(task_id)
        if task.status == TaskStatus.PAID:
            return []
        return self.scheduler.reschedule_task_notifications(task.id, due_date)

    def status_changed(self, task_id: str, status: TaskStatus) -> Task:
        task = self.store.set_task_status(task_id, TaskStatus(status))
        if task is None:
            raise TaskNotFoundError(f"Task {task_id} not found")
        if task.status == TaskStatus.PAID:
            self.scheduler.cancel_task_notifications(task_id)
        return task
