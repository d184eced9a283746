# billflow/notifications/delivery.py
"""Sending reminders for queued jobs, and the one-off "bill added" notice."""
import logging
from datetime import datetime, UTC
from typing import Any, Callable, Dict, Optional

from billflow.common.exceptions import MessagingError
from billflow.common.reminders import ReminderPayload
from billflow.common.results import FatalError, JobResult, Ok, RetryableError
from .messages import (
    build_bill_created_message,
    build_due_reminder_message,
    format_amount,
    reminder_summary,
)
from .messaging import LineMessagingClient
from .store import BillStore, NotificationType, Task, TaskStatus

logger = logging.getLogger(__name__)


def _notification_metadata(task: Task) -> Dict[str, Any]:
    return {"billId": task.bill_id, "taskId": task.id}


class ReminderDelivery:
    """Job handler for the bill notification queue.

    Sends one DUE_SOON or DUE_TODAY reminder. Every send attempt leaves a
    notification row behind, created as PENDING before the API call, so a
    crash mid-send is still visible in the audit trail. Delivery is
    at-least-once: a crash after LINE accepted the push but before the job
    was acknowledged sends the reminder again on retry.
    """

    def __init__(
        self,
        store: BillStore,
        messaging: LineMessagingClient,
        liff_id: str,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.messaging = messaging
        self.liff_id = liff_id
        self.clock = clock or (lambda: datetime.now(UTC))

    def __call__(self, payload: ReminderPayload) -> JobResult:
        task_id, kind = payload.task_id, payload.kind
        logger.info(f"Processing {kind.value} notification for task {task_id}")

        task = self.store.get_task(task_id)
        if task is None:
            return FatalError(f"Task {task_id} not found", exception_type="TaskNotFoundError")

        # Cancellation may not have reached the queue before the job fired.
        if task.status == TaskStatus.PAID:
            logger.info(f"Task {task_id} already paid, skipping notification")
            return Ok({"skipped": True, "reason": "already_paid"})

        if not task.user.line_user_id:
            return FatalError(f"User {task.user_id} has no LINE ID", exception_type="MissingRecipientError")

        notification = self.store.create_notification(
            user_id=task.user_id,
            task_id=task.id,
            type=NotificationType(kind.value),
            message=reminder_summary(kind, task.bill.vendor),
            metadata=_notification_metadata(task),
        )

        message = build_due_reminder_message(
            kind,
            task_id=task.id,
            vendor=task.bill.vendor,
            amount=task.bill.amount,
            bill_type=task.bill.bill_type,
            due_date=task.due_date,
            liff_id=self.liff_id,
        )
        try:
            self.messaging.push(task.user.line_user_id, [message])
        except MessagingError as e:
            self.store.mark_notification_failed(notification.id)
            return RetryableError(str(e), exception_type=type(e).__name__)

        self.store.mark_notification_sent(notification.id, self.clock())
        logger.info(f"{kind.value} notification sent for task {task_id}")
        return Ok({"success": True, "notificationId": notification.id})


def send_bill_created_notification(
    store: BillStore,
    messaging: LineMessagingClient,
    task: Task,
    liff_id: str,
    clock: Optional[Callable[[], datetime]] = None,
) -> Dict[str, Any]:
    """Tell the assignee a bill was added. Never raises; failures are only logged."""
    clock = clock or (lambda: datetime.now(UTC))
    if not task.user.line_user_id:
        logger.info(f"User {task.user_id} has no LINE ID, not announcing task {task.id}")
        return {"success": False, "error": "no_line_id"}

    notification = None
    try:
        notification = store.create_notification(
            user_id=task.user_id,
            task_id=task.id,
            type=NotificationType.BILL_CREATED,
            message=f"Bill added: {task.bill.vendor} - {format_amount(task.bill.amount)}",
            metadata=_notification_metadata(task),
        )
        message = build_bill_created_message(
            task_id=task.id,
            vendor=task.bill.vendor,
            amount=task.bill.amount,
            bill_type=task.bill.bill_type,
            due_date=task.bill.due_date,
            liff_id=liff_id,
        )
        messaging.push(task.user.line_user_id, [message])
        store.mark_notification_sent(notification.id, clock())
    except Exception as e:
        logger.error(f"Failed to send bill-created notification for task {task.id}", exc_info=True)
        if notification is not None:
            store.mark_notification_failed(notification.id)
        return {"success": False, "error": str(e)}

    logger.info(f"Bill-created notification sent for task {task.id}")
    return {"success": True, "notificationId": notification.id}
