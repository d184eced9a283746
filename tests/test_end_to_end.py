from datetime import timedelta

import pytest

from billflow.common.exceptions import TaskNotFoundError
from billflow.common.states import ActiveState, CompletedState, DelayedState
from billflow.notifications.store import NotificationStatus, NotificationType, TaskStatus
from billflow.server.processor import JobProcessor
from billflow.tasks import TaskLifecycle


@pytest.fixture
def lifecycle(bill_store, scheduler, messaging):
    return TaskLifecycle(bill_store, scheduler, messaging, liff_id="liff-123")


def drain(worker):
    processed = 0
    while worker.run_once(timeout_seconds=0):
        processed += 1
    return processed


def test_both_reminders_fire_on_time(scheduler, worker, memory_storage, bill_store, line_api, task, clock):
    scheduler.schedule_task_notifications(task.id, task.due_date)

    clock.advance(hours=23, minutes=59)
    assert drain(worker) == 0

    clock.advance(minutes=1)
    assert drain(worker) == 1
    [notification] = bill_store.get_notifications(task.id)
    assert notification.type == NotificationType.DUE_SOON
    assert notification.status == NotificationStatus.SENT
    assert memory_storage.get_job_data(f"due-soon-{task.id}") is None

    clock.advance(hours=24)
    assert drain(worker) == 1
    notifications = bill_store.get_notifications(task.id)
    assert [n.type for n in notifications] == [NotificationType.DUE_SOON, NotificationType.DUE_TODAY]
    assert all(n.status == NotificationStatus.SENT for n in notifications)
    assert len(line_api.requests) == 2
    assert memory_storage.get_job_counts()[CompletedState.NAME] == 0


def test_paying_after_first_reminder_cancels_the_second(
    lifecycle, worker, memory_storage, bill_store, line_api, task, clock
):
    lifecycle.scheduler.schedule_task_notifications(task.id, task.due_date)
    clock.advance(hours=24)
    drain(worker)

    clock.advance(hours=12)
    lifecycle.status_changed(task.id, TaskStatus.PAID)

    assert memory_storage.get_job_data(f"due-today-{task.id}") is None
    clock.advance(hours=12)
    assert drain(worker) == 0
    assert len(line_api.requests) == 1


def test_paying_early_cancels_both(lifecycle, worker, memory_storage, line_api, task, clock):
    lifecycle.scheduler.schedule_task_notifications(task.id, task.due_date)

    clock.advance(hours=12)
    lifecycle.status_changed(task.id, TaskStatus.PAID)

    assert memory_storage.get_job_counts()[DelayedState.NAME] == 0
    clock.advance(hours=48)
    assert drain(worker) == 0
    assert line_api.requests == []


def test_paid_while_job_is_in_flight(scheduler, delivery, memory_storage, bill_store, line_api, task, clock):
    scheduler.schedule_task_notifications(task.id, task.due_date)
    clock.advance(hours=24)
    job = memory_storage.dequeue(["billNotifications"], timeout_seconds=0)
    assert job.state_name == ActiveState.NAME

    # The cancel can't reach a job that is already running
    bill_store.set_task_status(task.id, TaskStatus.PAID)
    assert scheduler.cancel_task_notifications(task.id) == [f"due-today-{task.id}"]

    final_state = JobProcessor(job, memory_storage, delivery, clock=clock).process()

    assert final_state.result == {"skipped": True, "reason": "already_paid"}
    assert line_api.requests == []
    assert bill_store.get_notifications(task.id) == []
    assert memory_storage.get_job_data(job.id) is None


def test_task_created_announces_and_schedules(lifecycle, memory_storage, bill_store, line_api, task, clock):
    result = lifecycle.task_created(task.id)

    assert result["scheduled"] == [f"due-today-{task.id}", f"due-soon-{task.id}"]
    assert result["announcement"]["success"] is True
    [notification] = bill_store.get_notifications(task.id)
    assert notification.type == NotificationType.BILL_CREATED
    assert notification.sent_at == clock()
    assert memory_storage.get_state_job_count(DelayedState.NAME) == 2


def test_task_created_still_schedules_when_announcement_fails(lifecycle, memory_storage, line_api, task):
    line_api.status_code = 500

    result = lifecycle.task_created(task.id)

    assert result["announcement"]["success"] is False
    assert len(result["scheduled"]) == 2


def test_due_date_change_moves_reminders(lifecycle, memory_storage, task, clock):
    lifecycle.task_created(task.id)
    new_due = task.due_date + timedelta(days=3)

    lifecycle.due_date_changed(task.id, new_due)

    assert memory_storage.get_job_data(f"due-today-{task.id}").enqueue_at == new_due


def test_due_date_change_ignored_for_paid_task(lifecycle, memory_storage, task):
    lifecycle.status_changed(task.id, TaskStatus.PAID)
    assert lifecycle.due_date_changed(task.id, task.due_date + timedelta(days=3)) == []
    assert memory_storage.get_state_job_count(DelayedState.NAME) == 0


def test_reopening_a_task_keeps_it_unpaid(lifecycle, task):
    lifecycle.status_changed(task.id, TaskStatus.PAID)
    reopened = lifecycle.status_changed(task.id, TaskStatus.UNPAID)
    assert reopened.status == TaskStatus.UNPAID
    assert reopened.paid_at is None


def test_unknown_task(lifecycle):
    with pytest.raises(TaskNotFoundError):
        lifecycle.task_created("nope")
    with pytest.raises(TaskNotFoundError):
        lifecycle.status_changed("nope", TaskStatus.PAID)
