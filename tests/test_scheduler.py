from datetime import timedelta

from billflow.common.reminders import ReminderKind
from billflow.common.states import ActiveState, DelayedState, WaitingState


def test_schedules_both_reminders(scheduler, memory_storage, clock):
    due = clock() + timedelta(hours=48)

    scheduled = scheduler.schedule_task_notifications("t1", due)

    assert scheduled == ["due-today-t1", "due-soon-t1"]
    due_today = memory_storage.get_job_data("due-today-t1")
    due_soon = memory_storage.get_job_data("due-soon-t1")
    assert due_today.state_name == DelayedState.NAME
    assert due_today.delay_ms == 48 * 3600 * 1000
    assert due_soon.delay_ms == 24 * 3600 * 1000
    assert due_soon.payload.kind is ReminderKind.DUE_SOON
    assert due_soon.payload.task_id == "t1"


def test_scheduling_twice_does_not_duplicate(scheduler, memory_storage, clock):
    due = clock() + timedelta(hours=48)
    scheduler.schedule_task_notifications("t1", due)

    assert scheduler.schedule_task_notifications("t1", due + timedelta(hours=5)) == []
    assert memory_storage.get_state_job_count(DelayedState.NAME) == 2
    # The original fire time is kept
    assert memory_storage.get_job_data("due-today-t1").enqueue_at == due


def test_past_reminders_are_skipped(scheduler, memory_storage, clock):
    scheduled = scheduler.schedule_task_notifications("t1", clock() + timedelta(hours=12))

    assert scheduled == ["due-today-t1"]
    assert memory_storage.get_job_data("due-soon-t1") is None


def test_overdue_task_gets_nothing(scheduler, memory_storage, clock):
    assert scheduler.schedule_task_notifications("t1", clock() - timedelta(hours=1)) == []
    assert memory_storage.get_job_counts()[DelayedState.NAME] == 0


def test_due_date_equal_to_now_is_skipped(scheduler, clock):
    assert scheduler.schedule_task_notifications("t1", clock()) == []


def test_naive_due_date_is_read_as_utc(scheduler, memory_storage, clock):
    naive_due = (clock() + timedelta(hours=48)).replace(tzinfo=None)
    scheduler.schedule_task_notifications("t1", naive_due)

    assert memory_storage.get_job_data("due-today-t1").enqueue_at == clock() + timedelta(hours=48)


def test_cancel_removes_pending_reminders(scheduler, memory_storage, clock):
    scheduler.schedule_task_notifications("t1", clock() + timedelta(hours=48))

    assert scheduler.cancel_task_notifications("t1") == ["due-today-t1", "due-soon-t1"]
    assert memory_storage.get_job_data("due-today-t1") is None
    assert memory_storage.get_job_data("due-soon-t1") is None
    # Cancelling again is harmless
    assert scheduler.cancel_task_notifications("t1") == []


def test_cancel_leaves_other_tasks_alone(scheduler, memory_storage, clock):
    scheduler.schedule_task_notifications("t1", clock() + timedelta(hours=48))
    scheduler.schedule_task_notifications("t2", clock() + timedelta(hours=48))

    scheduler.cancel_task_notifications("t1")
    assert memory_storage.get_job_data("due-today-t2") is not None
    assert memory_storage.get_job_data("due-soon-t2") is not None


def test_cancel_does_not_touch_active_job(scheduler, memory_storage, clock):
    scheduler.schedule_task_notifications("t1", clock() + timedelta(hours=30))
    clock.advance(hours=6)
    job = memory_storage.dequeue(["billNotifications"], timeout_seconds=0)
    assert job.id == "due-soon-t1"

    assert scheduler.cancel_task_notifications("t1") == ["due-today-t1"]
    assert memory_storage.get_job_data("due-soon-t1").state_name == ActiveState.NAME


def test_cancel_does_not_touch_manual_jobs(scheduler, client, memory_storage, clock):
    scheduler.schedule_task_notifications("t1", clock() + timedelta(hours=48))
    manual_id = client.trigger_now("t1", ReminderKind.DUE_TODAY)

    scheduler.cancel_task_notifications("t1")
    assert memory_storage.get_job_data(manual_id).state_name == WaitingState.NAME


def test_reschedule_moves_fire_times(scheduler, memory_storage, clock):
    scheduler.schedule_task_notifications("t1", clock() + timedelta(hours=48))
    new_due = clock() + timedelta(hours=72)

    assert scheduler.reschedule_task_notifications("t1", new_due) == ["due-today-t1", "due-soon-t1"]
    assert memory_storage.get_job_data("due-today-t1").enqueue_at == new_due
    assert memory_storage.get_job_data("due-soon-t1").enqueue_at == new_due - timedelta(hours=24)


def test_trigger_now_is_not_deduplicated(client, memory_storage, clock):
    first = client.trigger_now("t1", ReminderKind.DUE_SOON)
    second = client.trigger_now("t1", ReminderKind.DUE_SOON)

    assert first == f"manual-due_soon-t1-{int(clock().timestamp() * 1000)}"
    assert second != first
    assert memory_storage.get_state_job_count(WaitingState.NAME) == 2


def test_manual_trigger_leaves_scheduled_reminder_alone(scheduler, client, memory_storage, clock):
    due = clock() + timedelta(hours=48)
    scheduler.schedule_task_notifications("t1", due)

    manual_id = client.trigger_now("t1", ReminderKind.DUE_TODAY)

    assert manual_id != "due-today-t1"
    scheduled = memory_storage.get_job_data("due-today-t1")
    assert scheduled.id == "due-today-t1"
    assert scheduled.state_name == DelayedState.NAME
    assert scheduled.enqueue_at == due
    assert memory_storage.get_state_job_count(DelayedState.NAME) == 2
    assert memory_storage.get_job_data(manual_id).state_name == WaitingState.NAME

    # Running the manual job does not consume the scheduled one
    job = memory_storage.dequeue(["billNotifications"], timeout_seconds=0)
    assert job.id == manual_id
    assert memory_storage.get_job_data("due-today-t1").state_name == DelayedState.NAME
