from datetime import timedelta

from billflow.common.reminders import ReminderKind, ReminderPayload
from billflow.common.results import FatalError, Ok, RetryableError
from billflow.common.states import CompletedState, DelayedState, FailedState
from billflow.client import QueueClient
from billflow.server.worker import Worker


class RecordingHandler:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    def __call__(self, payload: ReminderPayload):
        self.calls.append(payload)
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


def make_worker(storage, clock, handler):
    return Worker(storage, handler, poll_timeout=0, clock=clock)


def test_completed_job_is_removed(client, memory_storage, clock):
    handler = RecordingHandler(Ok({"success": True}))
    job_id = client.enqueue(ReminderPayload("t1", ReminderKind.DUE_TODAY), "due-today-t1")

    assert make_worker(memory_storage, clock, handler).run_once()
    assert handler.calls == [ReminderPayload("t1", ReminderKind.DUE_TODAY)]
    assert memory_storage.get_job_data(job_id) is None
    assert memory_storage.get_state_job_count(CompletedState.NAME) == 0
    assert memory_storage._processing == {}


def test_completed_job_is_kept_when_asked(memory_storage, clock):
    client = QueueClient(memory_storage, remove_on_complete=False, clock=clock)
    job_id = client.enqueue(ReminderPayload("t1", ReminderKind.DUE_TODAY))

    make_worker(memory_storage, clock, RecordingHandler(Ok({"success": True}))).run_once()

    job = memory_storage.get_job_data(job_id)
    assert job.state_name == CompletedState.NAME
    assert job.state_data["result"] == {"success": True}


def test_run_once_without_work(memory_storage, clock):
    assert not make_worker(memory_storage, clock, RecordingHandler(Ok({}))).run_once()


def test_retries_with_exponential_backoff_then_fails(client, memory_storage, clock):
    handler = RecordingHandler(RetryableError("LINE API returned 500"))
    worker = make_worker(memory_storage, clock, handler)
    job_id = client.enqueue(ReminderPayload("t1", ReminderKind.DUE_SOON))

    assert worker.run_once()
    job = memory_storage.get_job_data(job_id)
    assert job.state_name == DelayedState.NAME
    assert job.enqueue_at == clock() + timedelta(seconds=2)
    assert job.attempts == 1

    # Not due yet
    clock.advance(seconds=1)
    assert not worker.run_once()

    clock.advance(seconds=1)
    assert worker.run_once()
    job = memory_storage.get_job_data(job_id)
    assert job.state_name == DelayedState.NAME
    assert job.enqueue_at == clock() + timedelta(seconds=4)

    clock.advance(seconds=4)
    assert worker.run_once()
    job = memory_storage.get_job_data(job_id)
    assert job.state_name == FailedState.NAME
    assert job.attempts == 3
    assert job.last_error == "LINE API returned 500"
    assert len(handler.calls) == 3

    clock.advance(hours=1)
    assert not worker.run_once()


def test_failed_jobs_are_retained(client, memory_storage, clock):
    worker = make_worker(memory_storage, clock, RecordingHandler(FatalError("no recipient")))
    job_id = client.enqueue(ReminderPayload("t1", ReminderKind.DUE_TODAY))
    worker.run_once()

    assert memory_storage.get_job_data(job_id).state_name == FailedState.NAME
    assert memory_storage.get_state_job_count(FailedState.NAME) == 1


def test_fatal_error_is_not_retried(client, memory_storage, clock):
    handler = RecordingHandler(FatalError("Task t1 not found", exception_type="TaskNotFoundError"))
    job_id = client.enqueue(ReminderPayload("t1", ReminderKind.DUE_TODAY))

    make_worker(memory_storage, clock, handler).run_once()

    job = memory_storage.get_job_data(job_id)
    assert job.state_name == FailedState.NAME
    assert job.attempts == 1
    assert job.state_data["exception_type"] == "TaskNotFoundError"
    assert job.last_error == "Task t1 not found"


def test_raised_exception_is_retried(client, memory_storage, clock):
    handler = RecordingHandler(RuntimeError("connection reset"), Ok({"success": True}))
    worker = make_worker(memory_storage, clock, handler)
    job_id = client.enqueue(ReminderPayload("t1", ReminderKind.DUE_TODAY))

    worker.run_once()
    job = memory_storage.get_job_data(job_id)
    assert job.state_name == DelayedState.NAME
    assert "connection reset" in job.state_data["reason"]

    clock.advance(seconds=2)
    worker.run_once()
    assert memory_storage.get_job_data(job_id) is None
    assert len(handler.calls) == 2


def test_max_attempts_from_client(memory_storage, clock):
    client = QueueClient(memory_storage, max_attempts=1, clock=clock)
    job_id = client.enqueue(ReminderPayload("t1", ReminderKind.DUE_TODAY))

    make_worker(memory_storage, clock, RecordingHandler(RetryableError("boom"))).run_once()
    assert memory_storage.get_job_data(job_id).state_name == FailedState.NAME


def test_job_deleted_while_running_stays_deleted(client, memory_storage, clock):
    job_id = client.enqueue(ReminderPayload("t1", ReminderKind.DUE_TODAY))

    def handler(payload):
        client.delete_job(job_id)
        return RetryableError("late failure")

    make_worker(memory_storage, clock, handler).run_once()
    assert memory_storage.get_job_data(job_id) is None
    assert memory_storage.get_job_counts() == {
        "waiting": 0,
        "active": 0,
        "completed": 0,
        "failed": 0,
        "delayed": 0,
    }


def test_retry_delay_is_measured_from_the_failed_attempt(client, memory_storage, clock):
    job_id = client.schedule(
        ReminderPayload("t1", ReminderKind.DUE_SOON), clock() + timedelta(hours=24), "due-soon-t1"
    )
    assert memory_storage.get_job_data(job_id).delay_ms == 24 * 3600 * 1000

    clock.advance(hours=24)
    make_worker(memory_storage, clock, RecordingHandler(RetryableError("boom"))).run_once()

    job = memory_storage.get_job_data(job_id)
    assert job.state_name == DelayedState.NAME
    assert job.delay_ms == 2000
    assert client.serializer.job_to_dict(job)["delay"] == 2000
