"""Operator actions on queued jobs."""
from typing import Any, Dict, Optional

from litestar import Controller, Response, post

from billflow.client import QueueClient
from billflow.common.exceptions import InvalidJobStateError, JobNotFoundError
from billflow.common.reminders import ReminderKind
from billflow.notifications.store import BillStore


def _error(message: str, status_code: int) -> Response:
    return Response(content={"error": message}, status_code=status_code)


def _job_id(data: Optional[Dict[str, Any]]) -> Optional[str]:
    job_id = (data or {}).get("jobId")
    if job_id is None or job_id == "":
        return None
    return str(job_id)


class JobsController(Controller):
    path = "/"

    @post("/trigger", status_code=200)
    async def trigger(
        self, client: QueueClient, bills: BillStore, data: Dict[str, Any]
    ) -> Response:
        task_id, kind = data.get("taskId"), data.get("type")
        if not task_id or not kind:
            return _error("taskId and type are required", 400)
        try:
            kind = ReminderKind(kind)
        except (ValueError, TypeError):
            return _error("type must be DUE_SOON or DUE_TODAY", 400)

        task_id = str(task_id)
        if bills.get_task(task_id) is None:
            return _error("Task not found", 404)

        job_id = client.trigger_now(task_id, kind)
        return Response(
            content={
                "success": True,
                "jobId": job_id,
                "message": f"Job queued successfully for task {task_id}",
            }
        )

    @post("/trigger-delayed", status_code=200)
    async def trigger_delayed(
        self, client: QueueClient, data: Optional[Dict[str, Any]] = None
    ) -> Response:
        job_id = _job_id(data)
        if not job_id:
            return _error("jobId is required", 400)
        try:
            client.promote(job_id)
        except JobNotFoundError:
            return _error("Job not found", 404)
        except InvalidJobStateError as e:
            return _error(str(e), 409)
        return Response(
            content={
                "success": True,
                "jobId": job_id,
                "message": f"Delayed job {job_id} triggered successfully",
            }
        )

    @post("/trigger-all-delayed", status_code=200)
    async def trigger_all_delayed(self, client: QueueClient) -> Dict[str, Any]:
        count = client.promote_all_delayed()
        return {
            "success": True,
            "count": count,
            "message": f"Successfully triggered {count} delayed jobs",
        }

    @post("/delete-job", status_code=200)
    async def delete_job(
        self, client: QueueClient, data: Optional[Dict[str, Any]] = None
    ) -> Response:
        job_id = _job_id(data)
        if not job_id:
            return _error("jobId is required", 400)
        if not client.delete_job(job_id):
            return _error("Job not found", 404)
        return Response(
            content={
                "success": True,
                "jobId": job_id,
                "message": f"Job {job_id} deleted successfully",
            }
        )

    @post("/delete-failed", status_code=200)
    async def delete_failed(self, client: QueueClient) -> Dict[str, Any]:
        count = client.purge_failed()
        return {
            "success": True,
            "count": count,
            "message": f"Successfully deleted {count} failed jobs",
        }

    @post("/delete-completed", status_code=200)
    async def delete_completed(self, client: QueueClient) -> Dict[str, Any]:
        count = client.purge_completed()
        return {
            "success": True,
            "count": count,
            "message": f"Successfully deleted {count} completed jobs",
        }
