"""Read-only dashboard routes."""
from typing import Any, Dict

from litestar import Controller, Response, get
from litestar.response import Template

from billflow.client import QueueClient
from billflow.notifications.store import BillStore


class CoreController(Controller):
    path = "/"

    @get()
    async def home(self, client: QueueClient) -> Template:
        details = client.get_queue_details(page_size=20)
        return Template(template_name="index.html.j2", context={"queue": details})

    @get("/queues")
    async def queues(self, client: QueueClient) -> Dict[str, Any]:
        return {"queues": [{"name": client.queue, "counts": client.get_state_counts()}]}

    @get("/queues/{name:str}")
    async def queue_details(self, client: QueueClient, name: str) -> Response:
        if name != client.queue:
            return Response(content={"error": "Queue not found"}, status_code=404)
        return Response(content=client.get_queue_details())

    @get("/tasks")
    async def unpaid_tasks(self, bills: BillStore) -> Dict[str, Any]:
        tasks = bills.list_unpaid_tasks(limit=50)
        return {
            "tasks": [
                {
                    "id": task.id,
                    "vendor": task.bill.vendor,
                    "dueDate": task.due_date.isoformat(),
                    "amount": float(task.bill.amount),
                }
                for task in tasks
            ]
        }
