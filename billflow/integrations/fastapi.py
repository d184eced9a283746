"""FastAPI integration helpers for billflow."""

from __future__ import annotations

import threading
from typing import Optional

try:
    from fastapi import FastAPI
except ImportError as exc:  # pragma: no cover - optional dependency
    raise ImportError(
        "FastAPI integration requires 'fastapi'. Install with `pip install billflow[fastapi]`."
    ) from exc

from billflow.client import QueueClient
from billflow.notifications.store import BillStore
from billflow.scheduler import NotificationScheduler
from billflow.server.processor import JobHandler
from billflow.server.worker import Worker


class BillFlowFastAPIPlugin:
    def __init__(self, app: FastAPI, client: QueueClient, bills: BillStore):
        self.app = app
        self.client = client
        self.bills = bills
        self.scheduler = NotificationScheduler(client)
        self.worker: Optional[Worker] = None
        self._worker_thread: Optional[threading.Thread] = None

        app.state.billflow_client = self.client
        app.state.billflow_scheduler = self.scheduler
        app.add_event_handler("startup", self.startup)
        app.add_event_handler("shutdown", self.shutdown)

    def get_client(self) -> QueueClient:
        return self.client

    def get_scheduler(self) -> NotificationScheduler:
        return self.scheduler

    def include_dashboard(self, path: str = "/admin/queues", debug: bool = False) -> None:
        from billflow.dashboard.app import create_dashboard_app

        dashboard_app = create_dashboard_app(self.client, self.bills, debug=debug)
        self.app.mount(path, dashboard_app)

    def run_worker_in_background(self, handler: JobHandler, **worker_options) -> "BillFlowFastAPIPlugin":
        self.worker = Worker(
            self.client.storage, handler, queues=[self.client.queue], **worker_options
        )
        self._worker_thread = threading.Thread(target=self.worker.run, daemon=True)
        return self

    async def startup(self) -> None:
        self.client.storage.connect()
        if self._worker_thread:
            self._worker_thread.start()

    async def shutdown(self) -> None:
        if self.worker:
            self.worker.stop()
        if self._worker_thread:
            self._worker_thread.join(timeout=10)
        self.client.storage.close()


def add_billflow_to_fastapi(
    app: FastAPI, client: QueueClient, bills: BillStore
) -> BillFlowFastAPIPlugin:
    return BillFlowFastAPIPlugin(app, client, bills)
