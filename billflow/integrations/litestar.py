"""Litestar integration helpers for billflow."""

from __future__ import annotations

try:
    from litestar import Litestar
    from litestar.datastructures import State
    from litestar.di import Provide
except ImportError as exc:  # pragma: no cover - optional dependency
    raise ImportError(
        "Litestar integration requires 'litestar'. Install with `pip install litestar`."
    ) from exc

from billflow.client import QueueClient
from billflow.scheduler import NotificationScheduler


def get_notification_scheduler(state: State) -> NotificationScheduler:
    return state.billflow_scheduler


def notification_scheduler_dependency() -> Provide:
    return Provide(get_notification_scheduler, sync_to_thread=False)


def configure_billflow(app: Litestar, client: QueueClient) -> NotificationScheduler:
    """Expose a scheduler on ``app.state`` for handlers that create or pay tasks."""
    scheduler = NotificationScheduler(client)
    app.state.billflow_client = client
    app.state.billflow_scheduler = scheduler
    return scheduler
