from .client import QueueClient
from .common.job import Job, DEFAULT_QUEUE
from .common.reminders import ReminderKind, ReminderPayload
from .config import Settings, create_storage
from .scheduler import NotificationScheduler
from .server.worker import Worker

__all__ = [
    "DEFAULT_QUEUE",
    "Job",
    "NotificationScheduler",
    "QueueClient",
    "ReminderKind",
    "ReminderPayload",
    "Settings",
    "Worker",
    "create_storage",
]
