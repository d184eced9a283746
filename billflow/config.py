# billflow/config.py
import os
from dataclasses import dataclass
from typing import Optional

from billflow.common.job import DEFAULT_QUEUE
from billflow.notifications.messaging import LINE_MESSAGING_API_URL
from billflow.storage.base import JobStorage


@dataclass
class Settings:
    storage: str = "memory"
    redis_url: Optional[str] = None
    database_url: str = "sqlite:///billflow.db"
    queue: str = DEFAULT_QUEUE
    line_channel_access_token: str = ""
    line_messaging_api_url: str = LINE_MESSAGING_API_URL
    liff_id: str = "default-liff-id"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            storage=os.getenv("BILLFLOW_STORAGE", "memory").strip().lower(),
            redis_url=os.getenv("BILLFLOW_REDIS_URL"),
            database_url=os.getenv("BILLFLOW_DATABASE_URL", "sqlite:///billflow.db"),
            queue=os.getenv("BILLFLOW_QUEUE", DEFAULT_QUEUE),
            line_channel_access_token=os.getenv("LINE_CHANNEL_ACCESS_TOKEN", ""),
            line_messaging_api_url=os.getenv("LINE_MESSAGING_API_URL", LINE_MESSAGING_API_URL),
            liff_id=os.getenv("LINE_LIFF_ID", "default-liff-id"),
            log_level=os.getenv("BILLFLOW_LOG_LEVEL", "INFO"),
        )


def create_storage(settings: Settings) -> JobStorage:
    """Build the job store for one process. Callers own its connect/close."""
    if settings.storage == "memory":
        from billflow.storage.memory_storage import MemoryStorage

        return MemoryStorage()
    if settings.storage != "redis":
        raise ValueError("storage must be 'redis' or 'memory'")

    from billflow.storage.redis_storage import RedisStorage

    prefix = f"billflow:{settings.queue}"
    if settings.redis_url:
        return RedisStorage.from_url(settings.redis_url, prefix=prefix)
    return RedisStorage(prefix=prefix)
