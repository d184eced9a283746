"""Run a reminder delivery worker against the configured queue."""
from __future__ import annotations

import argparse
import logging

from billflow.config import Settings, create_storage
from billflow.notifications.delivery import ReminderDelivery
from billflow.notifications.messaging import LineMessagingClient
from billflow.notifications.store import SqlBillStore
from billflow.server.worker import Worker


def build_arg_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a billflow delivery worker")
    parser.add_argument(
        "--storage",
        choices=["redis", "memory"],
        default=settings.storage,
        help="Job store backend (env: BILLFLOW_STORAGE).",
    )
    parser.add_argument(
        "--redis-url",
        default=settings.redis_url,
        help="Redis URL for the redis backend (env: BILLFLOW_REDIS_URL).",
    )
    parser.add_argument(
        "--database-url",
        default=settings.database_url,
        help="SQLAlchemy URL of the household database (env: BILLFLOW_DATABASE_URL).",
    )
    parser.add_argument("--poll-timeout", type=float, default=1.0)
    return parser


def main() -> None:
    settings = Settings.from_env()
    args = build_arg_parser(settings).parse_args()
    settings.storage = args.storage
    settings.redis_url = args.redis_url
    settings.database_url = args.database_url
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not settings.line_channel_access_token:
        logging.getLogger(__name__).warning("LINE_CHANNEL_ACCESS_TOKEN is not set; pushes will be rejected")

    storage = create_storage(settings)
    storage.connect()
    bills = SqlBillStore(connection_url=settings.database_url)
    messaging = LineMessagingClient(
        settings.line_channel_access_token, api_url=settings.line_messaging_api_url
    )
    handler = ReminderDelivery(bills, messaging, liff_id=settings.liff_id)
    worker = Worker(storage, handler, queues=[settings.queue], poll_timeout=args.poll_timeout)
    try:
        worker.run()
    finally:
        messaging.close()
        bills.close()
        storage.close()


if __name__ == "__main__":
    main()
