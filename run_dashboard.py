"""Example of how to run the billflow admin dashboard."""
from __future__ import annotations

import argparse
import logging

import uvicorn

from billflow.client import QueueClient
from billflow.config import Settings, create_storage
from billflow.dashboard import create_dashboard_app
from billflow.notifications.store import SqlBillStore


def create_app(settings: Settings, debug: bool = False):
    storage = create_storage(settings)
    storage.connect()
    client = QueueClient(storage, queue=settings.queue)
    bills = SqlBillStore(connection_url=settings.database_url)
    return create_dashboard_app(client, bills, debug=debug)


def build_arg_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the billflow dashboard")
    parser.add_argument(
        "--storage",
        choices=["redis", "memory"],
        default=settings.storage,
        help="Storage backend to use (env: BILLFLOW_STORAGE).",
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
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    return parser


if __name__ == "__main__":
    settings = Settings.from_env()
    args = build_arg_parser(settings).parse_args()
    settings.storage = args.storage
    settings.redis_url = args.redis_url
    settings.database_url = args.database_url
    logging.basicConfig(level=settings.log_level.upper())
    app = create_app(settings, debug=True)
    uvicorn.run(app, host=args.host, port=args.port)
