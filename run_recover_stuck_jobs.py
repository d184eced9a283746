"""CLI utility to requeue reminder jobs left active by a crashed worker."""

from __future__ import annotations

import argparse

from billflow.config import Settings
from billflow.storage.redis_storage import RedisStorage


def build_arg_parser() -> argparse.ArgumentParser:
    settings = Settings.from_env()
    parser = argparse.ArgumentParser(description="Recover stuck billflow jobs")
    parser.add_argument(
        "--redis-url",
        default=settings.redis_url or "redis://localhost:6379/0",
        help="Redis URL of the job store (env: BILLFLOW_REDIS_URL).",
    )
    parser.add_argument("--queue", default=settings.queue)
    parser.add_argument(
        "--max-age-seconds",
        type=int,
        default=300,
        help="Requeue jobs active for longer than this many seconds.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=100,
        help="Maximum number of jobs to recover.",
    )
    return parser


def main() -> None:
    args = build_arg_parser().parse_args()
    storage = RedisStorage.from_url(args.redis_url, prefix=f"billflow:{args.queue}")
    try:
        recovered = storage.recover_stuck_jobs(
            max_age_seconds=args.max_age_seconds,
            limit=args.limit,
        )
    finally:
        storage.close()
    if not recovered:
        print("No stuck jobs recovered.")
        return
    print(f"Recovered {len(recovered)} stuck jobs:")
    for job_id in recovered:
        print(f"- {job_id}")


if __name__ == "__main__":
    main()
