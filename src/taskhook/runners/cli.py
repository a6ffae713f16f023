"""One-shot dispatch cycle for cron-style scheduling."""

import argparse
import asyncio
import json
import logging
import sys

from taskhook.config import settings
from taskhook.db.base import close_db, init_db
from taskhook.runners.sweep import run_dispatch_cycle

logger = logging.getLogger("taskhook.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="taskhook-dispatch",
        description="Complete due tasks and send their webhooks once, then exit.",
    )
    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Create tables before running",
    )
    parser.add_argument(
        "--log-level",
        default=settings.log_level,
        help="Logging level (default: %(default)s)",
    )
    return parser


async def run_once(init: bool = False) -> dict:
    """Run a cycle and return the summary body."""
    try:
        if init:
            await init_db()
        report = await run_dispatch_cycle(runner="cli")
    finally:
        await close_db()

    return {
        "message": f"Processed {report.responded} webhooks",
        "tasks_processed": report.responded,
        "tasks_completed": report.processed,
    }


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    logger.info("Webhook processor running...")
    try:
        body = asyncio.run(run_once(init=args.init_db))
    except Exception as e:
        logger.error(f"Failed to process webhooks: {e}", exc_info=True)
        print(json.dumps({"error": str(e)}))
        return 1

    print(json.dumps(body))
    return 0


if __name__ == "__main__":
    sys.exit(main())
