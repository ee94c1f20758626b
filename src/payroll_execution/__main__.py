"""Command line entry point: serve the payroll API or create its tables."""

import argparse
import asyncio
import logging

import uvicorn

from payroll_execution.config import get_settings
from payroll_execution.database import create_schema, dispose_db

logger = logging.getLogger("payroll_execution")


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(prog="payroll-execution")
    parser.add_argument("--host", default=settings.host)
    parser.add_argument("--port", type=int, default=settings.port)
    parser.add_argument("--reload", action="store_true", default=settings.debug)
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help="create missing tables and exit",
    )
    return parser


async def _create_schema() -> None:
    try:
        await create_schema()
    finally:
        await dispose_db()


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    settings = get_settings()

    if args.create_schema:
        logging.basicConfig(level=settings.log_level)
        asyncio.run(_create_schema())
        logger.info("Schema created on %s", settings.database_url.split("@")[-1])
        return

    uvicorn.run(
        "payroll_execution.api.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
