#!/usr/bin/env python
"""
Warehouse Loader Entry Point

Loads a transaction file into the sales warehouse and refreshes the
store x product aggregates.

Usage:
    python run_loader.py --input data/raw/sales.csv
    python run_loader.py --input data/raw/sales.parquet --workers 4 --refresh rollup cube
    python run_loader.py --input sales.jsonl --database-url sqlite+aiosqlite:///local.db --create-schema

Exit status:
    0  every batch committed
    1  some or all batches rolled back, or an aggregate refresh failed
    2  the warehouse database is unavailable
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from salesdw.aggregation import AggregateMaintainer, AggregateMode  # noqa: E402
from salesdw.config import get_settings  # noqa: E402
from salesdw.config.logging import configure_logging, get_logger  # noqa: E402
from salesdw.database import close_database, get_session_factory, init_database  # noqa: E402
from salesdw.exceptions import StorageUnavailable  # noqa: E402
from salesdw.ingestion import FileFormat  # noqa: E402
from salesdw.pipeline import run_pipeline  # noqa: E402

EXIT_OK = 0
EXIT_FAILED_BATCHES = 1
EXIT_STORAGE_UNAVAILABLE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sales warehouse batch loader")
    parser.add_argument(
        "--input",
        required=True,
        help="Transaction file (csv, json, jsonl or parquet)",
    )
    parser.add_argument(
        "--format",
        choices=[f.value for f in FileFormat],
        help="File format (default: inferred from the file suffix)",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        help="Records per atomic batch (default: LOADER_BATCH_SIZE or 50)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        help="Concurrent batch workers (default: LOADER_MAX_WORKERS or 1)",
    )
    parser.add_argument(
        "--refresh",
        nargs="*",
        choices=[m.value for m in AggregateMode],
        metavar="MODE",
        help="Aggregate views to refresh after the load (plain, rollup, cube). "
             "Pass the flag without modes to skip the refresh.",
    )
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help="Create missing warehouse tables before loading",
    )
    parser.add_argument(
        "--database-url",
        help="SQLAlchemy async database URL (default: DATABASE_URL or POSTGRES_*)",
    )
    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    configure_logging()
    logger = get_logger("run_loader")
    settings = get_settings()

    for option in ("batch_size", "workers"):
        value = getattr(args, option)
        if value is not None and value < 1:
            logger.error("Option must be at least 1", option=option, value=value)
            return EXIT_FAILED_BATCHES

    try:
        await init_database(args.database_url, create_schema=args.create_schema)
    except StorageUnavailable as e:
        logger.error("Warehouse database unavailable", error=str(e))
        return EXIT_STORAGE_UNAVAILABLE

    try:
        session_factory = get_session_factory()
        result = await run_pipeline(
            args.input,
            file_format=FileFormat(args.format) if args.format else None,
            batch_size=args.batch_size,
            workers=args.workers,
            modes=args.refresh,
            session_factory=session_factory,
            maintainer=AggregateMaintainer(session_factory),
        )
    except StorageUnavailable as e:
        logger.error("Load aborted: warehouse database unavailable", error=str(e))
        return EXIT_STORAGE_UNAVAILABLE
    except FileNotFoundError as e:
        logger.error("Input file not found", error=str(e))
        return EXIT_FAILED_BATCHES
    finally:
        await close_database()

    # stdout carries only the summary; logs go to stderr
    print(json.dumps(result.summary(), indent=2, default=str))
    logger.info("Loader finished", app=settings.app_name, status=result.ingestion.status.value)
    return EXIT_OK if result.succeeded else EXIT_FAILED_BATCHES


def cli() -> None:
    """Console script entry point"""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
