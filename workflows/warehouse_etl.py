"""
Prefect Workflow Orchestration - Warehouse Load

Production workflow for loading sales transaction files with:
- Atomic batch loading and aggregate refresh through run_pipeline
- Task retries on storage failures
- Alerting on rolled-back batches and failed refreshes
"""

from pathlib import Path
from typing import List, Optional

from prefect import flow, get_run_logger, task

from salesdw.aggregation import AggregateMaintainer
from salesdw.database import close_database, get_session_factory, init_database
from salesdw.ingestion import FileFormat
from salesdw.pipeline import run_pipeline


# =============================================================================
# TASKS
# =============================================================================

# Reloading a file is idempotent: facts committed by a failed attempt are
# skipped as duplicates on the retry
@task(
    name="load_transactions",
    description="Load a transaction file and refresh the stale aggregates",
    retries=2,
    retry_delay_seconds=30,
)
async def load_transactions(
    input_path: str,
    file_format: Optional[str] = None,
    batch_size: Optional[int] = None,
    workers: Optional[int] = None,
    modes: Optional[List[str]] = None,
) -> dict:
    """Run the warehouse pipeline on one file"""
    logger = get_run_logger()

    session_factory = get_session_factory()
    result = await run_pipeline(
        input_path,
        file_format=FileFormat(file_format) if file_format else None,
        batch_size=batch_size,
        workers=workers,
        modes=modes,
        session_factory=session_factory,
        maintainer=AggregateMaintainer(session_factory),
    )
    summary = result.summary()

    logger.info(
        f"Load {summary['status']}: {summary['committed_batches']} batches committed, "
        f"{summary['rolled_back_batches']} rolled back, {summary['inserted']} facts inserted, "
        f"aggregates refreshed: {sorted(summary['aggregates']) or 'none'}"
    )
    return summary


@task(
    name="send_alert",
    description="Send alert notification",
)
async def send_alert(
    alert_type: str,
    message: str,
    severity: str = "info",
) -> None:
    """Send alert notification"""
    logger = get_run_logger()
    logger.warning(f"[{severity.upper()}] {alert_type}: {message}")


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="warehouse_load",
    description="Load sales transactions and refresh the store x product aggregates",
)
async def warehouse_load(
    input_path: str,
    file_format: Optional[str] = None,
    batch_size: Optional[int] = None,
    workers: Optional[int] = None,
    modes: Optional[List[str]] = None,
    database_url: Optional[str] = None,
) -> dict:
    """
    Warehouse load pipeline.

    Steps:
    1. Load the transaction file in atomic batches and refresh the views
    2. Alert when batches were rolled back or a refresh failed
    """
    logger = get_run_logger()
    logger.info(f"Starting warehouse load of {Path(input_path).name}")

    await init_database(database_url)

    try:
        summary = await load_transactions(
            input_path=input_path,
            file_format=file_format,
            batch_size=batch_size,
            workers=workers,
            modes=modes,
        )

        if summary["rolled_back_batches"]:
            await send_alert(
                alert_type="Batches Rolled Back",
                message=f"{summary['rolled_back_batches']} batches of {input_path} were rolled back",
                severity="warning",
            )
        if summary["refresh_error"]:
            await send_alert(
                alert_type="Aggregate Refresh Failed",
                message=summary["refresh_error"],
                severity="warning",
            )

    except Exception as e:
        logger.error(f"Warehouse load failed: {e}")

        await send_alert(
            alert_type="Warehouse Load Failed",
            message=f"Loading {input_path} failed: {e}",
            severity="critical",
        )
        raise

    finally:
        await close_database()

    return {"input_path": input_path, **summary}


if __name__ == "__main__":
    import asyncio
    import sys

    asyncio.run(warehouse_load(sys.argv[1]))
