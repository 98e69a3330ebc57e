"""
Warehouse Load Pipeline

Staged run shared by the command line loader and the Prefect flow:

    read file -> ingest batches (resolve -> write -> commit) -> refresh aggregates

Aggregates are refreshed after the load for every configured mode that is not
FRESH. A refresh failure does not undo the load; it is reported on the result
and the views stay STALE until the next refresh.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from salesdw.aggregation import AggregateMaintainer, AggregateMode, AggregateSnapshot, ViewState
from salesdw.config import get_settings
from salesdw.exceptions import AggregateRefreshError
from salesdw.ingestion import BatchIngestor, FileFormat, IngestionReport, read_records

logger = structlog.get_logger(__name__)


@dataclass
class PipelineResult:
    """Outcome of one pipeline run"""
    ingestion: IngestionReport
    snapshots: Dict[AggregateMode, AggregateSnapshot] = field(default_factory=dict)
    refresh_error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.ingestion.failed_batches == 0 and self.refresh_error is None

    def summary(self) -> Dict[str, Any]:
        """JSON-friendly summary of the run"""
        return {
            "status": self.ingestion.status.value,
            "batches": len(self.ingestion.batches),
            "committed_batches": self.ingestion.committed_batches,
            "rolled_back_batches": self.ingestion.failed_batches,
            "inserted": self.ingestion.inserted,
            "skipped_duplicate": self.ingestion.skipped_duplicate,
            "failed": self.ingestion.failed,
            "not_attempted": self.ingestion.not_attempted,
            "duration_seconds": self.ingestion.duration_seconds,
            "aggregates": {
                mode.value: {"version": snap.version, "rows": len(snap)}
                for mode, snap in self.snapshots.items()
            },
            "refresh_error": self.refresh_error,
        }


async def refresh_stale(
    maintainer: AggregateMaintainer,
    modes: Iterable[AggregateMode],
) -> Dict[AggregateMode, AggregateSnapshot]:
    """Refresh every listed view that is not FRESH"""
    stale = [
        AggregateMode(mode) for mode in modes
        if maintainer.state(mode) != ViewState.FRESH
    ]
    if not stale:
        return {}
    return await maintainer.refresh_many(stale)


async def run_pipeline(
    source: Union[str, Path, Iterable[Any]],
    file_format: Optional[FileFormat] = None,
    batch_size: Optional[int] = None,
    workers: Optional[int] = None,
    modes: Optional[Iterable[AggregateMode]] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    maintainer: Optional[AggregateMaintainer] = None,
) -> PipelineResult:
    """
    Load a transaction source and refresh the aggregate views.

    Args:
        source: Path of a transaction file, or an iterable of raw records
        file_format: File format, inferred from the suffix when omitted
        batch_size: Records per atomic batch
        workers: Concurrent batch workers
        modes: Views to refresh; defaults to the configured modes when
            refresh after load is enabled, nothing otherwise
        session_factory: Session factory, defaults to the global one
        maintainer: Aggregate maintainer to invalidate and refresh

    Raises:
        StorageUnavailable: If the warehouse cannot be reached during the load
        FileNotFoundError: If the source file does not exist
    """
    settings = get_settings()
    if modes is None:
        modes = settings.aggregates.modes if settings.aggregates.refresh_after_load else []
    modes = [AggregateMode(mode) for mode in modes]

    maintainer = maintainer or AggregateMaintainer(session_factory)

    if isinstance(source, (str, Path)):
        records = read_records(source, file_format)
        log = logger.bind(source=str(source))
    else:
        records = source
        log = logger.bind(source="records")

    ingestor = BatchIngestor(
        session_factory=session_factory,
        maintainer=maintainer,
        batch_size=batch_size,
        max_workers=workers,
    )
    report = await ingestor.ingest(records)
    result = PipelineResult(ingestion=report)

    try:
        result.snapshots = await refresh_stale(maintainer, modes)
    except AggregateRefreshError as e:
        result.refresh_error = str(e)
        log.error("Aggregate refresh after load failed", mode=e.mode, error=str(e))

    log.info(
        "Pipeline finished",
        status=report.status.value,
        inserted=report.inserted,
        refreshed=[mode.value for mode in result.snapshots],
    )
    return result
