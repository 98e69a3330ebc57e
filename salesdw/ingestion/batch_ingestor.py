"""
Batch Ingestor

Loads a stream of raw sales transactions into the star schema in fixed-size
batches. Each batch is one atomic unit of work:

1. validate each record
2. resolve its five dimension keys (creating missing dimension rows)
3. write the fact, or skip it when its business key is already loaded
4. commit, or roll back everything the batch did if any record failed

Batches are independent: a rolled-back batch is reported and the next batch
proceeds. Loading the same input twice leaves the warehouse unchanged.
"""

import asyncio
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from itertools import islice
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence

import polars as pl
import structlog
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from salesdw.aggregation.maintainer import AggregateMaintainer
from salesdw.config import get_settings
from salesdw.config.settings import ConsistencyPolicy
from salesdw.database.connection import unit_of_work
from salesdw.exceptions import RecordError
from salesdw.warehouse.dimensions import DimensionResolver
from salesdw.warehouse.facts import FactWriter, WriteOutcome
from salesdw.warehouse.records import TransactionRecord

logger = structlog.get_logger(__name__)


class LoadStatus(str, Enum):
    """Ingestion run status"""
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class BatchStatus(str, Enum):
    """Outcome of one batch"""
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class RecordFailure(BaseModel):
    """A record that did not make it into the warehouse"""
    record_number: int
    transaction_id: Optional[str] = None
    error_type: str
    reason: str


class BatchReport(BaseModel):
    """Result of loading one batch"""
    batch_number: int
    first_record: int
    record_count: int
    status: BatchStatus
    inserted: int = 0
    skipped_duplicate: int = 0
    failed: int = 0
    not_attempted: int = 0
    dimensions_created: Dict[str, int] = Field(default_factory=dict)
    failures: List[RecordFailure] = Field(default_factory=list)
    dead_letter_file: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: float = 0


class IngestionReport(BaseModel):
    """Result of an ingestion run"""
    status: LoadStatus
    batches: List[BatchReport] = Field(default_factory=list)
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: float = 0

    @property
    def inserted(self) -> int:
        return sum(b.inserted for b in self.batches)

    @property
    def skipped_duplicate(self) -> int:
        return sum(b.skipped_duplicate for b in self.batches)

    @property
    def failed(self) -> int:
        return sum(b.failed for b in self.batches)

    @property
    def not_attempted(self) -> int:
        return sum(b.not_attempted for b in self.batches)

    @property
    def committed_batches(self) -> int:
        return sum(1 for b in self.batches if b.status == BatchStatus.COMMITTED)

    @property
    def failed_batches(self) -> int:
        return len(self.batches) - self.committed_batches


def partition(records: Iterable[Any], batch_size: int) -> Iterator[List[Any]]:
    """Split a stream into lists of ``batch_size``; the last may be shorter"""
    if batch_size < 1:
        raise ValueError(f"batch_size must be at least 1, got {batch_size}")
    iterator = iter(records)
    while True:
        batch = list(islice(iterator, batch_size))
        if not batch:
            return
        yield batch


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_mapping(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, BaseModel):
        return raw.model_dump(mode="json")
    if isinstance(raw, Mapping):
        return dict(raw)
    return {"_raw": repr(raw)}


def _transaction_id(raw: Any) -> Optional[str]:
    value = _as_mapping(raw).get("transaction_id")
    return None if value is None else str(value)


class BatchIngestor:
    """
    Loads transaction records batch by batch.

    Features:
    - Atomic batches: every dimension and fact write of a batch commits together
    - Idempotent: facts whose business key exists are skipped, not duplicated
    - Concurrent workers, each batch in its own session
    - Dead-letter Parquet files for rolled-back batches
    - Aggregate invalidation after batches that inserted facts

    Example:
        ingestor = BatchIngestor(maintainer=AggregateMaintainer())
        report = await ingestor.ingest(read_records("data/raw/sales.csv"))
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        maintainer: Optional[AggregateMaintainer] = None,
        batch_size: Optional[int] = None,
        max_workers: Optional[int] = None,
        retry_budget: Optional[int] = None,
        tolerance: Optional[Decimal] = None,
        policy: Optional[ConsistencyPolicy] = None,
        dead_letter_path: Optional[str] = None,
    ):
        loader_settings = get_settings().loader
        self.session_factory = session_factory
        self.maintainer = maintainer
        self.batch_size = loader_settings.batch_size if batch_size is None else batch_size
        self.max_workers = loader_settings.max_workers if max_workers is None else max_workers
        self.retry_budget = loader_settings.retry_budget if retry_budget is None else retry_budget
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {self.batch_size}")
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")
        if self.retry_budget < 1:
            raise ValueError(f"retry_budget must be at least 1, got {self.retry_budget}")
        self.tolerance = loader_settings.total_sale_tolerance if tolerance is None else tolerance
        self.policy = loader_settings.consistency_policy if policy is None else policy

        dead_letter = loader_settings.dead_letter_path if dead_letter_path is None else dead_letter_path
        self.dead_letter_path = Path(dead_letter) if dead_letter else None
        self._ensure_directories()

    def _ensure_directories(self) -> None:
        """Ensure required directories exist"""
        if self.dead_letter_path is not None:
            self.dead_letter_path.mkdir(parents=True, exist_ok=True)

    async def ingest(
        self,
        records: Iterable[Any],
        batch_size: Optional[int] = None,
    ) -> IngestionReport:
        """
        Load a record stream.

        Args:
            records: Raw records (mappings) or TransactionRecord instances
            batch_size: Records per atomic batch, defaults to the configured size

        Returns:
            IngestionReport with one BatchReport per batch, in input order

        Raises:
            StorageUnavailable: If the warehouse cannot be reached. Batches
                committed before the failure stay committed.
        """
        batch_size = self.batch_size if batch_size is None else batch_size
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")

        started_at = _utcnow()
        logger.info(
            "Starting ingestion",
            batch_size=batch_size,
            max_workers=self.max_workers,
        )

        semaphore = asyncio.Semaphore(self.max_workers)
        tasks: List[asyncio.Task] = []
        first_record = 1
        try:
            for batch_number, batch in enumerate(partition(records, batch_size), start=1):
                await semaphore.acquire()
                self._raise_worker_failure(tasks)
                tasks.append(asyncio.create_task(
                    self._run_batch(semaphore, batch_number, first_record, batch)
                ))
                first_record += len(batch)
            batch_reports = list(await asyncio.gather(*tasks))
        except BaseException as e:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.error(
                "Ingestion aborted",
                error=str(e),
                error_type=type(e).__name__,
                batches_started=len(tasks),
            )
            raise

        report = IngestionReport(
            status=self._run_status(batch_reports),
            batches=batch_reports,
            started_at=started_at,
            completed_at=_utcnow(),
        )
        report.duration_seconds = (report.completed_at - started_at).total_seconds()

        logger.info(
            f"Ingestion {report.status.value}: {report.committed_batches} batches committed, "
            f"{report.failed_batches} rolled back",
            inserted=report.inserted,
            skipped_duplicate=report.skipped_duplicate,
            failed=report.failed,
            not_attempted=report.not_attempted,
            duration_seconds=report.duration_seconds,
        )
        return report

    @staticmethod
    def _raise_worker_failure(tasks: Sequence[asyncio.Task]) -> None:
        """Stop scheduling batches once a worker hit a run-level error"""
        for task in tasks:
            if task.done() and not task.cancelled() and task.exception() is not None:
                raise task.exception()

    @staticmethod
    def _run_status(batch_reports: Sequence[BatchReport]) -> LoadStatus:
        committed = sum(1 for b in batch_reports if b.status == BatchStatus.COMMITTED)
        if committed == len(batch_reports):
            return LoadStatus.COMPLETED
        if committed:
            return LoadStatus.PARTIAL
        return LoadStatus.FAILED

    async def _run_batch(
        self,
        semaphore: asyncio.Semaphore,
        batch_number: int,
        first_record: int,
        records: List[Any],
    ) -> BatchReport:
        try:
            return await self.load_batch(batch_number, first_record, records)
        finally:
            semaphore.release()

    async def load_batch(
        self,
        batch_number: int,
        first_record: int,
        records: List[Any],
    ) -> BatchReport:
        """
        Load one batch in its own unit of work.

        Record-level errors roll the batch back and are reported; anything
        else propagates.
        """
        started_at = _utcnow()
        log = logger.bind(batch_number=batch_number, first_record=first_record)
        outcomes: List[WriteOutcome] = []

        try:
            async with unit_of_work(self.session_factory) as session:
                resolver = DimensionResolver(session, retry_budget=self.retry_budget)
                writer = FactWriter(session, tolerance=self.tolerance, policy=self.policy)
                for offset, raw in enumerate(records):
                    outcome = await self._load_record(
                        resolver, writer, raw, first_record + offset
                    )
                    outcomes.append(outcome)
        except RecordError as e:
            report = self._rolled_back_report(
                batch_number, first_record, records, e, started_at
            )
            log.warning(
                "Batch rolled back",
                record_number=e.record_number,
                error_type=type(e).__name__,
                reason=e.reason,
                dead_letter_file=report.dead_letter_file,
            )
            return report

        report = BatchReport(
            batch_number=batch_number,
            first_record=first_record,
            record_count=len(records),
            status=BatchStatus.COMMITTED,
            inserted=outcomes.count(WriteOutcome.INSERTED),
            skipped_duplicate=outcomes.count(WriteOutcome.SKIPPED_DUPLICATE),
            dimensions_created={
                dimension.value: count
                for dimension, count in resolver.created.items()
                if count
            },
            started_at=started_at,
            completed_at=_utcnow(),
        )
        report.duration_seconds = (report.completed_at - started_at).total_seconds()

        if report.inserted and self.maintainer is not None:
            self.maintainer.invalidate()

        log.info(
            "Batch committed",
            inserted=report.inserted,
            skipped_duplicate=report.skipped_duplicate,
            dimensions_created=report.dimensions_created,
        )
        return report

    @staticmethod
    async def _load_record(
        resolver: DimensionResolver,
        writer: FactWriter,
        raw: Any,
        record_number: int,
    ) -> WriteOutcome:
        try:
            record = TransactionRecord.from_raw(raw, record_number=record_number)
            resolved = await resolver.resolve_record(record)
            return await writer.write(resolved)
        except RecordError as e:
            e.record_number = record_number
            raise

    def _rolled_back_report(
        self,
        batch_number: int,
        first_record: int,
        records: List[Any],
        error: RecordError,
        started_at: datetime,
    ) -> BatchReport:
        failed_index = error.record_number - first_record
        failures = [
            RecordFailure(
                record_number=first_record + offset,
                transaction_id=_transaction_id(raw),
                error_type="RolledBack",
                reason=f"rolled back with batch {batch_number}: record {error.record_number} failed",
            )
            for offset, raw in enumerate(records[:failed_index])
        ]
        failures.append(RecordFailure(
            record_number=error.record_number,
            transaction_id=_transaction_id(records[failed_index]),
            error_type=type(error).__name__,
            reason=error.reason,
        ))

        report = BatchReport(
            batch_number=batch_number,
            first_record=first_record,
            record_count=len(records),
            status=BatchStatus.ROLLED_BACK,
            failed=failed_index + 1,
            not_attempted=len(records) - failed_index - 1,
            failures=failures,
            started_at=started_at,
            completed_at=_utcnow(),
        )
        report.duration_seconds = (report.completed_at - started_at).total_seconds()

        if self.dead_letter_path is not None:
            report.dead_letter_file = str(
                self._write_to_dead_letter(batch_number, first_record, records, error)
            )
        return report

    def _write_to_dead_letter(
        self,
        batch_number: int,
        first_record: int,
        records: List[Any],
        error: RecordError,
    ) -> Path:
        """Write a rolled-back batch to the dead letter directory"""
        failed_at = _utcnow()
        file_name = (
            f"batch_{batch_number:05d}_{failed_at.strftime('%Y%m%d_%H%M%S')}"
            f"_{uuid.uuid4().hex[:8]}.parquet"
        )
        dead_letter_file = self.dead_letter_path / file_name

        rows = []
        for offset, raw in enumerate(records):
            row = {
                str(k): None if v is None else str(v)
                for k, v in _as_mapping(raw).items()
            }
            row["_record_number"] = str(first_record + offset)
            rows.append(row)

        df = pl.from_dicts(rows, infer_schema_length=None).with_columns([
            pl.lit(error.record_number).alias("_failed_record_number"),
            pl.lit(f"{type(error).__name__}: {error.reason}").alias("_error_message"),
            pl.lit(failed_at.isoformat()).alias("_failed_at"),
        ])
        df.write_parquet(dead_letter_file)
        return dead_letter_file


# Factory function for creating configured ingestor
def create_batch_ingestor(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    maintainer: Optional[AggregateMaintainer] = None,
) -> BatchIngestor:
    """Create a BatchIngestor configured from settings"""
    settings = get_settings()
    return BatchIngestor(
        session_factory=session_factory,
        maintainer=maintainer,
        batch_size=settings.loader.batch_size,
        max_workers=settings.loader.max_workers,
        retry_budget=settings.loader.retry_budget,
        dead_letter_path=settings.loader.dead_letter_path,
    )
