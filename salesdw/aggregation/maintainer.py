"""
Store x Product Aggregate Maintenance

Recomputes the store x product sales aggregate from the fact table and
publishes it as a versioned snapshot. Three grouping modes are supported:

- PLAIN:  one row per observed (store, product) pair
- ROLLUP: PLAIN + one subtotal per store (product = ALL) + grand total
- CUBE:   ROLLUP + one subtotal per product (store = ALL)

Row order is ascending by store then product, with ALL placed after every
concrete key at its level:

    (1, 1) (1, 2) (1, ALL) (2, 1) (2, 2) (2, ALL) (ALL, 1) (ALL, 2) (ALL, ALL)

Refreshes of one mode never interleave within a maintainer. Across maintainers
(other workers or processes) two refreshes may compute the same next version;
the unique (mode, version, position) constraint lets only the first commit, and
the other fails with AggregateRefreshError. The new snapshot is built
completely, then swapped in; until then readers keep seeing the previous one.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import polars as pl
import structlog
from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from salesdw.database.connection import unit_of_work
from salesdw.database.models import AggStoreProduct, AggViewState, FactSale
from salesdw.exceptions import AggregateRefreshError

logger = structlog.get_logger(__name__)

ALL = "ALL"

GroupKey = Union[int, str]

FACT_SCHEMA = {
    "store_key": pl.Int64,
    "product_key": pl.Int64,
    "total_cents": pl.Int64,
}


class AggregateMode(str, Enum):
    """Grouping mode of an aggregate view"""
    PLAIN = "plain"
    ROLLUP = "rollup"
    CUBE = "cube"


class ViewState(str, Enum):
    """Freshness of an aggregate view"""
    STALE = "stale"
    REFRESHING = "refreshing"
    FRESH = "fresh"


# Grouping sets per mode; a column left out of a set is ALL in that set's rows
GROUPING_SETS: Dict[AggregateMode, Tuple[Tuple[str, ...], ...]] = {
    AggregateMode.PLAIN: (("store_key", "product_key"),),
    AggregateMode.ROLLUP: (("store_key", "product_key"), ("store_key",), ()),
    AggregateMode.CUBE: (("store_key", "product_key"), ("store_key",), ("product_key",), ()),
}


@dataclass(frozen=True)
class AggregateRow:
    """One aggregate row; a group of ALL marks a subtotal across that dimension"""
    store_group: GroupKey
    product_group: GroupKey
    total_sale: Decimal

    @property
    def is_subtotal(self) -> bool:
        return self.store_group == ALL or self.product_group == ALL


@dataclass(frozen=True)
class AggregateSnapshot:
    """A complete, published aggregate"""
    mode: AggregateMode
    version: int
    rows: Tuple[AggregateRow, ...]
    fact_count: int
    refreshed_at: datetime

    def __len__(self) -> int:
        return len(self.rows)

    def total(self, store_group: GroupKey, product_group: GroupKey) -> Optional[Decimal]:
        """Total of one cell, or None when the cell is not in the snapshot"""
        for row in self.rows:
            if row.store_group == store_group and row.product_group == product_group:
                return row.total_sale
        return None


def _group_order(value: GroupKey) -> Tuple[int, int]:
    return (1, 0) if value == ALL else (0, value)


def row_order(row: AggregateRow) -> Tuple[Tuple[int, int], Tuple[int, int]]:
    """Sort key placing ALL after every concrete key at its level"""
    return (_group_order(row.store_group), _group_order(row.product_group))


def to_cents(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).to_integral_value())


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


def facts_frame(rows: Iterable[Sequence]) -> pl.DataFrame:
    """Build the (store_key, product_key, total_cents) frame from fact rows"""
    store_keys, product_keys, cents = [], [], []
    for store_key, product_key, total_sale in rows:
        store_keys.append(store_key)
        product_keys.append(product_key)
        cents.append(to_cents(total_sale))
    return pl.DataFrame(
        {"store_key": store_keys, "product_key": product_keys, "total_cents": cents},
        schema=FACT_SCHEMA,
    )


def _grouping_set(facts: pl.DataFrame, keys: Tuple[str, ...]) -> pl.DataFrame:
    if not keys:
        total = facts["total_cents"].sum() or 0
        return pl.DataFrame(
            {"store_key": [None], "product_key": [None], "total_cents": [int(total)]},
            schema=FACT_SCHEMA,
        )
    grouped = facts.group_by(list(keys)).agg(pl.col("total_cents").sum())
    for column in ("store_key", "product_key"):
        if column not in keys:
            grouped = grouped.with_columns(pl.lit(None, dtype=pl.Int64).alias(column))
    return grouped.select(list(FACT_SCHEMA)).cast(FACT_SCHEMA)


def build_aggregate(facts: pl.DataFrame, mode: AggregateMode) -> List[AggregateRow]:
    """
    Compute the aggregate rows of ``mode`` from a facts frame.

    Pure function of its input. On an empty frame PLAIN has no rows while
    ROLLUP and CUBE keep their grand total row (0.00).
    """
    mode = AggregateMode(mode)
    frame = pl.concat(
        [_grouping_set(facts, keys) for keys in GROUPING_SETS[mode]],
        how="vertical",
    )
    rows = [
        AggregateRow(
            store_group=ALL if store_key is None else store_key,
            product_group=ALL if product_key is None else product_key,
            total_sale=from_cents(total_cents),
        )
        for store_key, product_key, total_cents in frame.iter_rows()
    ]
    return sorted(rows, key=row_order)


class AggregateMaintainer:
    """
    Keeps the store x product aggregate views consistent with the fact table.

    State per view: STALE -> REFRESHING -> FRESH, and back to STALE when
    ``invalidate()`` is called (a batch committed new facts) or a refresh
    fails. A refresh that started before an invalidation ends STALE, since it
    may not have seen the new facts.

    Example:
        maintainer = AggregateMaintainer()
        snapshot = await maintainer.refresh(AggregateMode.ROLLUP)
    """

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_factory = session_factory
        self._locks = {mode: asyncio.Lock() for mode in AggregateMode}
        self._states = {mode: ViewState.STALE for mode in AggregateMode}
        self._snapshots: Dict[AggregateMode, Optional[AggregateSnapshot]] = {
            mode: None for mode in AggregateMode
        }
        self._generation = 0

    def state(self, mode: AggregateMode) -> ViewState:
        return self._states[AggregateMode(mode)]

    def snapshot(self, mode: AggregateMode) -> Optional[AggregateSnapshot]:
        """Last snapshot this maintainer published, if any"""
        return self._snapshots[AggregateMode(mode)]

    def invalidate(self) -> None:
        """Mark every view stale after new facts were committed"""
        self._generation += 1
        for mode, state in self._states.items():
            if state == ViewState.FRESH:
                self._states[mode] = ViewState.STALE
        logger.debug("Aggregate views invalidated", generation=self._generation)

    async def refresh(self, mode: AggregateMode) -> AggregateSnapshot:
        """
        Recompute and publish the aggregate for ``mode``.

        Raises:
            AggregateRefreshError: If the refresh failed; the published
                snapshot is unchanged and the view is STALE
        """
        mode = AggregateMode(mode)
        async with self._locks[mode]:
            generation = self._generation
            self._states[mode] = ViewState.REFRESHING
            started = time.perf_counter()

            try:
                async with unit_of_work(self._session_factory) as session:
                    facts = await self._load_facts(session)
                    rows = build_aggregate(facts, mode)
                    snapshot = await self._publish(session, mode, rows, facts.height)
            except Exception as e:
                self._states[mode] = ViewState.STALE
                logger.error(
                    "Aggregate refresh failed",
                    mode=mode.value,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise AggregateRefreshError(mode.value, str(e)) from e

            self._snapshots[mode] = snapshot
            self._states[mode] = (
                ViewState.FRESH if generation == self._generation else ViewState.STALE
            )

            logger.info(
                "Aggregate refreshed",
                mode=mode.value,
                version=snapshot.version,
                rows=len(snapshot),
                facts=snapshot.fact_count,
                state=self._states[mode].value,
                duration_seconds=round(time.perf_counter() - started, 3),
            )
            return snapshot

    async def refresh_many(
        self, modes: Iterable[AggregateMode]
    ) -> Dict[AggregateMode, AggregateSnapshot]:
        """
        Refresh several views concurrently.

        Every requested view is attempted; the first failure is raised once
        all of them have finished.
        """
        unique_modes = list(dict.fromkeys(AggregateMode(m) for m in modes))
        results = await asyncio.gather(
            *(self.refresh(mode) for mode in unique_modes),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return dict(zip(unique_modes, results))

    async def load_snapshot(self, mode: AggregateMode) -> Optional[AggregateSnapshot]:
        """Read the published snapshot of ``mode`` from storage"""
        mode = AggregateMode(mode)
        async with unit_of_work(self._session_factory) as session:
            state = await session.get(AggViewState, mode.value)
            if state is None:
                return None
            result = await session.execute(
                select(AggStoreProduct.store_key, AggStoreProduct.product_key, AggStoreProduct.total_sale)
                .where(AggStoreProduct.mode == mode.value, AggStoreProduct.version == state.version)
                .order_by(AggStoreProduct.position)
            )
            rows = tuple(
                AggregateRow(
                    store_group=ALL if store_key is None else store_key,
                    product_group=ALL if product_key is None else product_key,
                    total_sale=Decimal(total_sale).quantize(Decimal("0.01")),
                )
                for store_key, product_key, total_sale in result.all()
            )
            return AggregateSnapshot(
                mode=mode,
                version=state.version,
                rows=rows,
                fact_count=state.fact_count,
                refreshed_at=state.refreshed_at,
            )

    async def _load_facts(self, session: AsyncSession) -> pl.DataFrame:
        result = await session.execute(
            select(FactSale.store_key, FactSale.product_key, FactSale.total_sale)
        )
        return facts_frame(result.all())

    async def _publish(
        self,
        session: AsyncSession,
        mode: AggregateMode,
        rows: List[AggregateRow],
        fact_count: int,
    ) -> AggregateSnapshot:
        """
        Write the new version, move the pointer, drop older versions.

        Raises IntegrityError when another refresh already published this version.
        """
        state = await session.get(AggViewState, mode.value)
        version = (state.version if state else 0) + 1
        refreshed_at = datetime.now(timezone.utc)

        if rows:
            await session.execute(
                insert(AggStoreProduct),
                [
                    {
                        "mode": mode.value,
                        "version": version,
                        "position": position,
                        "store_key": None if row.store_group == ALL else row.store_group,
                        "product_key": None if row.product_group == ALL else row.product_group,
                        "total_sale": row.total_sale,
                    }
                    for position, row in enumerate(rows)
                ],
            )

        if state is None:
            state = AggViewState(mode=mode.value)
            session.add(state)
        state.version = version
        state.row_count = len(rows)
        state.fact_count = fact_count
        state.refreshed_at = refreshed_at

        await session.execute(
            delete(AggStoreProduct).where(
                AggStoreProduct.mode == mode.value,
                AggStoreProduct.version < version,
            )
        )
        await session.flush()

        return AggregateSnapshot(
            mode=mode,
            version=version,
            rows=tuple(rows),
            fact_count=fact_count,
            refreshed_at=refreshed_at,
        )
