"""
Dimension Resolution

Maps natural keys to surrogate keys, creating dimension rows on first sight.

Each dimension table has a unique constraint on its natural key. Creation goes
through ``insert_if_absent``, so when several workers meet the same unseen key
exactly one of them creates the row and the others re-read it. Existing rows
are never modified: the attributes of the first writer win.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Type

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from salesdw.config import get_settings
from salesdw.database.models import (
    Base,
    DimCustomer,
    DimDate,
    DimProduct,
    DimStore,
    DimSupplier,
)
from salesdw.database.operations import insert_if_absent
from salesdw.exceptions import DimensionConflict, ValidationError
from salesdw.warehouse import dates
from salesdw.warehouse.records import ResolvedRecord, TransactionRecord

logger = structlog.get_logger(__name__)


class DimensionType(str, Enum):
    """Dimensions of the sales star schema"""
    CUSTOMER = "customer"
    STORE = "store"
    SUPPLIER = "supplier"
    PRODUCT = "product"
    DATE = "date"


@dataclass(frozen=True)
class DimensionSpec:
    """How one dimension table is keyed"""
    model: Type[Base]
    surrogate_key: str
    natural_key: str
    required: Tuple[str, ...]


DIMENSIONS: Dict[DimensionType, DimensionSpec] = {
    DimensionType.CUSTOMER: DimensionSpec(DimCustomer, "customer_key", "customer_id", ("customer_name",)),
    DimensionType.STORE: DimensionSpec(DimStore, "store_key", "store_id", ("store_name",)),
    DimensionType.SUPPLIER: DimensionSpec(DimSupplier, "supplier_key", "supplier_id", ("supplier_name",)),
    DimensionType.PRODUCT: DimensionSpec(DimProduct, "product_key", "product_id", ("product_name",)),
    DimensionType.DATE: DimensionSpec(
        DimDate,
        "date_key",
        "full_date",
        ("date_key", "year", "quarter", "month", "day", "day_of_week",
         "day_of_year", "week_of_year", "month_name", "is_weekend"),
    ),
}


class DimensionResolver:
    """
    Resolves natural keys to surrogate keys inside one unit of work.

    A resolver memoizes the keys it has resolved, so a batch touching the same
    store fifty times reads it once. Create a new resolver per unit of work:
    keys created by a rolled-back transaction must not outlive it.

    Example:
        async with unit_of_work() as session:
            resolver = DimensionResolver(session)
            store_key = await resolver.resolve(
                DimensionType.STORE, "S-1", {"store_name": "Downtown"}
            )
    """

    def __init__(self, session: AsyncSession, retry_budget: Optional[int] = None):
        self.session = session
        self.retry_budget = get_settings().loader.retry_budget if retry_budget is None else retry_budget
        if self.retry_budget < 1:
            raise ValueError(f"retry_budget must be at least 1, got {self.retry_budget}")
        self._memo: Dict[Tuple[DimensionType, Any], int] = {}
        self.created: Dict[DimensionType, int] = {d: 0 for d in DimensionType}

    async def resolve(
        self,
        dimension_type: DimensionType,
        natural_key: Any,
        attributes: Mapping[str, Any],
    ) -> int:
        """
        Return the surrogate key for ``natural_key``, creating the row if absent.

        Raises:
            ValidationError: If the natural key or a required attribute is missing
            DimensionConflict: If a creation race is still unresolved after
                ``retry_budget`` attempts
        """
        dimension_type = self._dimension(dimension_type)
        spec = DIMENSIONS[dimension_type]
        values = self._row_values(dimension_type, spec, natural_key, attributes)

        memo_key = (dimension_type, natural_key)
        if memo_key in self._memo:
            return self._memo[memo_key]

        for attempt in range(1, self.retry_budget + 1):
            key = await self._lookup(spec, natural_key)
            if key is None:
                key = await insert_if_absent(
                    self.session,
                    spec.model,
                    values,
                    conflict_columns=[spec.natural_key],
                    returning=spec.surrogate_key,
                )
                if key is not None:
                    self.created[dimension_type] += 1
                    logger.debug(
                        "Dimension row created",
                        dimension=dimension_type.value,
                        natural_key=str(natural_key),
                        surrogate_key=key,
                    )
                else:
                    # Lost the race: the winner's row is there now
                    key = await self._lookup(spec, natural_key)
            if key is not None:
                self._memo[memo_key] = key
                return key
            logger.warning(
                "Dimension insert conflicted but no row is visible",
                dimension=dimension_type.value,
                natural_key=str(natural_key),
                attempt=attempt,
            )

        raise DimensionConflict(dimension_type.value, natural_key, self.retry_budget)

    async def resolve_date(self, value: dates.DateLike) -> int:
        """Resolve a calendar date, deriving its attributes"""
        attrs = dates.derive(value)
        row = attrs.as_row()
        del row["full_date"]
        return await self.resolve(DimensionType.DATE, attrs.full_date, row)

    async def resolve_record(self, record: TransactionRecord) -> ResolvedRecord:
        """Resolve all five dimension keys of a transaction"""
        customer_key = await self.resolve(
            DimensionType.CUSTOMER, record.customer_id, {"customer_name": record.customer_name}
        )
        store_key = await self.resolve(
            DimensionType.STORE, record.store_id, {"store_name": record.store_name}
        )
        supplier_key = await self.resolve(
            DimensionType.SUPPLIER, record.supplier_id, {"supplier_name": record.supplier_name}
        )
        product_key = await self.resolve(
            DimensionType.PRODUCT, record.product_id, {"product_name": record.product_name}
        )
        date_key = await self.resolve_date(record.sale_date)
        return ResolvedRecord(
            customer_key=customer_key,
            store_key=store_key,
            supplier_key=supplier_key,
            product_key=product_key,
            date_key=date_key,
            quantity=record.quantity,
            price=record.price,
            total_sale=record.total_sale,
            transaction_id=record.transaction_id,
        )

    async def _lookup(self, spec: DimensionSpec, natural_key: Any) -> Optional[int]:
        stmt = select(getattr(spec.model, spec.surrogate_key)).where(
            getattr(spec.model, spec.natural_key) == natural_key
        )
        return await self.session.scalar(stmt)

    @staticmethod
    def _dimension(dimension_type: Any) -> DimensionType:
        try:
            return DimensionType(dimension_type)
        except ValueError:
            raise ValidationError(f"Unknown dimension type '{dimension_type}'") from None

    @staticmethod
    def _row_values(
        dimension_type: DimensionType,
        spec: DimensionSpec,
        natural_key: Any,
        attributes: Mapping[str, Any],
    ) -> Dict[str, Any]:
        """Validate attributes and build the row to insert"""
        if natural_key is None or (isinstance(natural_key, str) and not natural_key.strip()):
            raise ValidationError(f"Missing natural key for {dimension_type.value} dimension")
        if not isinstance(attributes, Mapping):
            raise ValidationError(
                f"Attributes for {dimension_type.value} must be a mapping, "
                f"got {type(attributes).__name__}"
            )

        missing = [
            name for name in spec.required
            if attributes.get(name) is None
            or (isinstance(attributes.get(name), str) and not attributes[name].strip())
        ]
        if missing:
            raise ValidationError(
                f"Missing required {dimension_type.value} attributes: {', '.join(missing)}"
            )

        unknown = set(attributes) - set(spec.required)
        if unknown:
            raise ValidationError(
                f"Unknown {dimension_type.value} attributes: {', '.join(sorted(unknown))}"
            )

        values = {name: attributes[name] for name in spec.required}
        values[spec.natural_key] = natural_key
        return values
