"""
Fact Writer

Appends sales facts, skipping any whose business key is already loaded.
Reprocessing the same input therefore never changes the fact table.
"""

from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from salesdw.config import get_settings
from salesdw.config.settings import ConsistencyPolicy
from salesdw.database.models import FACT_BUSINESS_KEY, FactSale
from salesdw.database.operations import insert_if_absent
from salesdw.exceptions import ConsistencyError, DuplicateFact
from salesdw.warehouse.records import ResolvedRecord

logger = structlog.get_logger(__name__)

CENTS = Decimal("0.01")


class WriteOutcome(str, Enum):
    """Result of writing one fact"""
    INSERTED = "inserted"
    SKIPPED_DUPLICATE = "skipped_duplicate"


def compute_total_sale(
    price: Decimal,
    quantity: int,
    supplied: Optional[Decimal] = None,
    tolerance: Decimal = CENTS,
    policy: ConsistencyPolicy = ConsistencyPolicy.REJECT,
) -> Decimal:
    """
    Total of a sale line, rounded half-up to cents.

    The supplied total is kept when it is within ``tolerance`` of
    price x quantity. Beyond that, REJECT raises and RECOMPUTE falls back to
    price x quantity.

    Raises:
        ConsistencyError: If the supplied total disagrees under REJECT
    """
    expected = (Decimal(price) * quantity).quantize(CENTS, rounding=ROUND_HALF_UP)
    if supplied is None:
        return expected

    supplied = Decimal(supplied).quantize(CENTS, rounding=ROUND_HALF_UP)
    difference = abs(supplied - expected)
    if difference <= tolerance:
        return supplied

    if policy == ConsistencyPolicy.RECOMPUTE:
        logger.warning(
            "Supplied total replaced by price x quantity",
            supplied=str(supplied),
            expected=str(expected),
        )
        return expected

    raise ConsistencyError(
        f"total_sale {supplied} differs from price x quantity {expected} "
        f"by {difference} (tolerance {tolerance})"
    )


class FactWriter:
    """
    Writes resolved transactions to the fact table.

    Example:
        writer = FactWriter(session)
        outcome = await writer.write(resolved)
    """

    def __init__(
        self,
        session: AsyncSession,
        tolerance: Optional[Decimal] = None,
        policy: Optional[ConsistencyPolicy] = None,
    ):
        loader_settings = get_settings().loader
        self.session = session
        self.tolerance = loader_settings.total_sale_tolerance if tolerance is None else Decimal(tolerance)
        self.policy = ConsistencyPolicy(policy or loader_settings.consistency_policy)

    async def write(self, record: ResolvedRecord) -> WriteOutcome:
        """
        Insert the fact unless its business key is already present.

        Raises:
            ConsistencyError: If the supplied total is inconsistent (REJECT policy)
        """
        try:
            await self._insert(record)
        except DuplicateFact as e:
            logger.debug("Duplicate fact skipped", business_key=e.business_key)
            return WriteOutcome.SKIPPED_DUPLICATE
        return WriteOutcome.INSERTED

    async def _insert(self, record: ResolvedRecord) -> int:
        total_sale = compute_total_sale(
            record.price,
            record.quantity,
            record.total_sale,
            tolerance=self.tolerance,
            policy=self.policy,
        )
        values = dict(zip(FACT_BUSINESS_KEY, record.business_key))
        values.update(
            quantity=record.quantity,
            price=record.price,
            total_sale=total_sale,
        )
        sale_key = await insert_if_absent(
            self.session,
            FactSale,
            values,
            conflict_columns=FACT_BUSINESS_KEY,
            returning="sale_key",
        )
        if sale_key is None:
            raise DuplicateFact(record.business_key)
        return sale_key
