"""
Conditional insert primitive.

``insert_if_absent`` is the only write the loader performs against dimension
and fact tables. It issues a single ``INSERT ... ON CONFLICT DO NOTHING
RETURNING`` statement, so the uniqueness constraint named by
``conflict_columns`` decides atomically which of several concurrent writers
creates the row:

- the winner gets the value of ``returning`` for the row it created;
- everybody else gets ``None`` and must re-read the existing row.

A conflicting row inserted earlier in the same transaction also yields
``None``. On PostgreSQL a writer racing an uncommitted insert waits for that
transaction to finish before deciding.
"""

from typing import Any, Dict, Optional, Sequence, Type

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from salesdw.database.models import Base

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def dialect_insert(session: AsyncSession):
    """Insert construct supporting ON CONFLICT for the session's backend"""
    dialect = session.get_bind().dialect.name
    try:
        return _DIALECT_INSERTS[dialect]
    except KeyError:
        raise NotImplementedError(
            f"Conditional insert is not supported on '{dialect}'"
        ) from None


async def insert_if_absent(
    session: AsyncSession,
    model: Type[Base],
    values: Dict[str, Any],
    conflict_columns: Sequence[str],
    returning: str,
) -> Optional[Any]:
    """
    Insert ``values`` unless a row with the same ``conflict_columns`` exists.

    Returns:
        The ``returning`` column of the new row, or None when the row existed.
    """
    insert = dialect_insert(session)
    stmt = (
        insert(model)
        .values(**values)
        .on_conflict_do_nothing(index_elements=list(conflict_columns))
        .returning(getattr(model, returning))
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()
