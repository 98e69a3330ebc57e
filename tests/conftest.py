"""
Test Suite Configuration
"""
import pytest
from datetime import date
from typing import AsyncGenerator, Callable, Dict, List

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker

from salesdw.config import Settings
from salesdw.database import create_session_factory
from salesdw.database.models import Base


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
    )


@pytest.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite warehouse, so separate sessions see each other's commits"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'warehouse.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test warehouse"""
    return create_session_factory(test_engine)


@pytest.fixture
async def test_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def make_record() -> Callable[..., Dict]:
    """Build a raw transaction record; keyword arguments override fields"""
    def _make(n: int = 1, **overrides) -> Dict:
        record = {
            "transaction_id": f"T-{n:05d}",
            "customer_id": f"C-{n:05d}",
            "customer_name": f"Customer {n}",
            "store_id": "S-1",
            "store_name": "Downtown",
            "supplier_id": "SP-1",
            "supplier_name": "Acme Supplies",
            "product_id": "P-1",
            "product_name": "Widget",
            "sale_date": "2024-03-15",
            "quantity": "2",
            "price": "10.00",
        }
        record.update(overrides)
        return record

    return _make


@pytest.fixture
def grid_records(make_record) -> List[Dict]:
    """Two stores x three products, one sale per cell.

    Totals per store: 1 -> 60.00, 2 -> 60.00
    Totals per product: 1 -> 20.00, 2 -> 40.00, 3 -> 60.00
    """
    records = []
    n = 1
    for store in (1, 2):
        for product in (1, 2, 3):
            records.append(make_record(
                n,
                store_id=f"S-{store}",
                store_name=f"Store {store}",
                product_id=f"P-{product}",
                product_name=f"Product {product}",
                quantity="1",
                price=f"{product * 10}.00",
            ))
            n += 1
    return records


@pytest.fixture
def sale_day() -> date:
    return date(2024, 3, 15)
