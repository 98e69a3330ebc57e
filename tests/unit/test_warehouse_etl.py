"""
Unit Tests - Prefect Warehouse Load Tasks
"""
import logging
import pytest

import polars as pl

pytest.importorskip("prefect")

from salesdw.aggregation import AggregateMaintainer  # noqa: E402
from salesdw.database import close_database, init_database  # noqa: E402
from workflows import warehouse_etl  # noqa: E402


@pytest.fixture
async def flow_database(tmp_path, monkeypatch):
    """Global warehouse on a temporary SQLite file, with a plain run logger"""
    monkeypatch.setattr(warehouse_etl, "get_run_logger", lambda: logging.getLogger("warehouse_etl"))
    await init_database(f"sqlite+aiosqlite:///{tmp_path / 'flow.db'}", create_schema=True)
    yield
    await close_database()


@pytest.fixture
def sales_csv(tmp_path, grid_records):
    path = tmp_path / "sales.csv"
    pl.DataFrame(grid_records).write_csv(path)
    return path


class TestLoadTransactions:
    """Tests for the load_transactions task"""

    async def test_loads_and_refreshes(self, flow_database, sales_csv):
        """Test the task loads the file and refreshes the requested views"""
        summary = await warehouse_etl.load_transactions.fn(
            str(sales_csv), modes=["plain", "cube"],
        )

        assert summary["status"] == "completed"
        assert summary["inserted"] == 6
        assert summary["rolled_back_batches"] == 0
        assert summary["aggregates"]["plain"]["rows"] == 6
        assert summary["aggregates"]["cube"]["rows"] == 12
        assert summary["refresh_error"] is None

    async def test_reload_is_idempotent(self, flow_database, sales_csv):
        """Test a retried load skips the facts already committed"""
        await warehouse_etl.load_transactions.fn(str(sales_csv), modes=[])

        summary = await warehouse_etl.load_transactions.fn(str(sales_csv), modes=[])

        assert summary["inserted"] == 0
        assert summary["skipped_duplicate"] == 6

    async def test_refresh_failure_is_reported(self, flow_database, sales_csv, monkeypatch):
        """Test a failing refresh is returned in the summary, not raised"""
        async def broken_publish(self, session, mode, rows, fact_count):
            raise RuntimeError("disk full")

        monkeypatch.setattr(AggregateMaintainer, "_publish", broken_publish)

        summary = await warehouse_etl.load_transactions.fn(str(sales_csv), modes=["rollup"])

        assert summary["inserted"] == 6
        assert "disk full" in summary["refresh_error"]
        assert summary["aggregates"] == {}

    async def test_rolled_back_batches_counted(self, flow_database, tmp_path, grid_records):
        """Test rolled-back batches reach the summary the flow alerts on"""
        grid_records[4]["quantity"] = "-1"
        path = tmp_path / "bad.csv"
        pl.DataFrame(grid_records).write_csv(path)

        summary = await warehouse_etl.load_transactions.fn(str(path), batch_size=3, modes=[])

        assert summary["status"] == "partial"
        assert summary["rolled_back_batches"] == 1
        assert summary["inserted"] == 3


class TestSendAlert:
    """Tests for the send_alert task"""

    async def test_alert_logged_as_warning(self, monkeypatch, caplog):
        """Test alerts are logged with their severity"""
        monkeypatch.setattr(warehouse_etl, "get_run_logger", lambda: logging.getLogger("warehouse_etl"))

        with caplog.at_level(logging.WARNING, logger="warehouse_etl"):
            await warehouse_etl.send_alert.fn("Batches Rolled Back", "1 batch", severity="warning")

        assert "[WARNING] Batches Rolled Back: 1 batch" in caplog.text
