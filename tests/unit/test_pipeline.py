"""
Unit Tests - Load Pipeline and Command Line Loader
"""
import json
import pytest
from decimal import Decimal

import polars as pl

import run_loader
from salesdw.aggregation import ALL, AggregateMaintainer, AggregateMode, ViewState
from salesdw.ingestion import LoadStatus
from salesdw.pipeline import run_pipeline


@pytest.fixture
def sales_csv(tmp_path, grid_records):
    path = tmp_path / "sales.csv"
    pl.DataFrame(grid_records).write_csv(path)
    return path


class TestRunPipeline:
    """Tests for run_pipeline"""

    async def test_load_and_refresh(self, session_factory, sales_csv):
        """Test a file is loaded and the requested views refreshed"""
        maintainer = AggregateMaintainer(session_factory)

        result = await run_pipeline(
            sales_csv,
            modes=[AggregateMode.ROLLUP, AggregateMode.CUBE],
            session_factory=session_factory,
            maintainer=maintainer,
        )

        assert result.succeeded
        assert result.ingestion.inserted == 6
        assert set(result.snapshots) == {AggregateMode.ROLLUP, AggregateMode.CUBE}
        assert result.snapshots[AggregateMode.CUBE].total(ALL, ALL) == Decimal("120.00")
        assert maintainer.state(AggregateMode.PLAIN) == ViewState.STALE

    async def test_records_source(self, session_factory, grid_records):
        """Test an in-memory record stream as the source"""
        result = await run_pipeline(grid_records, modes=[], session_factory=session_factory)

        assert result.ingestion.status == LoadStatus.COMPLETED
        assert result.snapshots == {}

    async def test_fresh_views_are_not_refreshed(self, session_factory, sales_csv):
        """Test views already fresh are skipped"""
        maintainer = AggregateMaintainer(session_factory)
        await run_pipeline(sales_csv, modes=["plain"], session_factory=session_factory, maintainer=maintainer)

        again = await run_pipeline(sales_csv, modes=["plain"], session_factory=session_factory, maintainer=maintainer)

        assert again.ingestion.skipped_duplicate == 6
        assert again.snapshots == {}

    async def test_refresh_failure_is_reported(self, session_factory, sales_csv, monkeypatch):
        """Test a failing refresh does not undo the load"""
        async def broken_publish(self, session, mode, rows, fact_count):
            raise RuntimeError("disk full")

        monkeypatch.setattr(AggregateMaintainer, "_publish", broken_publish)

        result = await run_pipeline(sales_csv, modes=["cube"], session_factory=session_factory)

        assert result.ingestion.inserted == 6
        assert "disk full" in result.refresh_error
        assert not result.succeeded

    async def test_summary_is_json_friendly(self, session_factory, sales_csv):
        """Test the summary serializes to JSON"""
        result = await run_pipeline(sales_csv, modes=["plain"], session_factory=session_factory)

        summary = json.loads(json.dumps(result.summary(), default=str))

        assert summary["status"] == "completed"
        assert summary["aggregates"]["plain"]["rows"] == 6


class TestRunLoader:
    """Tests for the command line loader"""

    async def test_exit_ok(self, tmp_path, sales_csv):
        """Test a clean load exits 0"""
        url = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"

        code = await run_loader.main([
            "--input", str(sales_csv),
            "--database-url", url,
            "--create-schema",
            "--refresh", "plain",
        ])

        assert code == run_loader.EXIT_OK

    async def test_exit_on_rolled_back_batch(self, tmp_path, grid_records):
        """Test a rolled-back batch exits 1"""
        grid_records[2]["quantity"] = "-1"
        path = tmp_path / "bad.csv"
        pl.DataFrame(grid_records).write_csv(path)

        code = await run_loader.main([
            "--input", str(path),
            "--database-url", f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}",
            "--create-schema",
            "--refresh",
        ])

        assert code == run_loader.EXIT_FAILED_BATCHES

    async def test_exit_storage_unavailable(self, tmp_path, sales_csv):
        """Test an unreachable database exits 2"""
        code = await run_loader.main([
            "--input", str(sales_csv),
            "--database-url", f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'cli.db'}",
        ])

        assert code == run_loader.EXIT_STORAGE_UNAVAILABLE

    @pytest.mark.parametrize("option,value", [
        ("--batch-size", "0"),
        ("--workers", "0"),
        ("--workers", "-1"),
    ])
    async def test_rejects_non_positive_options(self, tmp_path, sales_csv, option, value):
        """Test sizes below one exit 1 before anything is loaded"""
        db_path = tmp_path / "cli.db"

        code = await run_loader.main([
            "--input", str(sales_csv),
            "--database-url", f"sqlite+aiosqlite:///{db_path}",
            "--create-schema",
            option, value,
        ])

        assert code == run_loader.EXIT_FAILED_BATCHES
        assert not db_path.exists()

    async def test_stdout_holds_only_summary(self, tmp_path, sales_csv, capsys):
        """Test logs go to stderr and stdout parses as the JSON summary"""
        code = await run_loader.main([
            "--input", str(sales_csv),
            "--database-url", f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}",
            "--create-schema",
            "--refresh", "rollup",
        ])

        captured = capsys.readouterr()
        summary = json.loads(captured.out)

        assert code == run_loader.EXIT_OK
        assert summary["inserted"] == 6
        assert summary["aggregates"]["rollup"]["rows"] == 9
        assert "Pipeline finished" in captured.err
