"""
Unit Tests - Configuration
"""
import pytest
from decimal import Decimal

from pydantic import ValidationError as PydanticValidationError

from salesdw.config import Settings
from salesdw.config.settings import ConsistencyPolicy, DatabaseSettings, LoaderSettings


class TestSettings:
    """Tests for settings loading"""

    def test_testing_environment(self, test_settings):
        """Test the test settings fixture"""
        assert test_settings.app_env == "testing"
        assert test_settings.is_production is False

    def test_invalid_environment(self):
        """Test unknown environments are rejected"""
        with pytest.raises(PydanticValidationError):
            Settings(app_env="moon")

    def test_loader_defaults(self, monkeypatch):
        """Test loader defaults"""
        for var in ("LOADER_BATCH_SIZE", "LOADER_MAX_WORKERS", "LOADER_RETRY_BUDGET",
                    "LOADER_CONSISTENCY_POLICY", "LOADER_TOTAL_SALE_TOLERANCE"):
            monkeypatch.delenv(var, raising=False)

        loader = LoaderSettings()

        assert loader.batch_size == 50
        assert loader.max_workers == 1
        assert loader.retry_budget == 3
        assert loader.total_sale_tolerance == Decimal("0.01")
        assert loader.consistency_policy == ConsistencyPolicy.REJECT

    def test_loader_env_overrides(self, monkeypatch):
        """Test LOADER_* variables override defaults"""
        monkeypatch.setenv("LOADER_BATCH_SIZE", "25")
        monkeypatch.setenv("LOADER_CONSISTENCY_POLICY", "recompute")

        loader = LoaderSettings()

        assert loader.batch_size == 25
        assert loader.consistency_policy == ConsistencyPolicy.RECOMPUTE

    def test_batch_size_must_be_positive(self, monkeypatch):
        """Test a zero batch size is rejected"""
        monkeypatch.setenv("LOADER_BATCH_SIZE", "0")

        with pytest.raises(PydanticValidationError):
            LoaderSettings()

    def test_database_url_override(self, monkeypatch):
        """Test DATABASE_URL wins over the POSTGRES_* parts"""
        monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///local.db")

        assert DatabaseSettings().async_url == "sqlite+aiosqlite:///local.db"

    def test_postgres_url(self, monkeypatch):
        """Test the asyncpg URL built from POSTGRES_* parts"""
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.delenv("POSTGRES_PORT", raising=False)
        monkeypatch.delenv("POSTGRES_DB", raising=False)
        monkeypatch.setenv("POSTGRES_HOST", "db")
        monkeypatch.setenv("POSTGRES_USER", "loader")
        monkeypatch.setenv("POSTGRES_PASSWORD", "pw")

        url = DatabaseSettings().async_url

        assert url == "postgresql+asyncpg://loader:pw@db:5432/sales_warehouse"
