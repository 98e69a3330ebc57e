"""
Unit Tests - Transaction File Readers
"""
import json
import pytest

import polars as pl

from salesdw.ingestion.readers import FileFormat, read_frame, read_records


@pytest.fixture
def transactions_df(grid_records) -> pl.DataFrame:
    return pl.DataFrame(grid_records)


class TestFileFormat:
    """Tests for format inference"""

    @pytest.mark.parametrize("name,expected", [
        ("sales.csv", FileFormat.CSV),
        ("sales.JSON", FileFormat.JSON),
        ("sales.jsonl", FileFormat.JSONL),
        ("sales.ndjson", FileFormat.JSONL),
        ("sales.parquet", FileFormat.PARQUET),
    ])
    def test_from_path(self, name, expected):
        """Test the format is inferred from the file suffix"""
        assert FileFormat.from_path(name) == expected

    def test_unknown_suffix(self):
        """Test an unknown suffix is rejected"""
        with pytest.raises(ValueError, match="Cannot infer file format"):
            FileFormat.from_path("sales.xlsx")


class TestReadRecords:
    """Tests for reading transaction files"""

    def test_csv_values_are_text(self, tmp_path, transactions_df):
        """Test CSV columns are read as strings for record validation"""
        path = tmp_path / "sales.csv"
        transactions_df.write_csv(path)

        records = list(read_records(path))

        assert len(records) == 6
        assert records[0]["store_id"] == "S-1"
        assert records[0]["quantity"] == "1"
        assert records[0]["price"] == "10.00"

    def test_csv_delimiter(self, tmp_path, transactions_df):
        """Test a custom delimiter"""
        path = tmp_path / "sales.csv"
        transactions_df.write_csv(path, separator=";")

        records = list(read_records(path, delimiter=";"))

        assert records[5]["product_id"] == "P-3"

    def test_csv_null_values(self, tmp_path):
        """Test NULL markers become None"""
        path = tmp_path / "sales.csv"
        path.write_text("store_id,total_sale\nS-1,NULL\nS-2,\n")

        records = list(read_records(path))

        assert [r["total_sale"] for r in records] == [None, None]

    def test_jsonl(self, tmp_path, transactions_df):
        """Test JSON Lines input"""
        path = tmp_path / "sales.jsonl"
        transactions_df.write_ndjson(path)

        records = list(read_records(path))

        assert len(records) == 6
        assert records[3]["store_id"] == "S-2"

    def test_json(self, tmp_path, grid_records):
        """Test JSON array input"""
        path = tmp_path / "sales.json"
        path.write_text(json.dumps(grid_records))

        records = list(read_records(path, FileFormat.JSON))

        assert len(records) == 6

    def test_parquet(self, tmp_path, transactions_df):
        """Test Parquet input"""
        path = tmp_path / "sales.parquet"
        transactions_df.write_parquet(path)

        assert read_frame(path).height == 6

    def test_null_rows_dropped(self, tmp_path):
        """Test completely empty rows are skipped"""
        path = tmp_path / "sales.csv"
        path.write_text("store_id,store_name\nS-1,Downtown\n,\n")

        assert read_frame(path).height == 1

    def test_missing_file(self, tmp_path):
        """Test a missing file raises FileNotFoundError"""
        with pytest.raises(FileNotFoundError):
            read_frame(tmp_path / "missing.csv")
