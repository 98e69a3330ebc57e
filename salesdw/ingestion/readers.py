"""
Transaction File Readers

Reads CSV, JSON, JSON Lines and Parquet transaction files with Polars and
yields one dict per row. Values are left as read; validation happens per
record inside the batch that loads it.
"""

from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

import polars as pl
import structlog

logger = structlog.get_logger(__name__)

NULL_VALUES: List[str] = ["", "NULL", "null", "None", "NA", "N/A"]


class FileFormat(str, Enum):
    """Supported file formats"""
    CSV = "csv"
    JSON = "json"
    JSONL = "jsonl"
    PARQUET = "parquet"

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "FileFormat":
        suffix = Path(path).suffix.lower().lstrip(".")
        if suffix == "ndjson":
            return cls.JSONL
        try:
            return cls(suffix)
        except ValueError:
            raise ValueError(f"Cannot infer file format from '{path}'") from None


def _read_csv(path: Path, delimiter: str) -> pl.DataFrame:
    # Every column as text: numbers and dates are parsed by record validation
    return pl.read_csv(
        path,
        separator=delimiter,
        null_values=NULL_VALUES,
        infer_schema_length=0,
    )


def read_frame(
    path: Union[str, Path],
    file_format: Optional[FileFormat] = None,
    delimiter: str = ",",
) -> pl.DataFrame:
    """Read a transaction file into a DataFrame"""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    file_format = FileFormat(file_format) if file_format else FileFormat.from_path(path)
    readers = {
        FileFormat.CSV: lambda: _read_csv(path, delimiter),
        FileFormat.JSON: lambda: pl.read_json(path),
        FileFormat.JSONL: lambda: pl.read_ndjson(path),
        FileFormat.PARQUET: lambda: pl.read_parquet(path),
    }
    df = readers[file_format]()

    # Remove completely null rows
    df = df.filter(~pl.all_horizontal(pl.all().is_null()))

    logger.info(
        "Read transaction file",
        file=str(path),
        format=file_format.value,
        rows=df.height,
    )
    return df


def read_records(
    path: Union[str, Path],
    file_format: Optional[FileFormat] = None,
    delimiter: str = ",",
) -> Iterator[Dict[str, Any]]:
    """Rows of a transaction file as dicts; the file is read eagerly"""
    df = read_frame(path, file_format, delimiter)
    return df.iter_rows(named=True)
