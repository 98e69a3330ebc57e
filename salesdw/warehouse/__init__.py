"""
Warehouse Core Module
"""
from .dates import DateAttributes, derive
from .dimensions import DimensionResolver, DimensionType
from .facts import FactWriter, WriteOutcome, compute_total_sale
from .records import ResolvedRecord, TransactionRecord

__all__ = [
    "DateAttributes",
    "derive",
    "DimensionResolver",
    "DimensionType",
    "FactWriter",
    "WriteOutcome",
    "compute_total_sale",
    "ResolvedRecord",
    "TransactionRecord",
]
