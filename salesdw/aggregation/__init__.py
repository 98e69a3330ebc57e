"""
Aggregate View Module
"""
from .maintainer import (
    ALL,
    AggregateMaintainer,
    AggregateMode,
    AggregateRow,
    AggregateSnapshot,
    ViewState,
    build_aggregate,
)

__all__ = [
    "ALL",
    "AggregateMaintainer",
    "AggregateMode",
    "AggregateRow",
    "AggregateSnapshot",
    "ViewState",
    "build_aggregate",
]
