"""
Database Module
"""
from .connection import (
    close_database,
    create_schema,
    create_session_factory,
    get_session_factory,
    init_database,
    unit_of_work,
)
from .models import Base
from .operations import insert_if_absent

__all__ = [
    "init_database",
    "close_database",
    "create_schema",
    "create_session_factory",
    "get_session_factory",
    "unit_of_work",
    "insert_if_absent",
    "Base",
]
