"""Database configuration and utilities."""

from .session import Base, create_tables, drop_tables, make_engine, make_session_factory
from .unit_of_work import Storage

__all__ = [
    "Base",
    "Storage",
    "create_tables",
    "drop_tables",
    "make_engine",
    "make_session_factory",
]
