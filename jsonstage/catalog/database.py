"""
Database connection and SQL execution.

Provides the database engine, a transaction scope and the SqlExecutor
used by the staging engine to send SQL text to the backend.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from functools import lru_cache
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine

from jsonstage.config.settings import get_settings
from jsonstage.common.metrics import track_sql_execution


class SqlExecutor(ABC):
    """Executes SQL text inside a transaction owned by the caller."""

    dialect_name: str = ""

    @abstractmethod
    def execute(self, sql: str) -> None:
        pass


class ConnectionExecutor(SqlExecutor):
    """SqlExecutor bound to an open SQLAlchemy connection."""

    def __init__(self, conn: Connection):
        self.conn = conn
        self.dialect_name = conn.dialect.name

    @track_sql_execution
    def execute(self, sql: str) -> None:
        # Statements carry literal values only; no_parameters keeps the
        # driver from interpreting % and : inside the data.
        self.conn.exec_driver_sql(
            sql, execution_options={"no_parameters": True})


@lru_cache()
def get_engine() -> Engine:
    """Create the database engine from settings (once per process)."""
    settings = get_settings()
    return create_engine(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
        echo=settings.debug,
        future=True,
    )


@contextmanager
def transaction(engine: Engine = None) -> Generator[ConnectionExecutor, None, None]:
    """
    Context manager for one staging transaction.

    Commits when the block completes and rolls back when it raises.

    Usage:
        with transaction() as executor:
            TableStager(table, executor, ...).stage()
    """
    engine = engine or get_engine()
    with engine.begin() as conn:
        yield ConnectionExecutor(conn)


def check_database_connection(engine: Engine = None) -> bool:
    """
    Check if database connection is healthy.

    Returns:
        True if connection is successful, False otherwise
    """
    engine = engine or get_engine()
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
