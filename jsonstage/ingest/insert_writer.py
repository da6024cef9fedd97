"""Batched INSERT statements for a loading table."""

from typing import List

from jsonstage.catalog.database import SqlExecutor
from jsonstage.common.logging_config import get_stage_logger
from jsonstage.common.metrics import insert_statements_total, inserted_rows_total

logger = get_stage_logger(__name__)

DEFAULT_FLUSH_THRESHOLD = 16_500_000


class BatchInsertWriter:
    """
    Accumulates row tuples into multi-row INSERT statements.

    A statement is executed once its text grows past the threshold, so
    no statement holds more than one tuple beyond it, and by finish()
    for whatever is left.

    Usage:
        writer = BatchInsertWriter(executor, "user_users", "zzz___user_users___")
        writer.begin()
        for row in rows:
            writer.write(row)
        writer.finish()
    """

    def __init__(self, executor: SqlExecutor, table_name: str,
                 loading_table: str, threshold: int = DEFAULT_FLUSH_THRESHOLD):
        self.executor = executor
        self.table_name = table_name
        self.loading_table = loading_table
        self.threshold = threshold
        self._parts: List[str] = []
        self._size = 0
        self.pending = 0
        self.statements = 0
        self.rows = 0

    @property
    def size(self) -> int:
        """Approximate length of the pending statement text."""
        return self._size

    def begin(self) -> None:
        prefix = f"INSERT INTO {self.loading_table} VALUES "
        self._parts = [prefix]
        self._size = len(prefix)
        self.pending = 0

    def write(self, row: str) -> None:
        """Append one encoded tuple, flushing first if the buffer is full."""
        if self._size > self.threshold:
            self.flush()
            self.begin()
        if self.pending > 0:
            self._parts.append(",")
            self._size += 1
        self._parts.append(row)
        self._size += len(row)
        self.pending += 1

    def flush(self) -> None:
        self._parts.append(";\n")
        logger.detail(f"Loading data for table: {self.table_name}",
                      rows=self.pending, size=self._size)
        self.executor.execute("".join(self._parts))
        self.statements += 1
        self.rows += self.pending
        insert_statements_total.labels(table=self.table_name).inc()
        inserted_rows_total.labels(table=self.table_name).inc(self.pending)
        self._parts = []
        self._size = 0
        self.pending = 0

    def finish(self) -> None:
        """Execute the pending statement; does nothing if no tuples are pending."""
        if self.pending > 0:
            self.flush()
        self._parts = []
        self._size = 0
