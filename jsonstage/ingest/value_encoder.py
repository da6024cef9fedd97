"""
SQL Value Encoder.

Turns the fields of a canonical record into the SQL literals of one
row tuple, following the column types of the loading table. Values the
backend cannot hold are replaced (NULL, or 0 for out-of-range numbers)
and reported as warnings rather than failing the load.
"""

import json
from typing import Any, Dict, List, Optional

from jsonstage.catalog.tables import ColumnSchema, ColumnType, TableSchema
from jsonstage.common.logging_config import get_stage_logger
from jsonstage.common.metrics import value_substitutions_total
from jsonstage.config.settings import Settings, get_settings
from jsonstage.ingest.ddl_generator import Dialect
from jsonstage.ingest.errors import StagingError
from jsonstage.ingest.schema_analyzer import ID_FIELD

logger = get_stage_logger(__name__)

NULL = "NULL"


class ValueEncoder:
    """
    Encodes record values for one table.

    Args:
        table: Table whose columns drive the encoding
        dialect: Backend dialect used for string literals
        settings: Length and range limits, tenant id
    """

    def __init__(self, table: TableSchema, dialect: Dialect,
                 settings: Settings = None):
        self.table = table
        self.dialect = dialect
        self.settings = settings or get_settings()

    def _substituted(self, reason: str, message: str, **context) -> None:
        logger.warning(message, table=self.table.table_name, **context)
        value_substitutions_total.labels(
            table=self.table.table_name, reason=reason).inc()

    def encode_string(self, column: ColumnSchema, value: Any,
                      record_id: str) -> str:
        if not isinstance(value, str):
            value = json.dumps(value, ensure_ascii=False, separators=(",", ":"))
        literal = self.dialect.encode_string(value)
        if len(literal) >= self.settings.max_string_length:
            self._substituted(
                "string_length",
                "String length exceeds database limit:\n"
                f"    Table: {self.table.table_name}\n"
                f"    Column: {column.column_name}\n"
                f"    ID: {record_id}\n"
                "    Action: Value set to NULL",
                column=column.column_name, id=record_id,
                length=len(literal))
            return NULL
        return literal

    def encode_numeric(self, column: ColumnSchema, value: Any,
                       record_id: str) -> str:
        number = float(value)
        if abs(number) > self.settings.numeric_limit:
            self._substituted(
                "numeric_range",
                "Numeric value exceeds 10^10:\n"
                f"    Table: {self.table.table_name}\n"
                f"    Column: {column.column_name}\n"
                f"    ID: {record_id}\n"
                f"    Value: {number!r}\n"
                "    Action: Value set to 0",
                column=column.column_name, id=record_id, value=number)
            return "0"
        return repr(number)

    def encode_value(self, column: ColumnSchema, value: Any,
                     record_id: str) -> str:
        """
        Encode one field value as a SQL literal for its column.

        Args:
            column: Column the value is stored in
            value: JSON value, or None when absent or null
            record_id: Identifier of the record, for warnings

        Returns:
            SQL literal text
        """
        if value is None:
            return NULL
        if column.column_type == ColumnType.BIGINT:
            return str(int(value))
        if column.column_type == ColumnType.BOOLEAN:
            return "TRUE" if value else "FALSE"
        if column.column_type == ColumnType.NUMERIC:
            return self.encode_numeric(column, value, record_id)
        return self.encode_string(column, value, record_id)

    def encode_document(self, record: Dict[str, Any], record_id: str) -> str:
        """
        Encode the whole record for the data column.

        Pretty-printed JSON is preferred; compact JSON is used when the
        pretty form is over the length limit, and NULL when both are.
        """
        limit = self.settings.max_string_length
        data = self.dialect.encode_string(
            json.dumps(record, ensure_ascii=False, indent=4))
        if len(data) > limit:
            data = self.dialect.encode_string(
                json.dumps(record, ensure_ascii=False, separators=(",", ":")))
            if len(data) > limit:
                self._substituted(
                    "document_size",
                    "JSON object size exceeds database limit:\n"
                    f"    Table: {self.table.table_name}\n"
                    f"    ID: {record_id}\n"
                    "    Action: Value for column \"data\" set to NULL",
                    id=record_id, length=len(data))
                return NULL
        return data

    def encode_row(self, record: Dict[str, Any]) -> str:
        """
        Encode a canonical record as a row tuple.

        The tuple lists the id, each non-id column in table order, the
        JSON document and the tenant id, matching the loading table.

        Raises:
            StagingError: if the record has no id
        """
        record_id: Optional[Any] = record.get(ID_FIELD)
        if record_id is None:
            raise StagingError(
                f"{self.table.table_name}: record without \"{ID_FIELD}\" field")
        record_id = str(record_id)

        values: List[str] = [self.dialect.encode_string(record_id)]
        for column in self.table.columns:
            if column.column_type == ColumnType.ID:
                continue
            values.append(self.encode_value(
                column, record.get(column.source_column_name), record_id))
        values.append(self.encode_document(record, record_id))
        values.append(str(self.settings.tenant_id))
        return "(" + ",".join(values) + ")"
