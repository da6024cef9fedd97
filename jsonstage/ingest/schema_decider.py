"""Column type selection from accumulated field statistics."""

from typing import Dict, List

from jsonstage.catalog.tables import ColumnSchema, ColumnType, TableSchema
from jsonstage.common.logging_config import get_stage_logger
from jsonstage.ingest.errors import SchemaInferenceError
from jsonstage.ingest.naming import decode_camel_case
from jsonstage.ingest.schema_analyzer import Counts, ID_FIELD

logger = get_stage_logger(__name__)

# Columns every loading table has besides the inferred ones
RESERVED_COLUMNS = ("data", "tenant_id")


def select_column_type(field_name: str, counts: Counts) -> ColumnType:
    """
    Select the column type of one field.

    Rules, applied in order:
      1. the id field is always ColumnType.ID
      2. values of more than one kind (boolean, number, string) are an
         error, as are objects or arrays next to booleans or numbers
      3. no typed value at all (only nulls or nested values) -> VARCHAR
      4. booleans -> BOOLEAN
      5. numbers -> NUMERIC if any was floating point, else BIGINT
      6. strings -> TIMESTAMPTZ if every one looks like a timestamp and no
         object or array was seen, else VARCHAR (nested values as JSON text)

    Raises:
        SchemaInferenceError: if the field mixes value kinds
    """
    if field_name == ID_FIELD:
        return ColumnType.ID

    kinds = [kind for kind, n in (("boolean", counts.boolean),
                                  ("number", counts.number),
                                  ("string", counts.string)) if n > 0]
    if len(kinds) > 1 or (counts.nested and kinds and kinds[0] != "string"):
        kinds += [k for k in ("object", "array") if getattr(counts, k) > 0]
        raise SchemaInferenceError(
            f"Inconsistent data types in field \"{field_name}\": "
            + ", ".join(f"{k}={getattr(counts, k)}" for k in kinds))
    if not kinds:
        return ColumnType.VARCHAR

    kind = kinds[0]
    if kind == "boolean":
        return ColumnType.BOOLEAN
    if kind == "number":
        return ColumnType.NUMERIC if counts.floating > 0 else ColumnType.BIGINT
    if counts.date_time == counts.string and not counts.nested:
        return ColumnType.TIMESTAMPTZ
    return ColumnType.VARCHAR


class SchemaInferencer:
    """Builds the column list of a table from its field statistics."""

    def infer(self, table: TableSchema,
              field_stats: Dict[str, Counts]) -> List[ColumnSchema]:
        """
        Append one ColumnSchema per observed field to table.columns.

        The identifier column comes first, the other fields follow in
        order of their source names, so the result depends only on the
        statistics and not on the order records or fields were seen.

        Raises:
            SchemaInferenceError: if a field cannot be typed or two fields
                map to the same column name
        """
        columns: List[ColumnSchema] = []
        seen: Dict[str, str] = {name: "(reserved)" for name in RESERVED_COLUMNS}
        ordered = sorted(field_stats, key=lambda f: (f != ID_FIELD, f))

        for field_name in ordered:
            try:
                column_type = select_column_type(field_name, field_stats[field_name])
            except SchemaInferenceError as e:
                raise SchemaInferenceError(
                    f"{table.table_name} ({table.source_path}): {e}") from e

            column_name = decode_camel_case(field_name)
            if column_name in seen:
                raise SchemaInferenceError(
                    f"{table.table_name}: fields \"{seen[column_name]}\" and "
                    f"\"{field_name}\" both map to column \"{column_name}\"")
            seen[column_name] = field_name

            logger.detail(f"Column: {column_name} {column_type.sql_type}",
                          table=table.table_name, field=field_name)
            columns.append(ColumnSchema(column_name=column_name,
                                        source_column_name=field_name,
                                        column_type=column_type))

        table.columns.extend(columns)
        return columns
