"""
DDL Generator for loading tables.

Generates and executes CREATE TABLE, COMMENT, GRANT and index
statements for a loading table from its inferred column schema, with
the few backend differences isolated in a Dialect.
"""

from abc import ABC, abstractmethod
from typing import List

from jsonstage.catalog.database import SqlExecutor
from jsonstage.catalog.tables import ColumnType, TableSchema
from jsonstage.common.logging_config import get_stage_logger
from jsonstage.config.settings import Settings, get_settings
from jsonstage.ingest.naming import loading_table_name

logger = get_stage_logger(__name__)

DATA_COLUMN = "data"
TENANT_COLUMN = "tenant_id"


class Dialect(ABC):
    """Backend-specific pieces of the SQL the stager emits."""

    name: str = ""
    json_type: str = ""
    supports_secondary_indexes: bool = True

    @abstractmethod
    def distribution_clause(self, dist_key: str, sort_key: str) -> str:
        """Text appended after the column list of CREATE TABLE."""

    @abstractmethod
    def encode_string(self, value: str) -> str:
        """Quote and escape value as a string literal."""


class PostgresDialect(Dialect):
    name = "postgresql"
    json_type = "JSON"
    supports_secondary_indexes = True

    def distribution_clause(self, dist_key: str, sort_key: str) -> str:
        return ""

    def encode_string(self, value: str) -> str:
        escaped = value.replace("\\", "\\\\").replace("'", "''")
        return f"E'{escaped}'"


class RedshiftDialect(Dialect):
    name = "redshift"
    json_type = "VARCHAR(65535)"
    supports_secondary_indexes = False

    def distribution_clause(self, dist_key: str, sort_key: str) -> str:
        return f" DISTKEY({dist_key}) COMPOUND SORTKEY({sort_key})"

    def encode_string(self, value: str) -> str:
        escaped = value.replace("\\", "\\\\").replace("'", "''")
        return f"'{escaped}'"


_DIALECTS = {
    "postgresql": PostgresDialect,
    "postgres": PostgresDialect,
    "redshift": RedshiftDialect,
}


def get_dialect(name: str) -> Dialect:
    """
    Resolve a dialect from a SQLAlchemy dialect name.

    Raises:
        ValueError: if the backend is not supported
    """
    try:
        return _DIALECTS[name.lower()]()
    except KeyError:
        raise ValueError(f"Unsupported database dialect: {name}") from None


class TableProvisioner:
    """
    Creates and indexes loading tables.

    Args:
        executor: Where SQL is sent, inside the caller's transaction
        dialect: Backend dialect
        settings: Role names, comment options and loading table naming
    """

    def __init__(self, executor: SqlExecutor, dialect: Dialect,
                 settings: Settings = None):
        self.executor = executor
        self.dialect = dialect
        self.settings = settings or get_settings()

    def loading_table(self, table: TableSchema) -> str:
        return loading_table_name(table.table_name,
                                  self.settings.loading_table_prefix,
                                  self.settings.loading_table_suffix)

    def _exec(self, sql: str) -> None:
        logger.detail(sql)
        self.executor.execute(sql)

    def create_table_sql(self, table: TableSchema) -> str:
        """
        Generate the CREATE TABLE statement.

        The id column is always first, followed by the inferred columns,
        the JSON document column and the tenant column.
        """
        columns = ["    id VARCHAR(36) NOT NULL"]
        for column in table.columns:
            if column.column_type == ColumnType.ID:
                continue
            columns.append(
                f"    \"{column.column_name}\" {column.column_type.sql_type}")
        columns.append(f"    {DATA_COLUMN} {self.dialect.json_type}")
        columns.append(f"    {TENANT_COLUMN} SMALLINT NOT NULL")

        return (
            f"CREATE TABLE {self.loading_table(table)} (\n"
            + ",\n".join(columns)
            + "\n)" + self.dialect.distribution_clause("id", "id") + ";"
        )

    def comment_sql(self, table: TableSchema) -> str:
        url = self.settings.api_reference_url + table.module_name
        text = f"{table.source_path} in {table.module_name}: {url}"
        return (
            f"COMMENT ON TABLE {self.loading_table(table)}\n"
            f"    IS {self.dialect.encode_string(text)};"
        )

    def grant_sql(self, table: TableSchema) -> List[str]:
        return [
            f"GRANT SELECT ON {self.loading_table(table)}\n    TO {role};"
            for role in (self.settings.ldpconfig_user, self.settings.ldp_user)
        ]

    def create_loading_table(self, table: TableSchema) -> None:
        """Create the loading table, set its comment and grant read access."""
        self._exec(self.create_table_sql(table))

        if table.module_name not in self.settings.comment_exempt_modules:
            logger.detail(f"Setting comment on table: {table.table_name}")
            self._exec(self.comment_sql(table))

        for sql in self.grant_sql(table):
            self._exec(sql)

    def index_sql(self, table: TableSchema) -> List[str]:
        """
        Generate the primary key and secondary index statements.

        A table without inferred columns only gets the primary key.
        Secondary indexes are left out on backends that lack them.
        """
        loading_table = self.loading_table(table)
        primary_key = f"ALTER TABLE {loading_table}\n    ADD PRIMARY KEY (id);"
        if not table.columns:
            return [primary_key]

        statements = []
        if table.id_column is None:
            statements.append(primary_key)
        for column in table.columns:
            if column.column_type == ColumnType.ID:
                statements.append(primary_key)
            elif (self.dialect.supports_secondary_indexes
                  and column.column_name != DATA_COLUMN):
                statements.append(
                    f"CREATE INDEX ON\n    {loading_table}\n"
                    f"    (\"{column.column_name}\");")
        return statements

    def index_loading_table(self, table: TableSchema) -> None:
        logger.trace(f"Creating indexes on table: {table.table_name}")
        for sql in self.index_sql(table):
            self._exec(sql)
