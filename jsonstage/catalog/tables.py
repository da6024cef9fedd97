"""
Catalog of source tables and their column schemas.

A TableSchema names one interface of the source service. Columns are
empty in the catalog and are filled in by schema inference during the
first staging pass.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List


class ColumnType(str, Enum):
    """Closed set of column types a staged field can take."""
    ID = "id"
    BOOLEAN = "boolean"
    BIGINT = "bigint"
    NUMERIC = "numeric"
    TIMESTAMPTZ = "timestamptz"
    VARCHAR = "varchar"

    @property
    def sql_type(self) -> str:
        return _SQL_TYPES[self]


_SQL_TYPES = {
    ColumnType.ID: "VARCHAR(36)",
    ColumnType.BOOLEAN: "BOOLEAN",
    ColumnType.BIGINT: "BIGINT",
    ColumnType.NUMERIC: "DOUBLE PRECISION",
    ColumnType.TIMESTAMPTZ: "TIMESTAMPTZ",
    ColumnType.VARCHAR: "VARCHAR(65535)",
}


@dataclass
class ColumnSchema:
    column_name: str
    source_column_name: str
    column_type: ColumnType


@dataclass
class TableSchema:
    """A source interface staged into one table."""
    table_name: str
    source_path: str
    module_name: str
    skip: bool = False
    columns: List[ColumnSchema] = field(default_factory=list)

    @property
    def id_column(self):
        for column in self.columns:
            if column.column_type == ColumnType.ID:
                return column
        return None


# (table name, source path, module)
DEFAULT_TABLES = [
    ("circulation_cancellation_reasons", "/cancellation-reason-storage/cancellation-reasons", "mod-circulation-storage"),
    ("circulation_fixed_due_date_schedules", "/fixed-due-date-schedule-storage/fixed-due-date-schedules", "mod-circulation-storage"),
    ("circulation_loan_policies", "/loan-policy-storage/loan-policies", "mod-circulation-storage"),
    ("circulation_loans", "/loan-storage/loans", "mod-circulation-storage"),
    ("circulation_requests", "/request-storage/requests", "mod-circulation-storage"),
    ("finance_funds", "/finance-storage/funds", "mod-finance-storage"),
    ("finance_ledgers", "/finance-storage/ledgers", "mod-finance-storage"),
    ("inventory_holdings", "/holdings-storage/holdings", "mod-inventory-storage"),
    ("inventory_instances", "/instance-storage/instances", "mod-inventory-storage"),
    ("inventory_items", "/item-storage/items", "mod-inventory-storage"),
    ("inventory_locations", "/locations", "mod-inventory-storage"),
    ("inventory_material_types", "/material-types", "mod-inventory-storage"),
    ("po_purchase_orders", "/orders-storage/purchase-orders", "mod-orders-storage"),
    ("erm_agreements", "/erm/sas", "mod-agreements"),
    ("user_groups", "/groups", "mod-users"),
    ("user_users", "/users", "mod-users"),
]


def make_default_catalog() -> List[TableSchema]:
    """Return a fresh list of TableSchema for one load run."""
    return [
        TableSchema(table_name=name, source_path=path, module_name=module)
        for name, path, module in DEFAULT_TABLES
    ]
