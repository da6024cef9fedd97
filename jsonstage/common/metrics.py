"""
Prometheus metrics for monitoring staging runs.

Provides counters and histograms for tracking:
- Records parsed per pass
- Insert statements and rows sent to the database
- Values substituted because of backend limits
- Table outcomes and pass durations
"""

import time
from typing import Callable
from functools import wraps
from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    CollectorRegistry,
    write_to_textfile,
)

# Create a global registry
REGISTRY = CollectorRegistry()

# ========== Counters ==========

# Records reconstructed from page files
records_processed_total = Counter(
    "records_processed_total",
    "Total number of JSON records parsed from page files",
    ["table", "stage_pass"],  # analyze/load
    registry=REGISTRY,
)

# Insert statements executed
insert_statements_total = Counter(
    "insert_statements_total",
    "Total number of batched INSERT statements executed",
    ["table"],
    registry=REGISTRY,
)

# Rows written into loading tables
inserted_rows_total = Counter(
    "inserted_rows_total",
    "Total number of rows written into loading tables",
    ["table"],
    registry=REGISTRY,
)

# Values replaced by NULL or 0
value_substitutions_total = Counter(
    "value_substitutions_total",
    "Total number of values replaced because of database limits",
    ["table", "reason"],  # string_length/document_size/numeric_range
    registry=REGISTRY,
)

# Table outcomes
tables_staged_total = Counter(
    "tables_staged_total",
    "Total number of tables processed by the stager",
    ["status"],  # done/skipped/failed
    registry=REGISTRY,
)

# ========== Histograms ==========

# Pass duration
stage_pass_duration_seconds = Histogram(
    "stage_pass_duration_seconds",
    "Time to run one staging pass over all pages of a table",
    ["stage_pass"],  # analyze/load
    buckets=(0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0, 900.0),
    registry=REGISTRY,
)

# SQL execution duration
sql_execution_duration_seconds = Histogram(
    "sql_execution_duration_seconds",
    "SQL statement execution time",
    ["statement"],  # ddl/insert
    buckets=(0.001, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0),
    registry=REGISTRY,
)


# ========== Metric Decorators ==========

def track_sql_execution(func: Callable):
    """Decorator to time SQL execution, labelled by statement kind."""
    @wraps(func)
    def wrapper(self, sql: str, *args, **kwargs):
        start_time = time.time()
        try:
            return func(self, sql, *args, **kwargs)
        finally:
            kind = "insert" if sql.lstrip().upper().startswith("INSERT") else "ddl"
            sql_execution_duration_seconds.labels(
                statement=kind).observe(time.time() - start_time)

    return wrapper


def get_metrics() -> bytes:
    """
    Get current metrics in Prometheus format.

    Returns:
        Metrics as bytes
    """
    return generate_latest(REGISTRY)


def write_metrics(path: str) -> None:
    """Write current metrics to a file for the node exporter textfile collector."""
    write_to_textfile(path, REGISTRY)
