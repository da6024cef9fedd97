"""
Ingest module for staging extracted JSON pages.

Provides streaming page reading, type statistics, schema inference,
value encoding, batched inserts and table provisioning.
"""

from jsonstage.ingest.errors import (
    StagingError,
    PageFormatError,
    SchemaInferenceError,
)
from jsonstage.ingest.schema_analyzer import (
    Counts,
    JsonType,
    StatisticsCollector,
    canonicalize,
    detect_json_type,
    process_record,
)
from jsonstage.ingest.schema_decider import SchemaInferencer, select_column_type
from jsonstage.ingest.anonymizer import AnonymizationPolicy, possible_personal_data
from jsonstage.ingest.json_processor import (
    PageEvent,
    RecordReconstructor,
    iter_page_events,
    iter_page_records,
)
from jsonstage.ingest.value_encoder import ValueEncoder
from jsonstage.ingest.insert_writer import BatchInsertWriter
from jsonstage.ingest.ddl_generator import (
    Dialect,
    PostgresDialect,
    RedshiftDialect,
    TableProvisioner,
    get_dialect,
)
from jsonstage.ingest.orchestrator import (
    StageResult,
    StageState,
    TableStager,
    stage_tables,
)

__all__ = [  # ruff: noqa: RUF022
    # Errors
    "StagingError",
    "PageFormatError",
    "SchemaInferenceError",
    # Statistics
    "Counts",
    "JsonType",
    "StatisticsCollector",
    "canonicalize",
    "detect_json_type",
    "process_record",
    # Schema Inference
    "SchemaInferencer",
    "select_column_type",
    # Anonymization
    "AnonymizationPolicy",
    "possible_personal_data",
    # Page Reading
    "PageEvent",
    "RecordReconstructor",
    "iter_page_events",
    "iter_page_records",
    # Loading
    "ValueEncoder",
    "BatchInsertWriter",
    # DDL Generation
    "Dialect",
    "PostgresDialect",
    "RedshiftDialect",
    "TableProvisioner",
    "get_dialect",
    # Staging
    "StageResult",
    "StageState",
    "TableStager",
    "stage_tables",
]
