"""Two-pass staging of extracted page files into loading tables."""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, ContextManager, Iterable, List, Optional

from jsonstage.catalog.database import SqlExecutor
from jsonstage.catalog.tables import ColumnSchema, TableSchema
from jsonstage.common.logging_config import (
    PerformanceTracker,
    get_stage_logger,
    set_current_table,
)
from jsonstage.common.metrics import (
    records_processed_total,
    stage_pass_duration_seconds,
    tables_staged_total,
)
from jsonstage.config.settings import Settings, get_settings
from jsonstage.ingest.anonymizer import AnonymizationPolicy
from jsonstage.ingest.ddl_generator import Dialect, TableProvisioner, get_dialect
from jsonstage.ingest.errors import StagingError
from jsonstage.ingest.insert_writer import BatchInsertWriter
from jsonstage.ingest.json_processor import PageEvent, iter_page_events
from jsonstage.ingest.naming import (
    count_file_path,
    page_file_path,
    supplementary_file_path,
)
from jsonstage.ingest.schema_analyzer import StatisticsCollector, process_record
from jsonstage.ingest.schema_decider import SchemaInferencer
from jsonstage.ingest.value_encoder import ValueEncoder

logger = get_stage_logger(__name__)

ANALYZE = "analyze"
LOAD = "load"


class StageState(str, Enum):
    AWAIT_PAGE_COUNT = "await_page_count"
    PASS1_ANALYZE = "pass1_analyze"
    PASS1_BUILD_SCHEMA = "pass1_build_schema"
    PASS1_CREATE_TABLE = "pass1_create_table"
    PASS2_LOAD = "pass2_load"
    PASS2_INDEX = "pass2_index"
    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class StageResult:
    """Outcome of staging one table."""
    table_name: str
    state: StageState
    page_count: int = 0
    records: int = 0
    statements: int = 0
    columns: List[ColumnSchema] = field(default_factory=list)
    error: Optional[str] = None


def read_page_count(load_dir: str, table_name: str) -> int:
    """
    Read the number of pages extracted for a table.

    Returns 0, with a warning, when the count file does not exist.

    Raises:
        StagingError: if the count file cannot be read as a number
    """
    filename = count_file_path(load_dir, table_name)
    if not os.path.exists(filename):
        logger.warning(f"File not found: {filename}", table=table_name)
        return 0
    try:
        with open(filename, "r") as f:
            return int(f.read().split()[0])
    except (OSError, ValueError, IndexError) as e:
        raise StagingError(f"Unable to read page count from {filename}") from e


class TableStager:
    """
    Stages one table from its page files.

    Pass 1 reads every page to collect field statistics, infers the
    column schema and creates the loading table. Pass 2 reads every page
    again and inserts the canonical (and, if enabled, anonymized)
    records, then indexes the table. The stager owns the statistics,
    the insert buffer and the schema for the duration of stage().

    Args:
        table: Table to stage; its columns are filled in by pass 1
        executor: SQL executor bound to the caller's transaction
        load_dir: Directory holding the extracted page files
        dialect: Backend dialect (derived from the executor if omitted)
        settings: Staging settings
        policy: Anonymization policy
    """

    def __init__(
        self,
        table: TableSchema,
        executor: SqlExecutor,
        load_dir: str,
        dialect: Optional[Dialect] = None,
        settings: Optional[Settings] = None,
        policy: Optional[AnonymizationPolicy] = None,
    ):
        self.table = table
        self.executor = executor
        self.load_dir = load_dir
        self.settings = settings or get_settings()
        self.dialect = dialect or get_dialect(
            self.settings.database_dialect or executor.dialect_name)
        self.policy = policy or AnonymizationPolicy(self.settings.anonymize_tables)
        self.provisioner = TableProvisioner(executor, self.dialect, self.settings)
        self.state = StageState.AWAIT_PAGE_COUNT
        self.page_count = 0
        self.records = 0
        self.statements = 0

    def _transition(self, state: StageState) -> None:
        logger.debug(f"Staging state: {self.state.value} -> {state.value}",
                     table=self.table.table_name)
        self.state = state

    def page_files(self) -> List[str]:
        """Page files in processing order, including the test file if any."""
        paths = [page_file_path(self.load_dir, self.table.table_name, page)
                 for page in range(self.page_count)]
        test_path = supplementary_file_path(self.load_dir, self.table.table_name)
        if os.path.exists(test_path):
            paths.append(test_path)
        return paths

    def _log_page(self, stage_pass: str, path: str) -> None:
        logger.detail(
            f"Staging: {self.table.table_name}: {stage_pass}: "
            f"page: {os.path.basename(path)}",
            page=path)

    def analyze(self) -> StatisticsCollector:
        """Pass 1: collect field statistics over every record."""
        collector = StatisticsCollector()
        for path in self.page_files():
            self._log_page(ANALYZE, path)
            for kind, record in iter_page_events(path):
                if kind == PageEvent.RECORD:
                    collector.observe(record)
        records_processed_total.labels(
            table=self.table.table_name, stage_pass=ANALYZE).inc(
                collector.records_observed)
        return collector

    def load(self) -> int:
        """Pass 2: insert every record; returns the number of records."""
        encoder = ValueEncoder(self.table, self.dialect, self.settings)
        anonymizer = self.policy.for_table(self.table.table_name)
        count = 0
        for path in self.page_files():
            self._log_page(LOAD, path)
            writer = BatchInsertWriter(
                self.executor, self.table.table_name,
                self.provisioner.loading_table(self.table),
                self.settings.insert_flush_threshold)
            for kind, record in iter_page_events(path):
                if kind == PageEvent.ARRAY_START:
                    writer.begin()
                elif kind == PageEvent.RECORD:
                    record = process_record(record, anonymizer=anonymizer)
                    writer.write(encoder.encode_row(record))
                    count += 1
                else:
                    writer.finish()
            self.statements += writer.statements
        records_processed_total.labels(
            table=self.table.table_name, stage_pass=LOAD).inc(count)
        return count

    def stage(self) -> StageResult:
        """
        Run the staging state machine for the table.

        Returns:
            StageResult with state DONE or SKIPPED

        Raises:
            StagingError: on malformed pages or unresolvable schemas; the
                stager is left in state FAILED
        """
        name = self.table.table_name
        set_current_table(name)
        try:
            self.page_count = read_page_count(self.load_dir, name)
            logger.detail(f"Staging: {name}: page count: {self.page_count}")
            if self.page_count == 0:
                self.table.skip = True
                self._transition(StageState.SKIPPED)
                tables_staged_total.labels(status="skipped").inc()
                return self.result()

            self._transition(StageState.PASS1_ANALYZE)
            with PerformanceTracker(ANALYZE, logger.logger, table=name) as t:
                collector = self.analyze()
            stage_pass_duration_seconds.labels(stage_pass=ANALYZE).observe(t.duration)
            collector.log_summary(name)

            self._transition(StageState.PASS1_BUILD_SCHEMA)
            SchemaInferencer().infer(self.table, collector.field_stats)

            self._transition(StageState.PASS1_CREATE_TABLE)
            self.provisioner.create_loading_table(self.table)

            self._transition(StageState.PASS2_LOAD)
            with PerformanceTracker(LOAD, logger.logger, table=name) as t:
                self.records = self.load()
            stage_pass_duration_seconds.labels(stage_pass=LOAD).observe(t.duration)

            self._transition(StageState.PASS2_INDEX)
            self.provisioner.index_loading_table(self.table)

            self._transition(StageState.DONE)
            tables_staged_total.labels(status="done").inc()
            return self.result()
        except StagingError:
            self._transition(StageState.FAILED)
            tables_staged_total.labels(status="failed").inc()
            raise
        finally:
            set_current_table(None)

    def result(self, error: Optional[str] = None) -> StageResult:
        return StageResult(
            table_name=self.table.table_name,
            state=self.state,
            page_count=self.page_count,
            records=self.records,
            statements=self.statements,
            columns=list(self.table.columns),
            error=error,
        )


def stage_tables(
    tables: Iterable[TableSchema],
    transaction: Callable[[], ContextManager[SqlExecutor]],
    load_dir: Optional[str] = None,
    settings: Optional[Settings] = None,
    policy: Optional[AnonymizationPolicy] = None,
) -> List[StageResult]:
    """
    Stage each table in its own transaction.

    Tables already marked skip (no data found upstream) are passed over.
    A table that fails is rolled back; the run then continues with the
    next table, or stops by re-raising when continue_on_table_failure
    is off.

    Args:
        tables: Tables to stage, usually make_default_catalog()
        transaction: Factory of transaction scopes yielding an executor
        load_dir: Directory of page files (defaults to settings.load_dir)
        settings: Staging settings
        policy: Anonymization policy

    Returns:
        One StageResult per table that was not skipped upstream
    """
    settings = settings or get_settings()
    load_dir = load_dir or settings.load_dir
    results = []

    for table in tables:
        if table.skip:
            continue
        logger.info(f"Staging table: {table.table_name}")
        stager = None
        try:
            with transaction() as executor:
                stager = TableStager(table, executor, load_dir,
                                     settings=settings, policy=policy)
                results.append(stager.stage())
        except StagingError as e:
            logger.error(f"Staging failed: {table.table_name}: {e}",
                         table=table.table_name, error=str(e))
            if not settings.continue_on_table_failure:
                raise
            results.append(StageResult(
                table_name=table.table_name, state=StageState.FAILED,
                page_count=stager.page_count if stager else 0,
                error=str(e)))
    return results
