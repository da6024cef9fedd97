# Staging run entry point

import logging
import sys

from jsonstage.config.settings import get_settings
from jsonstage.common.logging_config import setup_logging
from jsonstage.common.metrics import write_metrics
from jsonstage.catalog.database import check_database_connection, transaction
from jsonstage.catalog.tables import make_default_catalog
from jsonstage.ingest.errors import StagingError
from jsonstage.ingest.orchestrator import StageState, stage_tables

logger = logging.getLogger(__name__)


def run_stage() -> int:
    """Stage every catalog table found in the load directory."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.json_logs)

    if not check_database_connection():
        logger.error("Unable to connect to database")
        return 2

    logger.info(f"Staging tables from: {settings.load_dir}")
    try:
        results = stage_tables(make_default_catalog(), transaction, settings=settings)
    except StagingError as e:
        logger.error(f"Staging stopped: {e}")
        return 1
    finally:
        if settings.metrics_enabled and settings.metrics_file:
            write_metrics(settings.metrics_file)

    failed = [r for r in results if r.state == StageState.FAILED]
    for result in results:
        logger.info(
            f"{result.table_name}: {result.state.value}: "
            f"{result.records} records, {result.statements} statements")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(run_stage())
