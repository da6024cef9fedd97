"""
Integration tests for the two-pass staging of page files.

SQL is captured by a recording executor, so no database is required.
"""

import json
from contextlib import contextmanager

import pytest
from jsonstage.catalog.tables import ColumnType, TableSchema
from jsonstage.config.settings import Settings
from jsonstage.ingest.anonymizer import AnonymizationPolicy
from jsonstage.ingest.ddl_generator import RedshiftDialect
from jsonstage.ingest.errors import PageFormatError, SchemaInferenceError, StagingError
from jsonstage.ingest.orchestrator import (
    StageState,
    TableStager,
    read_page_count,
    stage_tables,
)

PAGES = [
    [{"id": "a1", "name": "Jane", "age": 30}],
    [{"id": "a2", "name": None, "age": 31}],
]


def users_table():
    return TableSchema("user_users", "/users", "mod-users")


def transaction_factory(executor_class, executors):
    @contextmanager
    def transaction():
        executor = executor_class()
        executors.append(executor)
        yield executor
    return transaction


class TestReadPageCount:

    def test_missing_file(self, tmp_path, caplog):
        assert read_page_count(str(tmp_path), "user_users") == 0
        assert "File not found" in caplog.text

    def test_count(self, tmp_path):
        (tmp_path / "user_users_count.txt").write_text("12\n")
        assert read_page_count(str(tmp_path), "user_users") == 12

    def test_unreadable_count(self, tmp_path):
        (tmp_path / "user_users_count.txt").write_text("many\n")
        with pytest.raises(StagingError):
            read_page_count(str(tmp_path), "user_users")


class TestTableStager:

    def test_two_page_scenario(self, write_pages, executor, test_settings):
        load_dir = write_pages("user_users", PAGES)
        table = users_table()

        result = TableStager(table, executor, load_dir, settings=test_settings).stage()

        assert result.state == StageState.DONE
        assert result.page_count == 2
        assert result.records == 2
        assert result.statements == 2
        assert [(c.column_name, c.column_type) for c in table.columns] == [
            ("id", ColumnType.ID),
            ("age", ColumnType.BIGINT),
            ("name", ColumnType.VARCHAR),
        ]

        sql = executor.statements
        assert sql[0] == (
            "CREATE TABLE zzz___user_users___ (\n"
            "    id VARCHAR(36) NOT NULL,\n"
            "    \"age\" BIGINT,\n"
            "    \"name\" VARCHAR(65535),\n"
            "    data JSON,\n"
            "    tenant_id SMALLINT NOT NULL\n"
            ");"
        )
        assert sql[1].startswith("COMMENT ON TABLE zzz___user_users___")
        assert sql[2].endswith("TO ldpconfig;")
        assert sql[3].endswith("TO ldp;")

        inserts = executor.inserts()
        assert len(inserts) == 2
        assert inserts[0].startswith(
            "INSERT INTO zzz___user_users___ VALUES (E'a1',30,E'Jane',")
        assert "(E'a2',31,NULL," in inserts[1]
        assert inserts[1].endswith(",1);\n")

        assert sql[-3:] == [
            "ALTER TABLE zzz___user_users___\n    ADD PRIMARY KEY (id);",
            "CREATE INDEX ON\n    zzz___user_users___\n    (\"age\");",
            "CREATE INDEX ON\n    zzz___user_users___\n    (\"name\");",
        ]

    def test_data_column_is_canonical(self, write_pages, executor, test_settings):
        load_dir = write_pages("user_users", [[{"name": "Jane", "id": "a1", "age": 30}]])

        TableStager(users_table(), executor, load_dir, settings=test_settings).stage()

        insert = executor.inserts()[0]
        data = json.dumps({"id": "a1", "age": 30, "name": "Jane"}, indent=4)
        assert data.replace("'", "''") in insert

    def test_missing_count_file_skips(self, tmp_path, executor, test_settings):
        table = users_table()
        result = TableStager(table, executor, str(tmp_path), settings=test_settings).stage()

        assert result.state == StageState.SKIPPED
        assert table.skip
        assert executor.statements == []

    def test_zero_pages_skips_even_with_test_file(self, write_pages, executor, test_settings):
        load_dir = write_pages("user_users", [], test_records=[{"id": "t1"}])
        result = TableStager(users_table(), executor, load_dir, settings=test_settings).stage()

        assert result.state == StageState.SKIPPED
        assert executor.statements == []

    def test_test_file_processed_in_both_passes(self, write_pages, executor, test_settings):
        load_dir = write_pages(
            "user_users", PAGES,
            test_records=[{"id": "t1", "name": "Test", "age": 1, "active": True}])
        table = users_table()

        result = TableStager(table, executor, load_dir, settings=test_settings).stage()

        assert result.records == 3
        assert "active" in [c.column_name for c in table.columns]
        assert len(executor.inserts()) == 3
        assert "(E't1',TRUE,1,E'Test'," in executor.inserts()[2]

    def test_mixed_types_fail_before_create(self, write_pages, executor, test_settings):
        load_dir = write_pages("user_users", [
            [{"id": "a1", "age": 30}],
            [{"id": "a2", "age": "thirty"}],
        ])
        stager = TableStager(users_table(), executor, load_dir, settings=test_settings)

        with pytest.raises(SchemaInferenceError):
            stager.stage()

        assert stager.state == StageState.FAILED
        assert executor.statements == []

    @pytest.mark.parametrize("nested", [[1], {"x": 1}])
    def test_number_and_nested_value_fail_before_create(
            self, write_pages, executor, test_settings, nested):
        load_dir = write_pages("user_users", [
            [{"id": "a1", "n": 5}, {"id": "a2", "n": nested}]])
        stager = TableStager(users_table(), executor, load_dir, settings=test_settings)

        with pytest.raises(SchemaInferenceError):
            stager.stage()

        assert stager.state == StageState.FAILED
        assert executor.statements == []

    def test_field_names_with_pointer_characters(self, write_pages, executor, test_settings):
        load_dir = write_pages("user_users", [[{"id": "a1", "a/b": "kept", "c~d": 7}]])
        table = users_table()

        TableStager(table, executor, load_dir, settings=test_settings).stage()

        assert [(c.column_name, c.source_column_name) for c in table.columns] == [
            ("id", "id"), ("a/b", "a/b"), ("c~d", "c~d")]
        assert "(E'a1',E'kept',7," in executor.inserts()[0]

    def test_malformed_page(self, write_pages, executor, test_settings):
        load_dir = write_pages("user_users", [PAGES[0], '[{"id": "a2", '])
        stager = TableStager(users_table(), executor, load_dir, settings=test_settings)

        with pytest.raises(PageFormatError):
            stager.stage()
        assert stager.state == StageState.FAILED

    def test_missing_page_file(self, write_pages, executor, test_settings):
        load_dir = write_pages("user_users", PAGES, count=3)
        with pytest.raises(PageFormatError):
            TableStager(users_table(), executor, load_dir, settings=test_settings).stage()

    def test_envelope_pages(self, write_pages, executor, test_settings):
        load_dir = write_pages("user_users", [
            {"users": PAGES[0], "totalRecords": 2},
            {"users": PAGES[1], "totalRecords": 2},
        ])
        result = TableStager(users_table(), executor, load_dir, settings=test_settings).stage()

        assert result.state == StageState.DONE
        assert result.records == 2

    def test_empty_pages_create_table_without_inserts(
            self, write_pages, executor, test_settings):
        load_dir = write_pages("user_users", [[]])
        table = users_table()
        result = TableStager(table, executor, load_dir, settings=test_settings).stage()

        assert result.state == StageState.DONE
        assert table.columns == []
        assert executor.inserts() == []
        assert executor.statements[-1] == \
            "ALTER TABLE zzz___user_users___\n    ADD PRIMARY KEY (id);"

    def test_redshift(self, write_pages, executor_class, test_settings):
        executor = executor_class(dialect_name="redshift")
        load_dir = write_pages("user_users", PAGES)

        stager = TableStager(users_table(), executor, load_dir, settings=test_settings)
        stager.stage()

        assert isinstance(stager.dialect, RedshiftDialect)
        assert executor.statements[0].endswith(") DISTKEY(id) COMPOUND SORTKEY(id);")
        assert not any(s.startswith("CREATE INDEX") for s in executor.statements)
        assert "('a1',30,'Jane'," in executor.inserts()[0]

    def test_anonymization(self, write_pages, executor, test_settings):
        load_dir = write_pages("user_users", [[{
            "id": "a1", "username": "jdoe", "barcode": "123",
            "personal": {"lastName": "Doe", "email": "j@example.org"},
            "active": True,
        }]])
        policy = AnonymizationPolicy(["user_users"])

        TableStager(users_table(), executor, load_dir,
                    settings=test_settings, policy=policy).stage()

        insert = executor.inserts()[0]
        assert "jdoe" not in insert
        assert "Doe" not in insert
        assert "j@example.org" not in insert
        assert "(E'a1',TRUE,E'',E'{\"email\":\"\",\"lastName\":\"\"}',E''," in insert

    def test_no_anonymization_for_other_tables(self, write_pages, executor, test_settings):
        load_dir = write_pages("user_users", [[{"id": "a1", "username": "jdoe"}]])
        policy = AnonymizationPolicy(["inventory_items"])

        TableStager(users_table(), executor, load_dir,
                    settings=test_settings, policy=policy).stage()

        assert "E'jdoe'" in executor.inserts()[0]


class TestStageTables:

    def tables(self):
        return [
            TableSchema("broken", "/broken", "mod-broken"),
            users_table(),
            TableSchema("missing", "/missing", "mod-missing"),
        ]

    def write_broken(self, write_pages):
        write_pages("broken", [[{"id": "b1", "flag": True}, {"id": "b2", "flag": 1}]])
        return write_pages("user_users", PAGES)

    def test_continues_after_failure(self, write_pages, executor_class, test_settings):
        load_dir = self.write_broken(write_pages)
        executors = []

        results = stage_tables(self.tables(),
                               transaction_factory(executor_class, executors),
                               load_dir=load_dir, settings=test_settings)

        assert [(r.table_name, r.state) for r in results] == [
            ("broken", StageState.FAILED),
            ("user_users", StageState.DONE),
            ("missing", StageState.SKIPPED),
        ]
        assert results[0].page_count == 1
        assert "flag" in results[0].error
        assert len(executors) == 3
        assert len(executors[1].inserts()) == 2

    def test_nested_value_in_number_field_continues(
            self, write_pages, executor_class, test_settings):
        write_pages("broken", [[{"id": "b1", "n": 5}, {"id": "b2", "n": {"x": 1}}]])
        load_dir = write_pages("user_users", PAGES)

        results = stage_tables(self.tables(), transaction_factory(executor_class, []),
                               load_dir=load_dir, settings=test_settings)

        assert [r.state for r in results] == [
            StageState.FAILED, StageState.DONE, StageState.SKIPPED]
        assert "\"n\"" in results[0].error

    def test_stops_when_configured(self, write_pages, executor_class):
        load_dir = self.write_broken(write_pages)
        settings = Settings(continue_on_table_failure=False)
        executors = []

        with pytest.raises(SchemaInferenceError):
            stage_tables(self.tables(),
                         transaction_factory(executor_class, executors),
                         load_dir=load_dir, settings=settings)
        assert len(executors) == 1

    def test_skip_flag_bypasses_table(self, write_pages, executor_class, test_settings):
        load_dir = write_pages("user_users", PAGES)
        table = users_table()
        table.skip = True
        executors = []

        results = stage_tables([table], transaction_factory(executor_class, executors),
                               load_dir=load_dir, settings=test_settings)

        assert results == []
        assert executors == []
