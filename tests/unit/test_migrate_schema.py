"""Tests for the migrate-schema phase."""

import pytest

from fakes import FakeDatabase
from sovereign_liberator.domain.entities import Phase, SourceFile
from sovereign_liberator.services.error_classifier import IgnorableErrorClassifier
from sovereign_liberator.services.migrate_schema import (
    MigrateSchemaService,
    migration_succeeded,
    select_migration_files,
)


def _migration(name: str, sql: str) -> SourceFile:
    return SourceFile(path=f"supabase/migrations/{name}", content=sql)


class TestSelectMigrationFiles:
    """Tests for migration discovery and ordering."""

    def test_filters_and_orders_by_filename(self):
        files = [
            _migration("20240202_b.sql", "SELECT 2;"),
            SourceFile("src/App.tsx", ""),
            _migration("20240101_a.sql", "SELECT 1;"),
            SourceFile("supabase/seed.sql", "SELECT 0;"),
            _migration("README.md", ""),
        ]
        names = [m.name for m in select_migration_files(files)]
        assert names == ["20240101_a.sql", "20240202_b.sql"]


class TestMigrationSucceeded:
    """Tests for the overall success threshold."""

    @pytest.mark.parametrize(
        ("total", "executed", "failed", "expected"),
        [
            (4, 4, 0, True),
            (4, 0, 0, True),
            (5, 3, 2, True),
            (4, 2, 2, False),
            (1, 0, 1, False),
        ],
    )
    def test_threshold(self, total, executed, failed, expected):
        assert migration_succeeded(total, executed, failed) is expected


class TestMigrateSchemaService:
    """Tests for executing migrations against a fake database."""

    @pytest.mark.asyncio
    async def test_scenario_duplicate_table_is_ignorable(self):
        db = FakeDatabase()
        files = [_migration("001_init.sql", "CREATE TABLE t (id int); CREATE TABLE t (id int);")]

        result = await MigrateSchemaService().run(db, files)

        assert result.success is True
        assert result.phase is Phase.SUPABASE
        assert result.http_status == 200
        assert result.data["executed"] == 1
        assert result.data["failed"] == 0
        progress = result.data["migration_progress"][0]
        assert progress["applied_statements"] == 1
        assert progress["ignored_statements"] == 1

    @pytest.mark.asyncio
    async def test_rerun_is_safe(self):
        db = FakeDatabase()
        files = [
            _migration("001_init.sql", "CREATE TABLE profiles (id uuid);\nCREATE INDEX idx_p ON profiles (id);"),
            _migration("002_types.sql", "CREATE TYPE app_role AS ENUM ('admin', 'user');"),
        ]
        service = MigrateSchemaService()

        first = await service.run(db, files)
        second = await service.run(db, files)

        assert first.data["executed"] == 2
        assert second.success is True
        assert second.data["failed"] == 0
        assert second.data["skipped"] == 2
        assert second.data["executed"] == 0

    @pytest.mark.asyncio
    async def test_fatal_error_stops_the_file_but_not_the_run(self):
        db = FakeDatabase()
        files = [
            _migration("001_bad.sql", "CREATE TABLE a (id int); SELECT boom; CREATE TABLE never (id int);"),
            _migration("002_good.sql", "CREATE TABLE b (id int);"),
            _migration("003_good.sql", "CREATE TABLE c (id int);"),
        ]

        result = await MigrateSchemaService().run(db, files)

        assert "table:never" not in db.objects
        assert "table:b" in db.objects
        assert result.data["failed"] == 1
        assert result.data["executed"] == 2
        assert result.success is True
        assert result.http_status == 207
        assert result.data["failed_details"][0]["file"] == "001_bad.sql"
        assert "syntax error" in result.data["failed_details"][0]["error"]

    @pytest.mark.asyncio
    async def test_everything_failing_is_bad_gateway(self):
        db = FakeDatabase()
        files = [_migration("001.sql", "SELECT boom;")]

        result = await MigrateSchemaService().run(db, files)

        assert result.success is False
        assert result.http_status == 502
        assert result.data["success_rate"] == 0

    @pytest.mark.asyncio
    async def test_comment_only_statements_are_skipped(self):
        db = FakeDatabase()
        files = [_migration("001.sql", "-- header\n-- more;\nCREATE TABLE t (id int);\n-- trailer")]

        await MigrateSchemaService().run(db, files)

        assert db.executed == ["-- header\n-- more;\nCREATE TABLE t (id int)"]

    @pytest.mark.asyncio
    async def test_no_migration_files(self):
        result = await MigrateSchemaService().run(FakeDatabase(), [SourceFile("src/a.ts", "")])

        assert result.success is False
        assert result.http_status == 400

    @pytest.mark.asyncio
    async def test_secrets_synced_and_failures_counted(self):
        db = FakeDatabase()
        db.failing_secrets.add("BROKEN")
        files = [_migration("001.sql", "CREATE TABLE t (id int);")]
        secrets = {"STRIPE_KEY": "sk_live_x", "EMPTY": "", "BROKEN": "v"}

        result = await MigrateSchemaService().run(db, files, secrets)

        assert db.secrets == {"STRIPE_KEY": "sk_live_x"}
        assert result.data["secrets_synced"] == 1
        assert result.data["secrets_failed"] == 1
        assert result.success is True

    @pytest.mark.asyncio
    async def test_secrets_skipped_without_secret_store(self):
        db = FakeDatabase(url="https://db.example.org", manages_secrets=False)
        files = [_migration("001.sql", "CREATE TABLE t (id int);")]

        result = await MigrateSchemaService().run(db, files, {"A": "1"})

        assert db.secrets == {}
        assert result.data["secrets_synced"] == 0

    @pytest.mark.asyncio
    async def test_empty_vocabulary_makes_duplicates_fatal(self):
        db = FakeDatabase()
        files = [_migration("001.sql", "CREATE TABLE t (id int); CREATE TABLE t (id int);")]

        result = await MigrateSchemaService(classifier=IgnorableErrorClassifier(rules=())).run(db, files)

        assert result.data["failed"] == 1
        assert result.success is False
