"""Migrate-schema phase — replay ordered SQL migrations against a target.

Files run in filename (timestamp) order.  Inside a file, statements run in
order; an "already exists" style error means the statement was applied by
an earlier run and is skipped, any other error fails the file and skips its
remaining statements.  The next file still runs, so a re-run picks up where
the last one stopped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

import httpx

from sovereign_liberator.domain.entities import (
    MigrationFile,
    MigrationStatus,
    Phase,
    PhaseResult,
    SourceFile,
)
from sovereign_liberator.domain.exceptions import LiberatorError, RemoteApiError
from sovereign_liberator.domain.ports.database_admin import DatabaseAdmin
from sovereign_liberator.services.error_classifier import IgnorableErrorClassifier
from sovereign_liberator.services.secret_redactor import mask_secret, redact_text
from sovereign_liberator.services.sql_splitter import (
    is_executable_statement,
    split_sql_statements,
)

logger = logging.getLogger(__name__)


@dataclass
class FileProgress:
    index: int
    file: str
    status: MigrationStatus = MigrationStatus.PENDING
    applied: int = 0
    ignored: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "file": self.file,
            "status": self.status.value,
            "applied_statements": self.applied,
            "ignored_statements": self.ignored,
            "error": self.error,
        }


@dataclass
class MigrationContext:
    """Phase-local state for one migration run."""

    files: list[MigrationFile]
    progress: list[FileProgress] = field(default_factory=list)
    secrets_synced: int = 0
    secrets_failed: int = 0

    def count(self, status: MigrationStatus) -> int:
        return sum(1 for p in self.progress if p.status is status)


def select_migration_files(
    files: Sequence[SourceFile], migrations_dir: str = "supabase/migrations"
) -> list[MigrationFile]:
    """Keep ``<migrations_dir>/*.sql`` and order them by filename."""
    prefix = migrations_dir.strip("/") + "/"
    selected = [
        MigrationFile(path=f.path, content=f.content)
        for f in files
        if f.path.lstrip("/").startswith(prefix) and f.path.lower().endswith(".sql")
    ]
    return sorted(selected, key=lambda m: m.name)


def migration_succeeded(total: int, executed: int, failed: int) -> bool:
    """No failures, or fewer than half failed and at least one file ran."""
    if failed == 0:
        return True
    return executed > 0 and failed < total / 2


class MigrateSchemaService:
    """Schema migration executor plus the optional secret sync."""

    def __init__(
        self,
        classifier: IgnorableErrorClassifier | None = None,
        migrations_dir: str = "supabase/migrations",
    ) -> None:
        self._classifier = classifier or IgnorableErrorClassifier()
        self._migrations_dir = migrations_dir

    async def run(
        self,
        db: DatabaseAdmin,
        files: Sequence[SourceFile],
        secrets: Mapping[str, str] | None = None,
    ) -> PhaseResult:
        """Execute every migration in *files* against *db*; never raises."""
        migrations = select_migration_files(files, self._migrations_dir)
        if not migrations:
            logger.info("No migration files under %s", self._migrations_dir)
            return PhaseResult(
                success=False,
                phase=Phase.SUPABASE,
                message="No migration files found",
                error=f"Include {self._migrations_dir}/*.sql files in the request.",
                http_status=400,
                data={"total_migrations": 0},
            )

        logger.info("Migration phase starting: %d files against %s", len(migrations), db.url)
        ctx = MigrationContext(files=migrations)
        for index, migration in enumerate(migrations, start=1):
            progress = FileProgress(index=index, file=migration.name)
            ctx.progress.append(progress)
            await self._run_file(db, migration, progress)

        if secrets:
            await self._sync_secrets(db, secrets, ctx)

        return self._result(db, ctx)

    # ── Per file ────────────────────────────────────────────────────────

    async def _run_file(self, db: DatabaseAdmin, migration: MigrationFile, progress: FileProgress) -> None:
        statements = [s for s in split_sql_statements(migration.content) if is_executable_statement(s)]
        logger.info("Migration %d: %s (%d statements)", progress.index, migration.name, len(statements))

        for statement in statements:
            try:
                await db.execute_sql(statement)
            except (LiberatorError, httpx.HTTPError) as exc:
                text = _error_text(exc)
                if self._classifier.is_ignorable(text):
                    progress.ignored += 1
                    logger.info("Already applied in %s: %s", migration.name, _preview(statement))
                    continue
                progress.status = MigrationStatus.FAILED
                progress.error = redact_text(text)
                logger.warning("Migration %s failed: %s", migration.name, progress.error)
                return
            progress.applied += 1

        if progress.applied == 0 and progress.ignored > 0:
            progress.status = MigrationStatus.SKIPPED
        else:
            progress.status = MigrationStatus.SUCCESS

    # ── Secrets ─────────────────────────────────────────────────────────

    async def _sync_secrets(
        self, db: DatabaseAdmin, secrets: Mapping[str, str], ctx: MigrationContext
    ) -> None:
        if not db.manages_secrets:
            logger.info("Target %s has no secret store, skipping %d secrets", db.url, len(secrets))
            return
        for name, value in secrets.items():
            if not value:
                continue
            try:
                await db.set_secret(name, value)
            except (LiberatorError, httpx.HTTPError) as exc:
                ctx.secrets_failed += 1
                logger.warning("Secret %s not synced: %s", name, redact_text(str(exc)))
            else:
                ctx.secrets_synced += 1
                logger.info("Secret %s synced (%s)", name, mask_secret(value))

    # ── Result ──────────────────────────────────────────────────────────

    def _result(self, db: DatabaseAdmin, ctx: MigrationContext) -> PhaseResult:
        total = len(ctx.files)
        executed = ctx.count(MigrationStatus.SUCCESS)
        skipped = ctx.count(MigrationStatus.SKIPPED)
        failed = ctx.count(MigrationStatus.FAILED)
        success = migration_succeeded(total, executed, failed)

        if failed == 0:
            status = 200
        elif executed > 0:
            status = 207
        else:
            status = 502

        failed_details = [{"file": p.file, "error": p.error} for p in ctx.progress if p.status is MigrationStatus.FAILED]
        logger.info(
            "Migration phase complete: executed=%d skipped=%d failed=%d secrets=%d",
            executed,
            skipped,
            failed,
            ctx.secrets_synced,
        )

        if failed == 0:
            message = f"Migration complete: {executed}/{total} files executed, {skipped} already applied"
        else:
            message = f"Migration partial: {failed} of {total} files failed"

        return PhaseResult(
            success=success,
            phase=Phase.SUPABASE,
            message=message,
            error=None if failed == 0 else "; ".join(f"{d['file']}: {d['error']}" for d in failed_details),
            http_status=status,
            data={
                "url": db.url,
                "total_migrations": total,
                "executed": executed,
                "skipped": skipped,
                "failed": failed,
                "failed_details": failed_details,
                "success_rate": round(executed * 100 / total),
                "secrets_synced": ctx.secrets_synced,
                "secrets_failed": ctx.secrets_failed,
                "migration_progress": [p.to_dict() for p in ctx.progress],
            },
        )


def _error_text(exc: Exception) -> str:
    if isinstance(exc, RemoteApiError) and exc.body:
        return f"{exc}: {exc.body}"
    return str(exc)


def _preview(statement: str, limit: int = 60) -> str:
    flat = " ".join(statement.split())
    return flat if len(flat) <= limit else flat[: limit - 1] + "…"
