"""Liberate-project use case — the pipeline orchestrator.

This is the single entry point for the business logic.  It depends only on
the ports and the three phase services; the interface layer injects the
adapter factories at runtime, because every request brings its own
credentials.

Phase ``all`` runs GitHub → Supabase → Coolify strictly in order.  A failed
GitHub or Supabase phase stops the pipeline; a failed Coolify phase never
undoes the earlier phases, which are safe to re-run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from sovereign_liberator.domain.entities import (
    LiberationReport,
    LiberationRequest,
    Phase,
    PhaseResult,
)
from sovereign_liberator.domain.exceptions import ValidationFailure
from sovereign_liberator.domain.ports.database_admin import DatabaseAdmin
from sovereign_liberator.domain.ports.deploy_platform import DeployPlatform
from sovereign_liberator.domain.ports.source_host import SourceHost
from sovereign_liberator.domain.value_objects import (
    CoolifyTarget,
    GitHubCredentials,
    SupabaseTarget,
    repo_slug,
)
from sovereign_liberator.services.deploy_app import DeployAppService
from sovereign_liberator.services.migrate_schema import MigrateSchemaService
from sovereign_liberator.services.publish_repo import PublishRepoService
from sovereign_liberator.services.secret_redactor import redact_text

logger = logging.getLogger(__name__)

PIPELINE_ORDER = (Phase.GITHUB, Phase.SUPABASE, Phase.COOLIFY)
_ABORTING_PHASES = frozenset({Phase.GITHUB, Phase.SUPABASE})


@dataclass(frozen=True)
class Connectors:
    """Adapter factories, one per collaborator, fed with request credentials."""

    source_host: Callable[[GitHubCredentials], SourceHost]
    database: Callable[[SupabaseTarget], DatabaseAdmin]
    platform: Callable[[CoolifyTarget], DeployPlatform]


class LiberateProjectUseCase:
    """Orchestrates publish → migrate → deploy for one request."""

    def __init__(
        self,
        connectors: Connectors,
        publisher: PublishRepoService,
        migrator: MigrateSchemaService,
        deployer: DeployAppService,
    ) -> None:
        self._connectors = connectors
        self._publisher = publisher
        self._migrator = migrator
        self._deployer = deployer

    async def execute(self, request: LiberationRequest) -> LiberationReport:
        """Run the requested phase(s) and return every executed PhaseResult.

        Raises
        ------
        ValidationFailure
            When the request has no project name.  Phase failures never raise.
        """
        if not request.project_name.strip():
            raise ValidationFailure("project_name is required.")

        phases = PIPELINE_ORDER if request.phase is Phase.ALL else (request.phase,)
        repo_name = request.repo_name or repo_slug(request.project_name)
        logger.info(
            "Liberation of %s starting: phases=%s repo=%s",
            request.project_name,
            ",".join(p.value for p in phases),
            repo_name,
        )

        results: list[PhaseResult] = []
        repo_url: str | None = None
        stopped_at: Phase | None = None

        for phase in phases:
            try:
                if phase is Phase.GITHUB:
                    result = await self._publish(request, repo_name)
                    if result.success:
                        repo_url = result.data.get("repo_url")
                elif phase is Phase.SUPABASE:
                    result = await self._migrate(request)
                else:
                    result = await self._deploy(request, repo_url or fallback_repo_url(repo_name))
            except Exception as exc:  # noqa: BLE001
                logger.exception("Phase %s crashed", phase.value)
                result = PhaseResult(
                    success=False,
                    phase=phase,
                    message=f"Unexpected error in {phase.value} phase",
                    error=redact_text(str(exc)),
                    http_status=500,
                )
            results.append(result)

            if not result.success and request.phase is Phase.ALL and phase in _ABORTING_PHASES:
                stopped_at = phase
                logger.warning("Pipeline stopped after %s failure", phase.value)
                break

        report = LiberationReport(
            success=bool(results) and all(r.success for r in results),
            message=_summary(results, stopped_at),
            results=results,
        )
        logger.info("Liberation of %s finished: %s", request.project_name, report.message)
        return report

    # ── Phases ──────────────────────────────────────────────────────────

    async def _publish(self, request: LiberationRequest, repo_name: str) -> PhaseResult:
        if request.github is None:
            return _missing(Phase.GITHUB, "GitHub token missing", "Provide a GitHub token with the 'repo' scope.")
        if not request.files:
            return _missing(Phase.GITHUB, "No files to publish", "The request carries no files.")
        host = self._connectors.source_host(request.github)
        # repo_name may be "owner/name"; the token owner decides where it lands.
        name = repo_name.rsplit("/", maxsplit=1)[-1]
        return await self._publisher.run(host, name, request.files)

    async def _migrate(self, request: LiberationRequest) -> PhaseResult:
        if request.supabase is None:
            return _missing(Phase.SUPABASE, "Supabase credentials missing", "Provide the target URL and service key.")
        db = self._connectors.database(request.supabase)
        return await self._migrator.run(db, request.files, request.secrets_to_sync)

    async def _deploy(self, request: LiberationRequest, repo_url: str) -> PhaseResult:
        if request.coolify is None:
            return _missing(Phase.COOLIFY, "Coolify credentials missing", "Provide the Coolify URL and API token.")
        platform = self._connectors.platform(request.coolify)
        supabase = request.supabase
        return await self._deployer.run(
            platform,
            request.coolify,
            request.project_name,
            repo_url,
            supabase_url=supabase.url if supabase else None,
            supabase_anon_key=supabase.anon_key if supabase else None,
            env_vars=request.env_vars,
            deployment_id=request.deployment_id,
        )


def fallback_repo_url(repo_name: str) -> str:
    """Repository URL used by the deploy phase when publishing did not run."""
    return f"https://github.com/{repo_name}"


def _missing(phase: Phase, message: str, error: str) -> PhaseResult:
    logger.info("Phase %s not runnable: %s", phase.value, message)
    return PhaseResult(success=False, phase=phase, message=message, error=error, http_status=400)


def _summary(results: list[PhaseResult], stopped_at: Phase | None) -> str:
    if stopped_at is not None:
        return f"Pipeline stopped - {stopped_at.value} phase failed"
    succeeded = sum(1 for r in results if r.success)
    if succeeded == len(results):
        return f"Pipeline complete - {succeeded} phases succeeded"
    return f"Pipeline partial - {succeeded}/{len(results)} phases succeeded"
