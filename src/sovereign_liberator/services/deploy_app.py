"""Deploy-application phase — drive the deployment platform to a running app.

Steps, in order, each reading and writing a single :class:`DeployContext`:

``probe (pick server) → find_or_create_project → find_or_create_application →
inject_env → trigger_deploy → poll_build``

Every remote object created by this run is an obligation: if a later step
fails, each one is deleted again, newest first.  Objects that already
existed are never touched by rollback.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping

import httpx

from sovereign_liberator.domain.entities import (
    ApplicationSpec,
    BuildOutcome,
    DeploymentStatus,
    Phase,
    PhaseResult,
)
from sovereign_liberator.domain.exceptions import (
    AuthenticationError,
    ConflictError,
    LiberatorError,
    RemoteApiError,
    ResourceNotFoundError,
    ValidationFailure,
)
from sovereign_liberator.domain.ports.deploy_platform import DeployPlatform
from sovereign_liberator.domain.ports.deployment_recorder import DeploymentRecorder
from sovereign_liberator.domain.ports.task_scheduler import TaskScheduler
from sovereign_liberator.domain.value_objects import CoolifyTarget, repo_slug
from sovereign_liberator.services.secret_redactor import redact_text

logger = logging.getLogger(__name__)

PROJECT_DESCRIPTION = "Liberated project: vendor-neutral and self-hostable"

_HEALTHY_PREFIXES = ("running",)
_HEALTHY_EXACT = frozenset({"healthy"})
_FAILED_PREFIXES = ("exited", "degraded")
_FAILED_EXACT = frozenset({"unhealthy", "failed", "stopped"})

CleanupHook = Callable[[str, str], Awaitable[Any]]


def classify_build_status(status: str | None) -> BuildOutcome | None:
    """Map a platform status string to an outcome; ``None`` means keep polling.

    Statuses look like ``running:healthy`` or ``exited:unhealthy``; the part
    before the colon decides.
    """
    if not status:
        return None
    value = status.strip().lower()
    head = value.split(":", maxsplit=1)[0]
    if head.startswith(_FAILED_PREFIXES) or head in _FAILED_EXACT:
        return BuildOutcome.FAILED
    if head.startswith(_HEALTHY_PREFIXES) or head in _HEALTHY_EXACT:
        return BuildOutcome.HEALTHY
    return None


@dataclass
class DeployContext:
    """Phase-local state, including the rollback obligation."""

    project_name: str
    repo_url: str
    app_name: str
    server_uuid: str = ""
    server_created: bool = False
    project_uuid: str = ""
    project_created: bool = False
    app_uuid: str = ""
    app_created: bool = False
    build_pack: str = ""
    env_keys: list[str] = field(default_factory=list)
    deployment_uuid: str | None = None
    last_status: str | None = None
    poll_attempts: int = 0
    outcome: BuildOutcome | None = None
    fqdn: str | None = None
    logs: str = ""


class DeploymentFailed(LiberatorError):
    """The build finished in a failed state."""


class DeployAppService:
    """Deployment-platform driver.

    Parameters
    ----------
    poll_interval / max_attempts:
        Bounded build-status polling budget.
    log_tail_chars:
        How much of a failed build's log is kept in the result.
    cleanup_delay:
        Seconds between a healthy deployment and the secret cleanup.
    """

    def __init__(
        self,
        poll_interval: float = 10.0,
        max_attempts: int = 12,
        log_tail_chars: int = 2_000,
        cleanup_delay: float = 60.0,
        recorder: DeploymentRecorder | None = None,
        scheduler: TaskScheduler | None = None,
        cleanup: CleanupHook | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._poll_interval = poll_interval
        self._max_attempts = max(max_attempts, 1)
        self._log_tail = log_tail_chars
        self._cleanup_delay = cleanup_delay
        self._recorder = recorder
        self._scheduler = scheduler
        self._cleanup = cleanup
        self._sleep = sleep

    # ── Public entry point ──────────────────────────────────────────────

    async def run(
        self,
        platform: DeployPlatform,
        target: CoolifyTarget,
        project_name: str,
        repo_url: str,
        *,
        supabase_url: str | None = None,
        supabase_anon_key: str | None = None,
        env_vars: Mapping[str, str] | None = None,
        deployment_id: str | None = None,
    ) -> PhaseResult:
        """Deploy *repo_url* as *project_name*; never raises."""
        logger.info("Deploy phase starting: project=%s repo=%s", project_name, repo_url)
        ctx = DeployContext(
            project_name=project_name,
            repo_url=repo_url,
            app_name=repo_slug(project_name),
        )
        env = _build_env(supabase_url, supabase_anon_key, env_vars)
        await self._record(deployment_id, DeploymentStatus.DEPLOYING)

        try:
            await self._probe(platform, ctx, target)
            await self._find_or_create_project(platform, ctx)
            await self._find_or_create_application(platform, ctx)
            await self._inject_env(platform, ctx, env)
            await self._trigger_deploy(platform, ctx)
            await self._poll_build(platform, ctx)
            if ctx.outcome is BuildOutcome.FAILED:
                await self._fetch_logs(platform, ctx)
                raise DeploymentFailed(f"Build finished with status '{ctx.last_status}'")
        except (LiberatorError, httpx.HTTPError) as exc:
            await self._rollback(platform, ctx)
            await self._record(
                deployment_id,
                DeploymentStatus.FAILED,
                error_message=redact_text(str(exc)),
            )
            return self._failure(ctx, exc)

        return await self._finish(ctx, deployment_id)

    # ── Steps ───────────────────────────────────────────────────────────

    async def _probe(self, platform: DeployPlatform, ctx: DeployContext, target: CoolifyTarget) -> None:
        """List servers (connectivity check) and pick the target server."""
        servers = await platform.list_servers()
        logger.info("Coolify reachable: %d servers", len(servers))

        if target.server_uuid and any(s.get("uuid") == target.server_uuid for s in servers):
            ctx.server_uuid = target.server_uuid
        elif servers:
            ctx.server_uuid = servers[0]["uuid"]
            if target.server_uuid:
                logger.warning("Server %s not listed, using %s", target.server_uuid, ctx.server_uuid)
        elif target.server_ip and target.private_key_uuid:
            ctx.server_uuid = await platform.create_server(
                f"{ctx.app_name}-server", target.server_ip, target.private_key_uuid
            )
            ctx.server_created = True
            logger.info("Registered server %s (%s)", ctx.server_uuid, target.server_ip)
        else:
            raise ValidationFailure("No servers available on the Coolify instance.")

    async def _find_or_create_project(self, platform: DeployPlatform, ctx: DeployContext) -> None:
        wanted = ctx.project_name.lower()
        for project in await platform.list_projects():
            if project.name.lower() == wanted:
                ctx.project_uuid = project.uuid
                logger.info("Reusing Coolify project %s", project.uuid)
                return
        ctx.project_uuid = await platform.create_project(ctx.project_name, PROJECT_DESCRIPTION)
        ctx.project_created = True
        logger.info("Created Coolify project %s", ctx.project_uuid)

    async def _find_or_create_application(self, platform: DeployPlatform, ctx: DeployContext) -> None:
        # A project created a moment ago cannot hold an application yet.
        if not ctx.project_created:
            existing = _match_application(await platform.list_applications(), ctx)
            if existing is not None:
                ctx.app_uuid = existing["uuid"]
                ctx.build_pack = existing.get("build_pack") or ""
                ctx.fqdn = existing.get("fqdn") or None
                logger.info("Reusing Coolify application %s", ctx.app_uuid)
                return

        spec = ApplicationSpec(
            project_uuid=ctx.project_uuid,
            server_uuid=ctx.server_uuid,
            git_repository=ctx.repo_url,
            name=ctx.app_name,
        )
        try:
            ctx.app_uuid = await platform.create_nixpacks_application(spec)
            ctx.build_pack = "nixpacks"
        except (LiberatorError, httpx.HTTPError) as exc:
            logger.warning("Nixpacks application rejected (%s), trying Dockerfile", exc)
            ctx.app_uuid = await platform.create_dockerfile_application(spec)
            ctx.build_pack = "dockerfile"
        ctx.app_created = True
        logger.info("Created %s application %s", ctx.build_pack, ctx.app_uuid)

    async def _inject_env(
        self, platform: DeployPlatform, ctx: DeployContext, env: Mapping[str, str]
    ) -> None:
        for key, value in env.items():
            try:
                await platform.add_env(ctx.app_uuid, key, value)
            except ConflictError:
                if ctx.app_created:
                    raise
                await platform.update_env(ctx.app_uuid, key, value)
            ctx.env_keys.append(key)
        if env:
            logger.info("Injected %d environment variables", len(env))

    async def _trigger_deploy(self, platform: DeployPlatform, ctx: DeployContext) -> None:
        ctx.deployment_uuid = await platform.deploy(ctx.app_uuid)
        logger.info("Deployment triggered: %s", ctx.deployment_uuid or "(no uuid reported)")

    async def _poll_build(self, platform: DeployPlatform, ctx: DeployContext) -> None:
        for attempt in range(1, self._max_attempts + 1):
            await self._sleep(self._poll_interval)
            ctx.poll_attempts = attempt
            try:
                app = await platform.get_application(ctx.app_uuid)
            except (LiberatorError, httpx.HTTPError) as exc:
                logger.warning("Status poll %d failed: %s", attempt, exc)
                continue
            ctx.last_status = app.get("status")
            ctx.fqdn = app.get("fqdn") or ctx.fqdn
            outcome = classify_build_status(ctx.last_status)
            logger.debug("Status poll %d: %s", attempt, ctx.last_status)
            if outcome is not None:
                ctx.outcome = outcome
                return
        ctx.outcome = BuildOutcome.INDETERMINATE
        logger.info("Build still in progress after %d polls", self._max_attempts)

    async def _fetch_logs(self, platform: DeployPlatform, ctx: DeployContext) -> None:
        if not ctx.deployment_uuid:
            return
        try:
            logs = await platform.get_deployment_logs(ctx.deployment_uuid)
        except (LiberatorError, httpx.HTTPError) as exc:
            logger.warning("Could not fetch logs for %s: %s", ctx.deployment_uuid, exc)
            return
        ctx.logs = redact_text(logs[-self._log_tail :])

    async def _rollback(self, platform: DeployPlatform, ctx: DeployContext) -> None:
        """Delete what this run created; failures are logged, never raised."""
        steps: list[tuple[str, str, Callable[[str], Awaitable[None]]]] = []
        if ctx.app_created:
            steps.append(("application", ctx.app_uuid, platform.delete_application))
        if ctx.project_created:
            steps.append(("project", ctx.project_uuid, platform.delete_project))
        if ctx.server_created:
            steps.append(("server", ctx.server_uuid, platform.delete_server))

        for kind, uuid, delete in steps:
            logger.info("Rolling back %s %s", kind, uuid)
            try:
                await delete(uuid)
            except (LiberatorError, httpx.HTTPError) as exc:
                logger.error("Rollback: could not delete %s %s: %s", kind, uuid, exc)

    # ── Outcome ─────────────────────────────────────────────────────────

    async def _finish(self, ctx: DeployContext, deployment_id: str | None) -> PhaseResult:
        data = self._output(ctx)
        if ctx.outcome is BuildOutcome.INDETERMINATE:
            await self._record(deployment_id, DeploymentStatus.BUILDING)
            return PhaseResult(
                success=True,
                phase=Phase.COOLIFY,
                message="Deployment triggered, build still in progress",
                http_status=202,
                data={**data, "status": DeploymentStatus.BUILDING.value},
            )

        await self._record(
            deployment_id, DeploymentStatus.DEPLOYED, deployed_url=ctx.fqdn, coolify_app_uuid=ctx.app_uuid
        )
        self._schedule_cleanup(deployment_id, ctx.fqdn)
        logger.info("Deploy phase complete: %s", ctx.fqdn or ctx.app_uuid)
        return PhaseResult(
            success=True,
            phase=Phase.COOLIFY,
            message="Application deployed and healthy",
            http_status=201,
            data={**data, "status": DeploymentStatus.DEPLOYED.value},
        )

    def _failure(self, ctx: DeployContext, exc: Exception) -> PhaseResult:
        if isinstance(exc, AuthenticationError) and not ctx.server_uuid:
            message, status = "Coolify token is invalid or expired", exc.status_code
        elif isinstance(exc, ResourceNotFoundError) and not ctx.server_uuid:
            message, status = "Coolify URL is incorrect", 404
        elif isinstance(exc, ValidationFailure):
            message, status = str(exc), 400
        elif isinstance(exc, DeploymentFailed):
            message, status = "Build failed on Coolify", 502
        elif isinstance(exc, AuthenticationError):
            message, status = "Coolify refused a later step", exc.status_code
        elif isinstance(exc, RemoteApiError):
            message, status = "Coolify step failed", exc.status_code or 502
        else:
            message, status = "Coolify step failed", 502
        logger.warning("Deploy phase failed: %s (%s)", message, exc)
        return PhaseResult(
            success=False,
            phase=Phase.COOLIFY,
            message=message,
            error=redact_text(str(exc)),
            http_status=status,
            data={
                **self._output(ctx),
                "status": DeploymentStatus.FAILED.value,
                "rolled_back": ctx.app_created or ctx.project_created or ctx.server_created,
            },
        )

    def _output(self, ctx: DeployContext) -> dict[str, Any]:
        data: dict[str, Any] = {
            "project_uuid": ctx.project_uuid or None,
            "project_created": ctx.project_created,
            "server_uuid": ctx.server_uuid or None,
            "server_created": ctx.server_created,
            "app_uuid": ctx.app_uuid or None,
            "app_created": ctx.app_created,
            "build_pack": ctx.build_pack or None,
            "deployment_uuid": ctx.deployment_uuid,
            "env_vars": list(ctx.env_keys),
            "build_status": ctx.last_status,
            "poll_attempts": ctx.poll_attempts,
            "deployed_url": ctx.fqdn,
        }
        if ctx.logs:
            data["logs"] = ctx.logs
        return data

    # ── Collaborators ───────────────────────────────────────────────────

    async def _record(self, deployment_id: str | None, status: DeploymentStatus, **fields: Any) -> None:
        if self._recorder is None or not deployment_id:
            return
        try:
            await self._recorder.update_status(deployment_id, status, **fields)
        except LiberatorError as exc:
            logger.warning("Could not record status %s for %s: %s", status.value, deployment_id, exc)

    def _schedule_cleanup(self, deployment_id: str | None, deployed_url: str | None) -> None:
        if not (deployment_id and self._scheduler and self._cleanup):
            return
        cleanup = self._cleanup
        self._scheduler.submit(
            self._cleanup_delay,
            lambda: cleanup(deployment_id, deployed_url or ""),
            name=f"secret-cleanup-{deployment_id}",
        )
        logger.info("Secret cleanup for %s scheduled in %.0fs", deployment_id, self._cleanup_delay)


def _build_env(
    supabase_url: str | None,
    supabase_anon_key: str | None,
    env_vars: Mapping[str, str] | None,
) -> dict[str, str]:
    env: dict[str, str] = {}
    if supabase_url and supabase_anon_key:
        env["VITE_SUPABASE_URL"] = supabase_url
        env["VITE_SUPABASE_PUBLISHABLE_KEY"] = supabase_anon_key
    env.update(env_vars or {})
    return env


def _match_application(apps: list[dict[str, Any]], ctx: DeployContext) -> dict[str, Any] | None:
    """Pick the application named like *ctx* in its project, if listed."""
    wanted = ctx.app_name.lower()
    for app in apps:
        if str(app.get("name", "")).lower() != wanted:
            continue
        if app.get("project_uuid") not in (None, "", ctx.project_uuid):
            continue
        return app
    return None
