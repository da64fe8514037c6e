"""FastAPI dependency injection wiring."""

from __future__ import annotations

import httpx

from sovereign_liberator.infrastructure.config import Settings, get_settings
from sovereign_liberator.infrastructure.coolify_adapter import CoolifyAdapter
from sovereign_liberator.infrastructure.github_rest_adapter import GitHubRestAdapter
from sovereign_liberator.infrastructure.memory_recorder import InMemoryDeploymentRecorder
from sovereign_liberator.infrastructure.supabase_adapter import SupabaseAdapter
from sovereign_liberator.infrastructure.task_scheduler import AsyncioTaskScheduler
from sovereign_liberator.services.deploy_app import DeployAppService
from sovereign_liberator.services.liberate_project import Connectors, LiberateProjectUseCase
from sovereign_liberator.services.migrate_schema import MigrateSchemaService
from sovereign_liberator.services.publish_repo import PublishRepoService
from sovereign_liberator.services.secret_cleanup import SecretCleanupService

_http_client: httpx.AsyncClient | None = None
_scheduler: AsyncioTaskScheduler | None = None
_recorder: InMemoryDeploymentRecorder | None = None


async def startup() -> None:
    """Initialise shared resources — called from the lifespan context manager."""
    global _http_client, _scheduler, _recorder  # noqa: PLW0603

    settings = get_settings()
    _http_client = httpx.AsyncClient(timeout=httpx.Timeout(settings.http_timeout_seconds))
    _scheduler = AsyncioTaskScheduler()
    _recorder = InMemoryDeploymentRecorder()


async def shutdown() -> None:
    """Release shared resources."""
    global _http_client, _scheduler, _recorder  # noqa: PLW0603

    if _scheduler:
        await _scheduler.shutdown()
        _scheduler = None
    if _http_client:
        await _http_client.aclose()
        _http_client = None
    _recorder = None


def get_app_settings() -> Settings:
    return get_settings()


def get_use_case() -> LiberateProjectUseCase:
    """Build the use case; adapters are created per request from its credentials."""
    settings = get_settings()

    assert _http_client is not None, "startup() was not called"
    assert _scheduler is not None, "startup() was not called"
    assert _recorder is not None, "startup() was not called"
    client = _http_client

    connectors = Connectors(
        source_host=lambda creds: GitHubRestAdapter(
            client=client, token=creds.token, api_url=settings.github_api_url
        ),
        database=lambda target: SupabaseAdapter(
            client=client, target=target, management_url=settings.supabase_management_url
        ),
        platform=lambda target: CoolifyAdapter(client=client, target=target),
    )
    cleanup = SecretCleanupService(
        client=client,
        recorder=_recorder,
        health_timeout=settings.health_check_timeout_seconds,
    )

    return LiberateProjectUseCase(
        connectors=connectors,
        publisher=PublishRepoService(
            branch=settings.github_branch,
            inline_limit_bytes=settings.github_inline_limit_bytes,
            bootstrap_attempts=settings.github_bootstrap_attempts,
            bootstrap_delay=settings.github_bootstrap_delay_seconds,
        ),
        migrator=MigrateSchemaService(migrations_dir=settings.migrations_dir),
        deployer=DeployAppService(
            poll_interval=settings.coolify_poll_interval_seconds,
            max_attempts=settings.coolify_poll_max_attempts,
            log_tail_chars=settings.coolify_log_tail_chars,
            cleanup_delay=settings.secret_cleanup_delay_seconds,
            recorder=_recorder,
            scheduler=_scheduler,
            cleanup=cleanup.run,
        ),
    )
