"""Post-deployment secret cleanup.

Runs detached, some time after a healthy deployment.  Once the deployed
application answers, the bootstrap secrets kept on the deployment record
(database password, JWT secret, service-role key ...) are no longer needed
and are purged.  Nothing here is reported back to the caller; the outcome
is only logged.
"""

from __future__ import annotations

import logging

import httpx

from sovereign_liberator.domain.exceptions import LiberatorError
from sovereign_liberator.domain.ports.deployment_recorder import DeploymentRecorder

logger = logging.getLogger(__name__)


class SecretCleanupService:
    def __init__(
        self,
        client: httpx.AsyncClient,
        recorder: DeploymentRecorder,
        health_timeout: float = 15.0,
        force: bool = False,
    ) -> None:
        self._client = client
        self._recorder = recorder
        self._health_timeout = health_timeout
        self._force = force

    async def run(self, deployment_id: str, deployed_url: str) -> list[str]:
        """Purge secrets for *deployment_id*; return the cleared field names."""
        record = await self._recorder.get(deployment_id)
        if record is None:
            logger.warning("Secret cleanup: deployment %s not found", deployment_id)
            return []
        if record.get("secrets_cleaned"):
            logger.info("Secret cleanup: %s already cleaned", deployment_id)
            return []

        health = await self._check_health(_first_url(deployed_url))
        if health not in ("healthy", "skipped") and not self._force:
            logger.warning(
                "Secret cleanup for %s postponed: application is %s", deployment_id, health
            )
            return []

        try:
            cleared = await self._recorder.purge_secrets(deployment_id, health_status=health)
        except LiberatorError as exc:
            logger.error("Secret cleanup for %s failed: %s", deployment_id, exc)
            return []
        logger.info("Secret cleanup for %s removed %d fields", deployment_id, len(cleared))
        return cleared

    async def _check_health(self, url: str) -> str:
        if not url:
            # Nothing to probe; cleanup is only scheduled after a healthy build.
            return "skipped"
        if not url.startswith(("http://", "https://")):
            url = f"https://{url}"
        try:
            resp = await self._client.get(url, timeout=self._health_timeout)
        except httpx.HTTPError as exc:
            logger.debug("Health check of %s failed: %s", url, exc)
            return "unreachable"
        return "healthy" if resp.is_success else f"unhealthy ({resp.status_code})"


def _first_url(fqdn: str | None) -> str:
    """Coolify reports ``fqdn`` as a comma-separated list; keep the first."""
    return (fqdn or "").split(",", maxsplit=1)[0].strip()
