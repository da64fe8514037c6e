"""Port: the surrounding application's persisted deployment history."""

from __future__ import annotations

from typing import Any, Protocol

from sovereign_liberator.domain.entities import DeploymentStatus


class DeploymentRecorder(Protocol):
    """Write-side view of deployment records owned by the host application."""

    async def update_status(
        self, deployment_id: str, status: DeploymentStatus, **fields: Any
    ) -> None:
        ...

    async def get(self, deployment_id: str) -> dict[str, Any] | None:
        ...

    async def purge_secrets(self, deployment_id: str, *, health_status: str) -> list[str]:
        """Clear sensitive fields and return their names."""
        ...
