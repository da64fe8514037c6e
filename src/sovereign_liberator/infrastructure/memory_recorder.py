"""In-process DeploymentRecorder.

The surrounding application normally owns deployment history; this keeps
records in a dict so the service runs standalone.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

from sovereign_liberator.domain.entities import DeploymentStatus
from sovereign_liberator.domain.exceptions import ResourceNotFoundError

SENSITIVE_FIELDS = ("db_password", "jwt_secret", "service_role_key", "setup_id", "db_url")


class InMemoryDeploymentRecorder:
    def __init__(self) -> None:
        self._records: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    def seed(self, deployment_id: str, **fields: Any) -> None:
        """Create or replace a record (the host application does this on checkout)."""
        self._records[deployment_id] = {"id": deployment_id, **fields}

    async def update_status(
        self, deployment_id: str, status: DeploymentStatus, **fields: Any
    ) -> None:
        async with self._lock:
            record = self._records.setdefault(deployment_id, {"id": deployment_id})
            record.update(fields)
            record["status"] = status.value
            record["updated_at"] = _now()

    async def get(self, deployment_id: str) -> dict[str, Any] | None:
        record = self._records.get(deployment_id)
        return dict(record) if record is not None else None

    async def purge_secrets(self, deployment_id: str, *, health_status: str) -> list[str]:
        async with self._lock:
            record = self._records.get(deployment_id)
            if record is None:
                raise ResourceNotFoundError(f"Deployment {deployment_id} not found")
            cleared = [name for name in SENSITIVE_FIELDS if record.get(name) is not None]
            for name in SENSITIVE_FIELDS:
                record[name] = None
            record["secrets_cleaned"] = True
            record["secrets_cleaned_at"] = _now()
            record["health_status"] = health_status
            return cleared


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
