"""Coolify REST API adapter — implements the DeployPlatform port."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from sovereign_liberator.domain.entities import ApplicationSpec, PlatformProject
from sovereign_liberator.domain.exceptions import (
    AuthenticationError,
    ConflictError,
    RemoteApiError,
    ResourceNotFoundError,
)
from sovereign_liberator.domain.value_objects import CoolifyTarget
from sovereign_liberator.services.secret_redactor import redact_text

logger = logging.getLogger(__name__)


class CoolifyAdapter:
    """Concrete DeployPlatform backed by the Coolify v1 API."""

    def __init__(self, client: httpx.AsyncClient, target: CoolifyTarget) -> None:
        self._client = client
        self._base = f"{target.url}/api/v1"
        self._headers: dict[str, str] = {
            "Authorization": f"Bearer {target.token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    # ── Servers ─────────────────────────────────────────────────────────

    async def list_servers(self) -> list[dict[str, Any]]:
        try:
            resp = await self._request("GET", "/servers")
        except ResourceNotFoundError as exc:
            raise ResourceNotFoundError(
                "Coolify URL is incorrect: /api/v1/servers was not found."
            ) from exc
        data = resp.json()
        return data if isinstance(data, list) else []

    async def create_server(self, name: str, ip: str, private_key_uuid: str) -> str:
        resp = await self._request(
            "POST",
            "/servers",
            json={
                "name": name,
                "ip": ip,
                "port": 22,
                "user": "root",
                "private_key_uuid": private_key_uuid,
                "instant_validate": True,
            },
        )
        return resp.json()["uuid"]

    async def delete_server(self, server_uuid: str) -> None:
        await self._request("DELETE", f"/servers/{server_uuid}")

    # ── Projects ────────────────────────────────────────────────────────

    async def list_projects(self) -> list[PlatformProject]:
        resp = await self._request("GET", "/projects")
        data = resp.json()
        if not isinstance(data, list):
            return []
        return [PlatformProject(uuid=p["uuid"], name=p.get("name", "")) for p in data if "uuid" in p]

    async def create_project(self, name: str, description: str = "") -> str:
        resp = await self._request(
            "POST", "/projects", json={"name": name, "description": description}
        )
        return resp.json()["uuid"]

    async def delete_project(self, project_uuid: str) -> None:
        await self._request("DELETE", f"/projects/{project_uuid}")

    # ── Applications ────────────────────────────────────────────────────

    async def list_applications(self) -> list[dict[str, Any]]:
        resp = await self._request("GET", "/applications")
        data = resp.json()
        if not isinstance(data, list):
            return []
        return [a for a in data if isinstance(a, dict) and "uuid" in a]

    async def create_nixpacks_application(self, spec: ApplicationSpec) -> str:
        payload = _application_payload(spec)
        payload.update(build_pack="nixpacks", ports_exposes="3000")
        resp = await self._request("POST", "/applications/public", json=payload)
        return resp.json()["uuid"]

    async def create_dockerfile_application(self, spec: ApplicationSpec) -> str:
        payload = _application_payload(spec)
        payload.update(build_pack="dockerfile", dockerfile_location="/Dockerfile", ports_exposes="80")
        resp = await self._request("POST", "/applications/dockerfile", json=payload)
        return resp.json()["uuid"]

    async def delete_application(self, app_uuid: str) -> None:
        await self._request("DELETE", f"/applications/{app_uuid}")

    async def add_env(self, app_uuid: str, key: str, value: str) -> None:
        await self._request(
            "POST",
            f"/applications/{app_uuid}/envs",
            json={"key": key, "value": value, "is_preview": False},
        )

    async def update_env(self, app_uuid: str, key: str, value: str) -> None:
        await self._request(
            "PATCH",
            f"/applications/{app_uuid}/envs",
            json={"key": key, "value": value, "is_preview": False},
        )

    async def get_application(self, app_uuid: str) -> dict[str, Any]:
        resp = await self._request("GET", f"/applications/{app_uuid}")
        data = resp.json()
        return data if isinstance(data, dict) else {}

    # ── Deployments ─────────────────────────────────────────────────────

    async def deploy(self, app_uuid: str) -> str | None:
        """GET /deploy?uuid=…&force=true → the deployment UUID, if reported."""
        resp = await self._request("GET", "/deploy", params={"uuid": app_uuid, "force": "true"})
        data = resp.json()
        if isinstance(data, dict):
            if data.get("deployment_uuid"):
                return data["deployment_uuid"]
            deployments = data.get("deployments") or []
            if deployments and isinstance(deployments[0], dict):
                return deployments[0].get("deployment_uuid")
        return None

    async def get_deployment_logs(self, deployment_uuid: str) -> str:
        resp = await self._request("GET", f"/deployments/{deployment_uuid}/logs")
        try:
            data = resp.json()
        except ValueError:
            return resp.text
        if isinstance(data, dict):
            logs = data.get("logs", "")
            return logs if isinstance(logs, str) else str(logs)
        return str(data)

    # ── Transport ───────────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Perform a Coolify API request with error translation."""
        url = f"{self._base}{endpoint}"
        try:
            resp = await self._client.request(
                method, url, headers=self._headers, json=json, params=params
            )
        except httpx.HTTPError as exc:
            raise RemoteApiError(f"Network error calling {method} {url}: {exc}") from exc

        if resp.is_success:
            return resp

        body = redact_text(resp.text)
        status = resp.status_code
        logger.debug("Coolify %s %s → HTTP %d: %s", method, endpoint, status, body[:300])

        if status in (401, 403):
            raise AuthenticationError("Coolify token is invalid or expired.", status_code=status)
        if status == 404:
            raise ResourceNotFoundError(f"Coolify resource not found: {endpoint}")
        if status == 409:
            raise ConflictError(f"Coolify rejected {method} {endpoint}: {body[:200]}")
        raise RemoteApiError(
            f"Coolify API returned HTTP {status} for {method} {endpoint}",
            status_code=status,
            body=body,
        )


def _application_payload(spec: ApplicationSpec) -> dict[str, Any]:
    return {
        "project_uuid": spec.project_uuid,
        "server_uuid": spec.server_uuid,
        "environment_name": spec.environment_name,
        "git_repository": spec.git_repository,
        "git_branch": spec.git_branch,
        "name": spec.name,
        "instant_deploy": False,
    }
