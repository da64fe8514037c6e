"""Port: deployment platform — defined by the domain, implemented by infrastructure."""

from __future__ import annotations

from typing import Any, Protocol

from sovereign_liberator.domain.entities import ApplicationSpec, PlatformProject


class DeployPlatform(Protocol):
    """Abstract contract for a self-hosted PaaS control plane."""

    async def list_servers(self) -> list[dict[str, Any]]:
        """First call of every run; doubles as the connectivity probe."""
        ...

    async def create_server(self, name: str, ip: str, private_key_uuid: str) -> str:
        ...

    async def delete_server(self, server_uuid: str) -> None:
        ...

    async def list_projects(self) -> list[PlatformProject]:
        ...

    async def create_project(self, name: str, description: str = "") -> str:
        ...

    async def delete_project(self, project_uuid: str) -> None:
        ...

    async def list_applications(self) -> list[dict[str, Any]]:
        ...

    async def create_nixpacks_application(self, spec: ApplicationSpec) -> str:
        ...

    async def create_dockerfile_application(self, spec: ApplicationSpec) -> str:
        ...

    async def delete_application(self, app_uuid: str) -> None:
        ...

    async def add_env(self, app_uuid: str, key: str, value: str) -> None:
        ...

    async def update_env(self, app_uuid: str, key: str, value: str) -> None:
        """Overwrite a variable that already exists on the application."""
        ...

    async def deploy(self, app_uuid: str) -> str | None:
        """Trigger a build and return the deployment UUID when reported."""
        ...

    async def get_application(self, app_uuid: str) -> dict[str, Any]:
        ...

    async def get_deployment_logs(self, deployment_uuid: str) -> str:
        ...
