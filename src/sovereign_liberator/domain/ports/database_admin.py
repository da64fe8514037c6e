"""Port: database administration — defined by the domain, implemented by infrastructure."""

from __future__ import annotations

from typing import Protocol


class DatabaseAdmin(Protocol):
    """Abstract contract for running SQL and managing secrets on a target project."""

    @property
    def url(self) -> str:
        ...

    @property
    def manages_secrets(self) -> bool:
        """True when the target exposes a secret store."""
        ...

    async def execute_sql(self, statement: str) -> None:
        """Run one statement; raise ``SqlExecutionError`` with the engine's message."""
        ...

    async def set_secret(self, name: str, value: str) -> None:
        ...
