"""Supabase adapter — implements the DatabaseAdmin port.

SQL goes to the project's ``exec_sql`` RPC first.  When the project does not
expose that function (404) the hosted Management API's query endpoint is
used instead; that needs a project ref, so self-hosted targets without the
RPC cannot run migrations remotely.
"""

from __future__ import annotations

import logging

import httpx

from sovereign_liberator.domain.exceptions import (
    ExecutionEndpointUnavailable,
    RemoteApiError,
    SqlExecutionError,
)
from sovereign_liberator.domain.value_objects import SupabaseTarget
from sovereign_liberator.services.secret_redactor import redact_text

logger = logging.getLogger(__name__)

_MANAGEMENT_API = "https://api.supabase.com"


class SupabaseAdapter:
    """Concrete ``DatabaseAdmin`` for a Supabase project."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        target: SupabaseTarget,
        management_url: str = _MANAGEMENT_API,
    ) -> None:
        self._client = client
        self._target = target
        self._management_url = management_url.rstrip("/")
        self._rpc_available = True

    @property
    def url(self) -> str:
        return self._target.url

    @property
    def manages_secrets(self) -> bool:
        return self._target.project_ref is not None

    async def execute_sql(self, statement: str) -> None:
        """Run one statement; raise ``SqlExecutionError`` with the engine's message."""
        if self._rpc_available:
            resp = await self._post(
                f"{self._target.url}/rest/v1/rpc/exec_sql",
                {"query": statement},
                headers={
                    "apikey": self._target.service_key,
                    "Prefer": "return=minimal",
                },
            )
            if resp.is_success:
                return
            if resp.status_code != 404:
                raise SqlExecutionError(
                    "exec_sql rejected the statement",
                    status_code=resp.status_code,
                    body=redact_text(resp.text),
                )
            logger.info("exec_sql RPC not available on %s, using the management API", self.url)
            self._rpc_available = False

        ref = self._target.project_ref
        if ref is None:
            raise ExecutionEndpointUnavailable(
                "exec_sql function not available on target and no project ref for the "
                "management API. Migrations need to be run manually.",
                status_code=404,
            )

        resp = await self._post(
            f"{self._management_url}/v1/projects/{ref}/database/query",
            {"query": statement},
        )
        if not resp.is_success:
            raise SqlExecutionError(
                "management API rejected the statement",
                status_code=resp.status_code,
                body=redact_text(resp.text),
            )

    async def set_secret(self, name: str, value: str) -> None:
        ref = self._target.project_ref
        if ref is None:
            raise ExecutionEndpointUnavailable("Target has no secret store (no project ref).")
        resp = await self._post(
            f"{self._management_url}/v1/projects/{ref}/secrets",
            [{"name": name, "value": value}],
        )
        if not resp.is_success:
            raise RemoteApiError(
                f"Secret {name} was not stored (HTTP {resp.status_code})",
                status_code=resp.status_code,
                body=redact_text(resp.text),
            )

    async def _post(
        self,
        url: str,
        payload: object,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        all_headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._target.service_key}",
            **(headers or {}),
        }
        try:
            return await self._client.post(url, json=payload, headers=all_headers)
        except httpx.HTTPError as exc:
            raise RemoteApiError(f"Network error calling {url}: {exc}") from exc
