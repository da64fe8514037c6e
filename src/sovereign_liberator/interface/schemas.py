"""Pydantic request / response DTOs for the API boundary."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

from sovereign_liberator.domain.entities import (
    LiberationReport,
    LiberationRequest,
    Phase,
    PhaseResult,
    SourceFile,
)
from sovereign_liberator.domain.value_objects import (
    CoolifyTarget,
    GitHubCredentials,
    SupabaseTarget,
)


class FileIn(BaseModel):
    path: str
    content: str

    @field_validator("path")
    @classmethod
    def _relative_path(cls, v: str) -> str:
        stripped = v.strip().lstrip("/")
        if not stripped or ".." in stripped.split("/"):
            msg = f"Invalid file path: '{v}'."
            raise ValueError(msg)
        return stripped


class GitHubCredentialsIn(BaseModel):
    token: str


class SupabaseCredentialsIn(BaseModel):
    url: str
    service_key: str
    anon_key: str | None = None


class CoolifyCredentialsIn(BaseModel):
    url: str
    token: str
    server_uuid: str | None = None
    server_ip: str | None = None
    private_key_uuid: str | None = None


class TargetCredentials(BaseModel):
    github: GitHubCredentialsIn | None = None
    supabase: SupabaseCredentialsIn | None = None
    coolify: CoolifyCredentialsIn | None = None


class LiberateRequest(BaseModel):
    """Request body for ``POST /liberate``."""

    phase: Phase = Phase.ALL
    project_name: str = ""
    files: list[FileIn] = Field(default_factory=list)
    repo_name: str | None = None
    deployment_id: str | None = None
    env_vars: dict[str, str] = Field(default_factory=dict)
    secrets_to_sync: dict[str, str] = Field(default_factory=dict)
    target_credentials: TargetCredentials = Field(default_factory=TargetCredentials)

    def to_domain(self, fallback_github_token: str | None = None) -> LiberationRequest:
        """Build the domain request; raises ``ValidationFailure`` on bad credentials."""
        creds = self.target_credentials
        token = (creds.github.token if creds.github else "") or fallback_github_token
        return LiberationRequest(
            phase=self.phase,
            project_name=self.project_name.strip(),
            files=tuple(SourceFile(path=f.path, content=f.content) for f in self.files),
            repo_name=(self.repo_name or "").strip() or None,
            github=GitHubCredentials(token=token) if token else None,
            supabase=(
                SupabaseTarget.from_strings(
                    creds.supabase.url, creds.supabase.service_key, creds.supabase.anon_key
                )
                if creds.supabase
                else None
            ),
            coolify=(
                CoolifyTarget.from_strings(
                    creds.coolify.url,
                    creds.coolify.token,
                    server_uuid=creds.coolify.server_uuid,
                    server_ip=creds.coolify.server_ip,
                    private_key_uuid=creds.coolify.private_key_uuid,
                )
                if creds.coolify
                else None
            ),
            deployment_id=self.deployment_id,
            env_vars=dict(self.env_vars),
            secrets_to_sync=dict(self.secrets_to_sync),
        )


class PhaseResultOut(BaseModel):
    success: bool
    phase: Phase
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None
    http_status: int | None = None

    @classmethod
    def from_domain(cls, result: PhaseResult) -> PhaseResultOut:
        return cls(
            success=result.success,
            phase=result.phase,
            message=result.message,
            data=result.data,
            error=result.error,
            http_status=result.http_status,
        )


class LiberateResponse(BaseModel):
    """Response from ``POST /liberate``; per-phase status lives in ``results``."""

    success: bool
    message: str
    results: list[PhaseResultOut]

    @classmethod
    def from_domain(cls, report: LiberationReport) -> LiberateResponse:
        return cls(
            success=report.success,
            message=report.message,
            results=[PhaseResultOut.from_domain(r) for r in report.results],
        )


class ErrorResponse(BaseModel):
    """Standard error envelope returned on all failure paths."""

    status: str = "error"
    message: str
