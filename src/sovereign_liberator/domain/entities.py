"""Domain entities — pure data structures with no external dependencies."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sovereign_liberator.domain.value_objects import (
    CoolifyTarget,
    GitHubCredentials,
    SupabaseTarget,
)


class Phase(str, Enum):
    """One of the three sub-pipelines, or all of them in order."""

    GITHUB = "github"
    SUPABASE = "supabase"
    COOLIFY = "coolify"
    ALL = "all"


class MigrationStatus(str, Enum):
    """Per-file outcome of the migration executor."""

    PENDING = "pending"
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


class BuildOutcome(str, Enum):
    """Classification of a polled build."""

    HEALTHY = "healthy"
    FAILED = "failed"
    INDETERMINATE = "indeterminate"


class DeploymentStatus(str, Enum):
    """Status values written into the externally owned deployment record."""

    DEPLOYING = "deploying"
    DEPLOYED = "deployed"
    BUILDING = "building"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class SourceFile:
    """A file of the project being liberated.  Identity is the path."""

    path: str
    content: str


@dataclass(frozen=True, slots=True)
class CleaningResult:
    """Outcome of sanitizing one file.  Never persisted."""

    path: str
    original_content: str
    cleaned_content: str
    changes: tuple[str, ...] = ()
    removed: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.changes)


@dataclass(frozen=True, slots=True)
class TreeItem:
    """One entry of a git tree-creation call: inline content or a blob SHA."""

    path: str
    content: str | None = None
    sha: str | None = None
    mode: str = "100644"
    type: str = "blob"

    def to_payload(self) -> dict[str, str]:
        payload = {"path": self.path, "mode": self.mode, "type": self.type}
        if self.sha is not None:
            payload["sha"] = self.sha
        else:
            payload["content"] = self.content or ""
        return payload


@dataclass(frozen=True, slots=True)
class RepoInfo:
    """A remote repository as reported by the source host."""

    owner: str
    name: str
    html_url: str


@dataclass(frozen=True, slots=True)
class BranchHead:
    """Tip of a branch: the commit SHA and the SHA of its tree."""

    commit_sha: str
    tree_sha: str


@dataclass(frozen=True, slots=True)
class HostIdentity:
    """The authenticated user behind a source-host token."""

    login: str
    scopes: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class MigrationFile:
    """A ``.sql`` file from the conventional migrations directory."""

    path: str
    content: str

    @property
    def name(self) -> str:
        return self.path.rsplit("/", maxsplit=1)[-1]


@dataclass(frozen=True, slots=True)
class PhaseResult:
    """Immutable outcome of one phase, part of the pipeline execution trace."""

    success: bool
    phase: Phase
    message: str
    data: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    http_status: int | None = None


@dataclass(frozen=True, slots=True)
class LiberationReport:
    """What the orchestrator hands back to the caller."""

    success: bool
    message: str
    results: list[PhaseResult] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class LiberationRequest:
    """Everything one pipeline invocation needs; no state survives between runs."""

    phase: Phase
    project_name: str
    files: tuple[SourceFile, ...] = ()
    repo_name: str | None = None
    github: GitHubCredentials | None = None
    supabase: SupabaseTarget | None = None
    coolify: CoolifyTarget | None = None
    deployment_id: str | None = None
    env_vars: dict[str, str] = field(default_factory=dict)
    secrets_to_sync: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class PlatformProject:
    """A project on the deployment platform."""

    uuid: str
    name: str


@dataclass(frozen=True, slots=True)
class ApplicationSpec:
    """Parameters shared by both application-creation calls."""

    project_uuid: str
    server_uuid: str
    git_repository: str
    name: str
    git_branch: str = "main"
    environment_name: str = "production"
