"""Port: source host — defined by the domain, implemented by infrastructure."""

from __future__ import annotations

from typing import Protocol, Sequence

from sovereign_liberator.domain.entities import BranchHead, HostIdentity, RepoInfo, TreeItem


class SourceHost(Protocol):
    """Abstract contract for the low-level git-data API of a source host."""

    async def get_identity(self) -> HostIdentity:
        """Return the token owner and its granted scopes."""
        ...

    async def get_repo(self, owner: str, name: str) -> RepoInfo | None:
        """Return the repository, or ``None`` when it does not exist."""
        ...

    async def create_repo(self, name: str, *, private: bool = True, description: str = "") -> RepoInfo:
        ...

    async def get_branch_head(self, owner: str, repo: str, branch: str) -> BranchHead | None:
        """Return the branch tip, or ``None`` when the branch has no commits."""
        ...

    async def put_file(
        self, owner: str, repo: str, path: str, content: str, message: str, branch: str
    ) -> None:
        """Write a single file through the contents API (creates the first commit)."""
        ...

    async def create_blob(self, owner: str, repo: str, content: str) -> str:
        ...

    async def create_tree(
        self, owner: str, repo: str, items: Sequence[TreeItem], base_tree: str | None
    ) -> str:
        ...

    async def create_commit(
        self, owner: str, repo: str, message: str, tree_sha: str, parents: Sequence[str]
    ) -> str:
        ...

    async def update_ref(
        self, owner: str, repo: str, branch: str, sha: str, *, force: bool = True
    ) -> None:
        ...

    async def create_ref(self, owner: str, repo: str, branch: str, sha: str) -> None:
        ...
