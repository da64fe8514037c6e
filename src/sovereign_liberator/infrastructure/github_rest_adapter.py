"""GitHub REST API adapter — implements the SourceHost port."""

from __future__ import annotations

import base64
import logging
from datetime import datetime, timezone
from typing import Any, Sequence

import httpx

from sovereign_liberator.domain.entities import BranchHead, HostIdentity, RepoInfo, TreeItem
from sovereign_liberator.domain.exceptions import (
    AuthenticationError,
    ConflictError,
    RemoteApiError,
    ResourceNotFoundError,
)
from sovereign_liberator.services.secret_redactor import redact_text

logger = logging.getLogger(__name__)

_GITHUB_API = "https://api.github.com"
_USER_AGENT = "sovereign-liberator/1.0"


class GitHubRestAdapter:
    """Concrete SourceHost backed by the GitHub v3 git-data REST API."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        token: str,
        api_url: str = _GITHUB_API,
    ) -> None:
        self._client = client
        self._api_url = api_url.rstrip("/")
        self._headers: dict[str, str] = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": _USER_AGENT,
            "Authorization": f"Bearer {token}",
        }

    # ── Identity ────────────────────────────────────────────────────────

    async def get_identity(self) -> HostIdentity:
        """GET /user → login plus the ``X-OAuth-Scopes`` header."""
        resp = await self._request("GET", "/user", auth_probe=True)
        data = resp.json()
        raw_scopes = resp.headers.get("x-oauth-scopes", "")
        scopes = tuple(s.strip() for s in raw_scopes.split(",") if s.strip())
        return HostIdentity(login=data["login"], scopes=scopes)

    # ── Repositories ────────────────────────────────────────────────────

    async def get_repo(self, owner: str, name: str) -> RepoInfo | None:
        try:
            resp = await self._request("GET", f"/repos/{owner}/{name}")
        except ResourceNotFoundError:
            return None
        return _repo_info(resp.json())

    async def create_repo(
        self, name: str, *, private: bool = True, description: str = ""
    ) -> RepoInfo:
        resp = await self._request(
            "POST",
            "/user/repos",
            json={
                "name": name,
                "description": description,
                "private": private,
                "auto_init": False,
            },
        )
        return _repo_info(resp.json())

    async def get_branch_head(self, owner: str, repo: str, branch: str) -> BranchHead | None:
        """Resolve ``refs/heads/<branch>`` and its commit's tree.

        An empty repository answers 404 or 409 on the ref lookup; both mean
        "no commits yet".
        """
        try:
            ref = await self._request("GET", f"/repos/{owner}/{repo}/git/ref/heads/{branch}")
        except (ResourceNotFoundError, ConflictError):
            return None
        commit_sha = ref.json()["object"]["sha"]
        commit = await self._request("GET", f"/repos/{owner}/{repo}/git/commits/{commit_sha}")
        return BranchHead(commit_sha=commit_sha, tree_sha=commit.json()["tree"]["sha"])

    async def put_file(
        self, owner: str, repo: str, path: str, content: str, message: str, branch: str
    ) -> None:
        await self._request(
            "PUT",
            f"/repos/{owner}/{repo}/contents/{path}",
            json={
                "message": message,
                "content": _b64(content),
                "branch": branch,
            },
        )

    # ── Git data ────────────────────────────────────────────────────────

    async def create_blob(self, owner: str, repo: str, content: str) -> str:
        resp = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/git/blobs",
            json={"content": _b64(content), "encoding": "base64"},
        )
        return resp.json()["sha"]

    async def create_tree(
        self, owner: str, repo: str, items: Sequence[TreeItem], base_tree: str | None
    ) -> str:
        payload: dict[str, Any] = {"tree": [item.to_payload() for item in items]}
        if base_tree:
            payload["base_tree"] = base_tree
        resp = await self._request("POST", f"/repos/{owner}/{repo}/git/trees", json=payload)
        return resp.json()["sha"]

    async def create_commit(
        self, owner: str, repo: str, message: str, tree_sha: str, parents: Sequence[str]
    ) -> str:
        resp = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/git/commits",
            json={"message": message, "tree": tree_sha, "parents": list(parents)},
        )
        return resp.json()["sha"]

    async def update_ref(
        self, owner: str, repo: str, branch: str, sha: str, *, force: bool = True
    ) -> None:
        await self._request(
            "PATCH",
            f"/repos/{owner}/{repo}/git/refs/heads/{branch}",
            json={"sha": sha, "force": force},
        )

    async def create_ref(self, owner: str, repo: str, branch: str, sha: str) -> None:
        await self._request(
            "POST",
            f"/repos/{owner}/{repo}/git/refs",
            json={"ref": f"refs/heads/{branch}", "sha": sha},
        )

    # ── Transport ───────────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        json: dict[str, Any] | None = None,
        auth_probe: bool = False,
    ) -> httpx.Response:
        """Perform a GitHub API request with error translation."""
        url = f"{self._api_url}{endpoint}"
        try:
            resp = await self._client.request(method, url, headers=self._headers, json=json)
        except httpx.HTTPError as exc:
            raise RemoteApiError(f"Network error calling {method} {url}: {exc}") from exc

        if resp.is_success:
            return resp

        body = redact_text(resp.text)
        status = resp.status_code
        logger.debug("GitHub %s %s → HTTP %d: %s", method, endpoint, status, body[:300])

        if status == 401 or (auth_probe and status == 403):
            raise AuthenticationError(
                "GitHub token is invalid or expired.", status_code=status
            )

        if status == 403 and resp.headers.get("x-ratelimit-remaining", "") == "0":
            reset_raw = resp.headers.get("x-ratelimit-reset", "")
            try:
                reset_str = datetime.fromtimestamp(int(reset_raw), tz=timezone.utc).strftime(
                    "%Y-%m-%d %H:%M:%S UTC"
                )
            except (ValueError, OSError):
                reset_str = reset_raw or "unknown"
            raise RemoteApiError(
                f"GitHub API rate limit exceeded. Resets at {reset_str}.",
                status_code=status,
                body=body,
            )

        if status == 404:
            raise ResourceNotFoundError(f"GitHub resource not found: {endpoint}")

        if status in (409, 422):
            raise ConflictError(f"GitHub rejected {method} {endpoint}: {_message(resp)}")

        raise RemoteApiError(
            f"GitHub API returned HTTP {status} for {method} {endpoint}: {_message(resp)}",
            status_code=status,
            body=body,
        )


def _repo_info(data: dict[str, Any]) -> RepoInfo:
    return RepoInfo(
        owner=data["owner"]["login"],
        name=data["name"],
        html_url=data["html_url"],
    )


def _b64(content: str) -> str:
    return base64.b64encode(content.encode("utf-8")).decode("ascii")


def _message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return redact_text(resp.text[:200]) or f"HTTP {resp.status_code}"
    if isinstance(data, dict) and data.get("message"):
        return redact_text(str(data["message"]))
    return f"HTTP {resp.status_code}"
