"""Publish-repository phase — one atomic commit of the sanitized file set.

Steps, in order, each reading and writing a single :class:`PublishContext`:

``validate_token → check_scopes → clean_files → resolve_or_create_repo →
establish_base_commit → build_tree → create_tree → create_commit → update_ref``

The ref update is the last write: if anything before it fails, the branch
is untouched and the orphaned tree/commit objects are unreachable garbage
on the remote side.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Sequence

import httpx

from sovereign_liberator.domain.entities import (
    BranchHead,
    CleaningResult,
    Phase,
    PhaseResult,
    SourceFile,
    TreeItem,
)
from sovereign_liberator.domain.exceptions import (
    AuthenticationError,
    ConflictError,
    InsufficientScopeError,
    LiberatorError,
    RemoteApiError,
    ResourceNotFoundError,
    ValidationFailure,
)
from sovereign_liberator.domain.ports.source_host import SourceHost
from sovereign_liberator.services.content_sanitizer import clean_file_content
from sovereign_liberator.services.pattern_catalog import (
    PatternCatalog,
    default_catalog,
    is_package_manifest,
)
from sovereign_liberator.services.secret_redactor import redact_text
from sovereign_liberator.services.syntax_validator import validate_syntax

logger = logging.getLogger(__name__)

INLINE_LIMIT_BYTES = 100 * 1024
REQUIRED_SCOPE = "repo"
REPO_DESCRIPTION = "Liberated project: vendor-neutral and self-hostable"


@dataclass
class PublishContext:
    """Phase-local state threaded through every publish step."""

    repo_name: str
    files: Sequence[SourceFile]
    branch: str
    owner: str = ""
    scopes: tuple[str, ...] = ()
    cleaning: list[CleaningResult] = field(default_factory=list)
    publishable: list[SourceFile] = field(default_factory=list)
    repo_url: str = ""
    was_created: bool = False
    base: BranchHead | None = None
    tree_items: list[TreeItem] = field(default_factory=list)
    tree_sha: str = ""
    commit_sha: str = ""
    syntax_warnings: list[dict[str, str]] = field(default_factory=list)

    @property
    def total_changes(self) -> int:
        return sum(len(r.changes) for r in self.cleaning if not r.removed)


class PublishRepoService:
    """Source-control publisher.

    Parameters
    ----------
    catalog:
        Proprietary pattern ruleset used to clean each file.
    branch:
        Branch that receives the liberation commit.
    inline_limit_bytes:
        Files whose UTF-8 size exceeds this are uploaded as blobs first.
    bootstrap_attempts / bootstrap_delay:
        How often (and how patiently) to re-read the branch after writing the
        first commit into an empty repository.
    """

    def __init__(
        self,
        catalog: PatternCatalog | None = None,
        branch: str = "main",
        inline_limit_bytes: int = INLINE_LIMIT_BYTES,
        bootstrap_attempts: int = 3,
        bootstrap_delay: float = 1.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._catalog = catalog or default_catalog()
        self._branch = branch
        self._inline_limit = inline_limit_bytes
        self._bootstrap_attempts = max(bootstrap_attempts, 1)
        self._bootstrap_delay = bootstrap_delay
        self._sleep = sleep

    # ── Public entry point ──────────────────────────────────────────────

    async def run(
        self, host: SourceHost, repo_name: str, files: Sequence[SourceFile]
    ) -> PhaseResult:
        """Publish *files* to *repo_name*; never raises."""
        logger.info("Publish phase starting: repo=%s files=%d", repo_name, len(files))
        ctx = PublishContext(repo_name=repo_name, files=files, branch=self._branch)
        try:
            if not files:
                raise ValidationFailure("No files supplied for publication.")
            await self._validate_token(host, ctx)
            self._check_scopes(ctx)
            self._clean_files(ctx)
            await self._resolve_or_create_repo(host, ctx)
            await self._establish_base_commit(host, ctx)
            await self._build_tree(host, ctx)
            await self._create_tree(host, ctx)
            await self._create_commit(host, ctx)
            await self._update_ref(host, ctx)
        except InsufficientScopeError as exc:
            return _failure(
                "GitHub token lacks the 'repo' permission",
                f"{exc} Granted scopes: {exc.granted_scopes or 'none'}. Required: repo.",
                403,
            )
        except AuthenticationError as exc:
            return _failure("GitHub token is invalid or expired", str(exc), exc.status_code)
        except ValidationFailure as exc:
            return _failure("Nothing to publish", str(exc), 400)
        except RemoteApiError as exc:
            return _failure(f"GitHub step failed for {repo_name}", str(exc), exc.status_code or 502)
        except (LiberatorError, httpx.HTTPError) as exc:
            logger.exception("Publish phase failed for %s", repo_name)
            return _failure(f"GitHub step failed for {repo_name}", str(exc), 502)

        logger.info("Publish phase complete: %s @ %s", ctx.repo_url, ctx.commit_sha[:7])
        return PhaseResult(
            success=True,
            phase=Phase.GITHUB,
            message=f"Repository {repo_name} published with {len(ctx.publishable)} files",
            http_status=201,
            data=self._output(ctx),
        )

    # ── Steps ───────────────────────────────────────────────────────────

    async def _validate_token(self, host: SourceHost, ctx: PublishContext) -> None:
        identity = await host.get_identity()
        ctx.owner = identity.login
        ctx.scopes = identity.scopes
        logger.info("GitHub token belongs to %s", ctx.owner)

    def _check_scopes(self, ctx: PublishContext) -> None:
        if REQUIRED_SCOPE not in ctx.scopes:
            raise InsufficientScopeError(
                "The token cannot create or write repositories.",
                granted_scopes=", ".join(ctx.scopes),
            )

    def _clean_files(self, ctx: PublishContext) -> None:
        for file in ctx.files:
            if self._catalog.is_lockfile(file.path):
                continue
            result = clean_file_content(file.path, file.content, self._catalog)
            ctx.cleaning.append(result)
            if result.removed:
                continue
            ctx.publishable.append(SourceFile(path=file.path, content=result.cleaned_content))
            if result.changed:
                check = validate_syntax(result.cleaned_content, file.path)
                if not check.valid:
                    logger.warning("Cleaned %s may be malformed: %s", file.path, check.error)
                    ctx.syntax_warnings.append({"path": file.path, "error": check.error or ""})

        logger.info(
            "Cleaned %d files: %d publishable, %d changes",
            len(ctx.files),
            len(ctx.publishable),
            ctx.total_changes,
        )
        if not ctx.publishable:
            raise ValidationFailure("Every file was filtered out or removed during cleaning.")

    async def _resolve_or_create_repo(self, host: SourceHost, ctx: PublishContext) -> None:
        repo = await host.get_repo(ctx.owner, ctx.repo_name)
        if repo is None:
            repo = await host.create_repo(ctx.repo_name, private=True, description=REPO_DESCRIPTION)
            ctx.was_created = True
            logger.info("Created repository %s", repo.html_url)
        else:
            logger.info("Reusing repository %s", repo.html_url)
        ctx.repo_url = repo.html_url

    async def _establish_base_commit(self, host: SourceHost, ctx: PublishContext) -> None:
        """Find the parent commit; bootstrap an empty repository first."""
        if not ctx.was_created:
            ctx.base = await host.get_branch_head(ctx.owner, ctx.repo_name, ctx.branch)
        if ctx.base is not None:
            return

        readme = f"# {ctx.repo_name}\n\nLiberated project: vendor-neutral and self-hostable.\n"
        try:
            await host.put_file(
                ctx.owner, ctx.repo_name, "README.md", readme, "Initial commit", ctx.branch
            )
        except ConflictError:
            logger.info("README already present in %s, continuing", ctx.repo_name)

        for attempt in range(1, self._bootstrap_attempts + 1):
            await self._sleep(self._bootstrap_delay)
            ctx.base = await host.get_branch_head(ctx.owner, ctx.repo_name, ctx.branch)
            if ctx.base is not None:
                return
            logger.debug("Branch %s not visible yet (attempt %d)", ctx.branch, attempt)
        logger.warning("Branch %s still empty after bootstrap; committing without parent", ctx.branch)

    async def _build_tree(self, host: SourceHost, ctx: PublishContext) -> None:
        for file in ctx.publishable:
            size = len(file.content.encode("utf-8"))
            if size <= self._inline_limit:
                ctx.tree_items.append(TreeItem(path=file.path, content=file.content))
                continue
            try:
                sha = await host.create_blob(ctx.owner, ctx.repo_name, file.content)
            except (LiberatorError, httpx.HTTPError) as exc:
                logger.warning("Blob upload failed for %s (%d bytes), inlining: %s", file.path, size, exc)
                ctx.tree_items.append(TreeItem(path=file.path, content=file.content))
            else:
                ctx.tree_items.append(TreeItem(path=file.path, sha=sha))

    async def _create_tree(self, host: SourceHost, ctx: PublishContext) -> None:
        base_tree = ctx.base.tree_sha if ctx.base else None
        ctx.tree_sha = await host.create_tree(ctx.owner, ctx.repo_name, ctx.tree_items, base_tree)

    async def _create_commit(self, host: SourceHost, ctx: PublishContext) -> None:
        parents = [ctx.base.commit_sha] if ctx.base else []
        message = f"Liberation: {len(ctx.publishable)} files cleaned"
        ctx.commit_sha = await host.create_commit(
            ctx.owner, ctx.repo_name, message, ctx.tree_sha, parents
        )

    async def _update_ref(self, host: SourceHost, ctx: PublishContext) -> None:
        try:
            await host.update_ref(ctx.owner, ctx.repo_name, ctx.branch, ctx.commit_sha, force=True)
        except (ResourceNotFoundError, ConflictError):
            if ctx.base is not None:
                raise
            await host.create_ref(ctx.owner, ctx.repo_name, ctx.branch, ctx.commit_sha)

    # ── Output ──────────────────────────────────────────────────────────

    def _output(self, ctx: PublishContext) -> dict[str, Any]:
        return {
            "repo_url": ctx.repo_url,
            "repo_name": ctx.repo_name,
            "owner": ctx.owner,
            "files_count": len(ctx.publishable),
            "total_changes": ctx.total_changes,
            "was_created": ctx.was_created,
            "package_manifest_valid": package_manifest_valid(ctx.publishable),
            "commit_sha": ctx.commit_sha,
            "syntax_warnings": ctx.syntax_warnings,
            "cleaning_report": [
                {"path": r.path, "changes": list(r.changes), "removed": r.removed}
                for r in ctx.cleaning
                if r.changed
            ],
        }


def package_manifest_valid(files: Sequence[SourceFile]) -> bool:
    """Root ``package.json`` parses and has a name and a dependency map."""
    manifest = next(
        (f for f in files if f.path == "package.json"),
        next((f for f in files if is_package_manifest(f.path)), None),
    )
    if manifest is None:
        return False
    try:
        data = json.loads(manifest.content)
    except json.JSONDecodeError:
        return False
    return isinstance(data, dict) and bool(data.get("name")) and isinstance(data.get("dependencies"), dict)


def _failure(message: str, error: str, status: int | None) -> PhaseResult:
    logger.warning("Publish phase failed: %s (%s)", message, error)
    return PhaseResult(
        success=False,
        phase=Phase.GITHUB,
        message=message,
        error=redact_text(error),
        http_status=status,
    )
