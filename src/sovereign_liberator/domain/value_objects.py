"""Value objects — self-validating domain primitives."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from sovereign_liberator.domain.exceptions import ValidationFailure

_SUPABASE_REF_RE = re.compile(r"^https?://(?P<ref>[a-z0-9]+)\.supabase\.co", re.IGNORECASE)
_HTTP_URL_RE = re.compile(r"^https?://[^\s/]+", re.IGNORECASE)
_SLUG_RE = re.compile(r"[^a-z0-9]")


def repo_slug(name: str) -> str:
    """Lower-case *name* and replace everything outside ``[a-z0-9]`` with ``-``."""
    return _SLUG_RE.sub("-", name.strip().lower())


def _require_url(url: str, label: str) -> str:
    url = url.strip().rstrip("/")
    if not _HTTP_URL_RE.match(url):
        raise ValidationFailure(f"Invalid {label} URL: '{url}'. Expected an http(s) URL.")
    return url


@dataclass(frozen=True, slots=True)
class GitHubCredentials:
    """A personal access token for the source host."""

    token: str = field(repr=False)

    def __post_init__(self) -> None:
        if not self.token.strip():
            raise ValidationFailure("GitHub token must not be empty.")


@dataclass(frozen=True, slots=True)
class SupabaseTarget:
    """Target database project: REST URL plus service credentials.

    The project *ref* is derived from hosted URLs like
    ``https://abcd1234.supabase.co``; self-hosted URLs have none.
    """

    url: str
    service_key: str = field(repr=False)
    anon_key: str | None = field(default=None, repr=False)

    @classmethod
    def from_strings(
        cls, url: str, service_key: str, anon_key: str | None = None
    ) -> SupabaseTarget:
        if not service_key.strip():
            raise ValidationFailure("Supabase service key must not be empty.")
        return cls(url=_require_url(url, "Supabase"), service_key=service_key, anon_key=anon_key)

    @property
    def project_ref(self) -> str | None:
        match = _SUPABASE_REF_RE.match(self.url)
        return match["ref"].lower() if match else None


@dataclass(frozen=True, slots=True)
class CoolifyTarget:
    """Deployment platform endpoint and API token."""

    url: str
    token: str = field(repr=False)
    server_uuid: str | None = None
    server_ip: str | None = None
    private_key_uuid: str | None = None

    @classmethod
    def from_strings(
        cls,
        url: str,
        token: str,
        server_uuid: str | None = None,
        server_ip: str | None = None,
        private_key_uuid: str | None = None,
    ) -> CoolifyTarget:
        if not token.strip():
            raise ValidationFailure("Coolify token must not be empty.")
        return cls(
            url=_require_url(url, "Coolify"),
            token=token,
            server_uuid=server_uuid,
            server_ip=server_ip,
            private_key_uuid=private_key_uuid,
        )
