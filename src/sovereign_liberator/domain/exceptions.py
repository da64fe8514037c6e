"""Domain exception hierarchy.

Adapters raise these; phase services catch them at the phase boundary and
turn them into a :class:`PhaseResult`.  Only validation errors normally
reach the interface layer, where they map to an HTTP status code.
"""

from __future__ import annotations


class LiberatorError(Exception):
    """Base exception for the entire application."""


# ── Input validation ────────────────────────────────────────────────────────


class ValidationFailure(LiberatorError):
    """The request is unusable (empty file set, missing project name, ...)."""


# ── Credentials ─────────────────────────────────────────────────────────────


class AuthenticationError(LiberatorError):
    """The remote API rejected the credential (401 / 403)."""

    def __init__(self, message: str, status_code: int = 401) -> None:
        super().__init__(message)
        self.status_code = status_code


class InsufficientScopeError(AuthenticationError):
    """The credential is valid but lacks a scope required for writes."""

    def __init__(self, message: str, granted_scopes: str = "") -> None:
        super().__init__(message, status_code=403)
        self.granted_scopes = granted_scopes


# ── Remote resources ────────────────────────────────────────────────────────


class ResourceNotFoundError(LiberatorError):
    """A remote resource does not exist (404)."""


class ConflictError(LiberatorError):
    """A remote resource already exists or conflicts with the request (409/422)."""


class RemoteApiError(LiberatorError):
    """A non-2xx response that is not otherwise classified.

    The raw response body is kept verbatim for diagnostics.
    """

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class SqlExecutionError(RemoteApiError):
    """The database rejected a SQL statement."""


class ExecutionEndpointUnavailable(RemoteApiError):
    """Neither the RPC endpoint nor the management endpoint can run SQL."""
