# tendercost/core/errors.py
"""
Errors carried as state values by the client session flow.

None of these are raised into callers of the session: the bootstrap and the
synchronizer store them in their `error` field and the consumer decides how
to render them.
"""


class SessionError(Exception):
    """Base class for client session failures."""


class AuthUnavailableError(SessionError):
    """The auth service dependency was not supplied."""

    def __init__(self, message: str = "Auth service not provided."):
        super().__init__(message)


class StoreUnavailableError(SessionError):
    """The profile store dependency was not supplied."""

    def __init__(self, message: str = "Profile store not provided."):
        super().__init__(message)


class AnonymousSignInError(SessionError):
    """The auth service rejected the anonymous sign-in request."""
