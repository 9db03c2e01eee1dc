"""Error taxonomy shared by repositories, services and the HTTP layer.

Learn: Every failure in the core is one of these typed errors. They
travel unchanged from the repository up to the façade; the only place
that turns them into HTTP responses is the exception handler in
main.py, which reads `status_code` off the error.
"""

from typing import Any, Optional


class UserDirectoryError(Exception):
    """Base class for all domain failures."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
        # Set by the user aggregate when the failure interrupted a saga.
        self.trace: Optional[Any] = None


class NotFoundError(UserDirectoryError):
    """A referenced user or role does not exist."""

    status_code = 404


class BadCredentialsError(UserDirectoryError):
    """Login failed. Never says whether the user or the password was wrong."""

    status_code = 401


class DataError(UserDirectoryError):
    """Request data is invalid (duplicate username, missing field)."""

    status_code = 400


class DatabaseError(UserDirectoryError):
    """The persistence layer failed or touched an unexpected number of rows."""

    status_code = 500


class ForbiddenError(UserDirectoryError):
    """The authorization engine denied the call."""

    status_code = 403


class InvalidTokenError(UserDirectoryError):
    """Bearer token is missing, malformed, badly signed or expired."""

    status_code = 401
