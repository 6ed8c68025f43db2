"""
CSRF rejection errors.
All of them mean "request rejected"; the subclass is only for server logs.
"""


class CsrfError(Exception):
    """Base class for rejected state-changing requests."""

    reason = "rejected"

    def __init__(self, message: str = None):
        super().__init__(message or self.reason)


class MissingToken(CsrfError):
    """The request carried no token at all."""

    reason = "token missing"


class TokenMismatch(CsrfError):
    """The submitted token does not match the one stored for the session."""

    reason = "token mismatch"


class ExpiredSession(CsrfError):
    """The session expired, was destroyed, or never had a token issued."""

    reason = "session expired"
