"""
CSRF protection utilities.
Generates per-session tokens, embeds them in forms and validates them
against the copy held in the session store.
"""
import logging
import secrets
from typing import NamedTuple, Optional

from fastapi import Request
from markupsafe import Markup
from starlette.concurrency import run_in_threadpool

from formguard.utils.exceptions import CsrfError, ExpiredSession, MissingToken, TokenMismatch
from formguard.utils.session_store import SessionExpired, SessionStore
from formguard.utils.sessions import peek_session_id, short_id

logger = logging.getLogger(__name__)

CSRF_TOKEN_KEY = "_csrf_token"


class HiddenField(NamedTuple):
    """Hidden form input carrying the token."""

    name: str
    value: str

    def __html__(self) -> Markup:
        # Markup.format escapes both arguments
        return Markup('<input type="hidden" name="{}" value="{}">').format(self.name, self.value)

    def __str__(self) -> str:
        return str(self.__html__())


def generate_csrf_token(nbytes: int = 32) -> str:
    """Random URL-safe token with nbytes of entropy."""
    return secrets.token_urlsafe(nbytes)


def tokens_match(expected: str, submitted: str) -> bool:
    """Constant-time comparison that also accepts non-ASCII input."""
    return secrets.compare_digest(expected.encode("utf-8"), submitted.encode("utf-8"))


class CsrfGuard:
    """
    Issues and verifies CSRF tokens for sessions held in a SessionStore.

    With rotate_on_verify enabled every accepted token is replaced, so a
    token can be used for exactly one state-changing request.
    """

    def __init__(
        self,
        store: SessionStore,
        field_name: str = "csrf_token",
        token_bytes: int = 32,
        rotate_on_verify: bool = False
    ):
        self.store = store
        self.field_name = field_name
        self.token_bytes = token_bytes
        self.rotate_on_verify = rotate_on_verify

    def _new_token(self) -> str:
        return generate_csrf_token(self.token_bytes)

    def issue(self, session_id: str) -> str:
        """Return the session's token, generating it on first use."""
        def first_token():
            logger.debug(f"Issued CSRF token for session {short_id(session_id)}")
            return self._new_token()

        return self.store.setdefault(session_id, CSRF_TOKEN_KEY, first_token)

    def embed(self, token: str) -> HiddenField:
        return HiddenField(self.field_name, token)

    def rotate(self, session_id: str) -> str:
        """Replace the session's token unconditionally."""
        token = self._new_token()
        self.store.set(session_id, CSRF_TOKEN_KEY, token)
        logger.debug(f"Rotated CSRF token for session {short_id(session_id)}")
        return token

    def check(self, session_id: Optional[str], submitted: Optional[str]) -> str:
        """
        Verify a submitted token.
        Returns the token the client should use next (a new one when
        rotation is enabled). Raises a CsrfError subclass on rejection.
        """
        if not submitted:
            raise MissingToken()

        if not session_id:
            raise ExpiredSession("no session")
        try:
            stored = self.store.get(session_id, CSRF_TOKEN_KEY)
        except SessionExpired:
            raise ExpiredSession()
        if not stored:
            raise ExpiredSession("no token issued")

        if not tokens_match(stored, submitted):
            raise TokenMismatch()

        if not self.rotate_on_verify:
            return stored

        fresh = self._new_token()
        if not self.store.compare_and_swap(session_id, CSRF_TOKEN_KEY, stored, fresh):
            # A concurrent request consumed the same token first
            raise TokenMismatch("token already used")
        logger.debug(f"Rotated CSRF token for session {short_id(session_id)} after use")
        return fresh

    def verify(self, session_id: Optional[str], submitted: Optional[str]) -> bool:
        """Validate a token. Returns True if valid, False otherwise."""
        try:
            self.check(session_id, submitted)
        except CsrfError:
            return False
        return True


def get_csrf_guard(request: Request) -> CsrfGuard:
    return request.app.state.csrf_guard


async def extract_submitted_token(request: Request, guard: CsrfGuard, header_name: str) -> Optional[str]:
    """Token from the header, falling back to the form field."""
    token = request.headers.get(header_name)
    if token:
        return token

    content_type = request.headers.get("content-type", "")
    if content_type.startswith(("application/x-www-form-urlencoded", "multipart/form-data")):
        form = await request.form()
        value = form.get(guard.field_name)
        if isinstance(value, str):
            return value
    return None


async def verify_csrf_token(request: Request) -> str:
    """
    Dependency to verify CSRF token from header or form data.
    Raises CsrfError if invalid; the app turns it into a rejection response.
    """
    guard = get_csrf_guard(request)
    header_name = request.app.state.settings.csrf_header_name
    submitted = await extract_submitted_token(request, guard, header_name)
    session_id = peek_session_id(request)

    try:
        # Store I/O may block, keep it off the event loop
        token = await run_in_threadpool(guard.check, session_id, submitted)
    except CsrfError as e:
        logger.warning(
            f"CSRF rejection ({e}) for {request.method} {request.url.path}, "
            f"session {short_id(session_id)}"
        )
        raise

    request.state.csrf_token = token
    return token
