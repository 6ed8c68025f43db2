"""
Session identity helpers.
The signed session cookie (Starlette SessionMiddleware) carries only the
session id; everything else lives in the SessionStore.
"""
import logging
import secrets
from typing import Optional

from fastapi import Request

from formguard.utils.session_store import SessionStore

logger = logging.getLogger(__name__)

SESSION_ID_KEY = "sid"


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


def short_id(session_id: Optional[str]) -> str:
    """Truncated id for log lines."""
    return f"{session_id[:8]}..." if session_id else "<none>"


def peek_session_id(request: Request) -> Optional[str]:
    """Get session id from the cookie without creating one."""
    return request.session.get(SESSION_ID_KEY)


def get_session_id(request: Request) -> str:
    """Get session id from the cookie, starting a new session if absent."""
    session_id = request.session.get(SESSION_ID_KEY)
    if not session_id:
        session_id = new_session_id()
        request.session[SESSION_ID_KEY] = session_id
        logger.debug(f"Started session {short_id(session_id)}")
    return session_id


def regenerate_session(request: Request, store: SessionStore) -> str:
    """Move the client to a fresh session id, dropping the old record."""
    old_id = peek_session_id(request)
    if old_id:
        store.delete(old_id)
    session_id = new_session_id()
    request.session.clear()
    request.session[SESSION_ID_KEY] = session_id
    logger.debug(f"Regenerated session {short_id(old_id)} -> {short_id(session_id)}")
    return session_id


def destroy_session(request: Request, store: SessionStore):
    """Delete the server-side record and clear the cookie."""
    session_id = peek_session_id(request)
    if session_id:
        store.delete(session_id)
    request.session.clear()
    logger.debug(f"Destroyed session {short_id(session_id)}")
