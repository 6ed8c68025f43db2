from fastapi import Request, HTTPException
import hmac
import logging
import bcrypt

from formguard.utils.session_store import SessionExpired, SessionStore
from formguard.utils.sessions import peek_session_id

logger = logging.getLogger(__name__)

USER_KEY = "user"


def verify_login(app_settings, username: str, password: str) -> bool:
    """Verify admin login credentials using secure comparison."""
    # Check username with constant-time comparison
    if not hmac.compare_digest(username.encode(), app_settings.admin_username.encode()):
        return False
    
    # If password hash is set, use bcrypt verification
    if app_settings.admin_password_hash:
        try:
            return bcrypt.checkpw(
                password.encode('utf-8'), 
                app_settings.admin_password_hash.encode('utf-8')
            )
        except ValueError:
            logger.error("admin_password_hash is not a valid bcrypt hash")
            return False
    
    # Fallback to plaintext comparison (deprecated)
    return hmac.compare_digest(password.encode(), app_settings.admin_password.encode())


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def get_current_user(request: Request) -> str | None:
    """Get current logged in user from session."""
    session_id = peek_session_id(request)
    if not session_id:
        return None
    try:
        return get_session_store(request).get(session_id, USER_KEY)
    except SessionExpired:
        return None


def require_auth(request: Request) -> str:
    """Dependency to require authentication. Sync so FastAPI runs it in the threadpool."""
    user = get_current_user(request)
    if not user:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user
