from fastapi import APIRouter, Request, Form, Depends
from fastapi.responses import JSONResponse
import logging

from formguard.utils.auth import USER_KEY, get_session_store, require_auth, verify_login
from formguard.utils.csrf import get_csrf_guard, verify_csrf_token
from formguard.utils.sessions import destroy_session, get_session_id, regenerate_session

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/csrf-token")
def csrf_token(request: Request):
    """Issue (or reuse) the session's token for API clients."""
    guard = get_csrf_guard(request)
    token = guard.issue(get_session_id(request))
    return {
        "field": guard.field_name,
        "header": request.app.state.settings.csrf_header_name,
        "token": token,
    }


@router.post("/login", dependencies=[Depends(verify_csrf_token)])
def login(request: Request, username: str = Form(...), password: str = Form(...)):
    """Process login."""
    app_settings = request.app.state.settings
    if not verify_login(app_settings, username, password):
        logger.info(f"Failed login attempt for '{username}'")
        return JSONResponse({"detail": "Invalid username or password"}, status_code=401)

    # New identity gets a new session id and token
    store = get_session_store(request)
    session_id = regenerate_session(request, store)
    store.set(session_id, USER_KEY, username)
    token = get_csrf_guard(request).rotate(session_id)

    logger.info(f"User '{username}' logged in")
    return {"user": username, "csrf_token": token}


@router.post("/logout", dependencies=[Depends(verify_csrf_token)])
def logout(request: Request):
    """Process logout."""
    destroy_session(request, get_session_store(request))
    return {"detail": "Logged out"}


@router.get("/me")
def me(user: str = Depends(require_auth)):
    return {"user": user}
