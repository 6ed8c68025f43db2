from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.templating import Jinja2Templates
from starlette.middleware.sessions import SessionMiddleware
import logging
import os

from config import Settings, settings
from formguard.routes import posts, session_routes
from formguard.utils.csrf import CsrfGuard
from formguard.utils.exceptions import CsrfError
from formguard.utils.jinja_filters import setup_jinja_filters
from formguard.utils.session_store import SessionStore, build_session_store

logger = logging.getLogger(__name__)

# Same body for every sub-case; the reason only goes to the log
REJECTION_DETAIL = "Invalid CSRF token"

TEMPLATES_DIR = os.path.join(os.path.dirname(__file__), "templates")


def create_app(app_settings: Settings = None, store: SessionStore = None) -> FastAPI:
    """Factory function to create the app."""
    app_settings = app_settings or settings
    store = store or build_session_store(app_settings)

    app = FastAPI(
        title="formguard",
        docs_url="/api/docs" if app_settings.debug else None,
        redoc_url="/api/redoc" if app_settings.debug else None
    )

    # Signed cookie holding only the session id
    app.add_middleware(
        SessionMiddleware,
        secret_key=app_settings.secret_key,
        session_cookie=app_settings.session_cookie,
        max_age=app_settings.session_max_age,
        https_only=app_settings.session_https_only,
        same_site="lax"
    )

    app.state.settings = app_settings
    app.state.session_store = store
    app.state.csrf_guard = CsrfGuard(
        store,
        field_name=app_settings.csrf_field_name,
        token_bytes=app_settings.csrf_token_bytes,
        rotate_on_verify=app_settings.csrf_rotate_on_verify
    )

    templates = Jinja2Templates(directory=TEMPLATES_DIR)
    setup_jinja_filters(templates)
    app.state.templates = templates

    @app.exception_handler(CsrfError)
    async def csrf_rejected(request: Request, exc: CsrfError):
        return JSONResponse({"detail": REJECTION_DETAIL}, status_code=app_settings.csrf_reject_status)

    app.include_router(session_routes.router, prefix="", tags=["session"])
    app.include_router(posts.router, prefix="/posts", tags=["posts"])

    return app
