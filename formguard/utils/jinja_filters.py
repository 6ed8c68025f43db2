"""Jinja2 helpers for templates that render state-changing forms."""
from markupsafe import Markup

from formguard.utils.csrf import get_csrf_guard
from formguard.utils.sessions import get_session_id


def csrf_input(request) -> Markup:
    """Generate hidden input with CSRF token.
    
    Args:
        request: FastAPI Request object
        
    Returns:
        Escaped HTML hidden input
    """
    guard = get_csrf_guard(request)
    token = guard.issue(get_session_id(request))
    return guard.embed(token).__html__()


def setup_jinja_filters(templates):
    """Add CSRF helpers to Jinja2 templates.
    
    Args:
        templates: Jinja2Templates instance
    """
    templates.env.globals['csrf_input'] = csrf_input
