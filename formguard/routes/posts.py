from fastapi import APIRouter, Request, Form, Depends
from fastapi.responses import HTMLResponse

from formguard.utils.csrf import get_csrf_guard, verify_csrf_token
from formguard.utils.sessions import get_session_id

router = APIRouter()

POST_FIELDS = ["title", "description"]


@router.get("/new")
def new_post(request: Request):
    """Describe the new post form, including its hidden token field."""
    guard = get_csrf_guard(request)
    field = guard.embed(guard.issue(get_session_id(request)))
    return {
        "title": "Post Form",
        "fields": POST_FIELDS,
        "csrf": {"name": field.name, "value": field.value},
        "input": str(field),
    }


@router.get("/new.html", response_class=HTMLResponse)
def new_post_page(request: Request):
    """Render the new post form; csrf_input issues the token while rendering."""
    return request.app.state.templates.TemplateResponse(request, "posts/new.html")


@router.post("")
async def create_post(
    request: Request,
    title: str = Form(...),
    description: str = Form(""),
    token: str = Depends(verify_csrf_token)
):
    """Accept a submitted post and echo its params back."""
    return {
        "post": {"title": title, "description": description},
        "csrf_token": token,
    }
