from pathlib import Path

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from .. import views
from ..services.sessions import CounselSession, SessionRegistry
from .deps import get_counsel_session, get_registry, set_identity_cookie

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))

router = APIRouter()


@router.get("/", response_class=HTMLResponse)
async def index(
    request: Request,
    session: CounselSession = Depends(get_counsel_session),
    registry: SessionRegistry = Depends(get_registry),
):
    vm = views.present(session.controller.state, history_enabled=registry.has_history)
    response = templates.TemplateResponse(
        request,
        "index.html",
        {"vm": vm, "text": views, "identity": session.identity},
    )
    # A returned Response does not pick up cookies set on the dependency's response
    set_identity_cookie(response, session.token)
    return response
