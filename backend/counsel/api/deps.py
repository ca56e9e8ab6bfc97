from typing import Optional

from fastapi import Depends, Request, Response

from ..config import get_settings
from ..services.sessions import CounselSession, SessionRegistry, build_registry

_registry: Optional[SessionRegistry] = None


def get_registry() -> SessionRegistry:
    """Dependency for the process-wide session registry (built on first use)."""
    global _registry
    if _registry is None:
        _registry = build_registry()
    return _registry


async def close_registry() -> None:
    global _registry
    if _registry is not None:
        await _registry.aclose()
        _registry = None


def set_identity_cookie(response: Response, token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        settings.IDENTITY_COOKIE_NAME,
        token,
        max_age=settings.IDENTITY_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
        httponly=True,
        samesite="lax",
    )


async def get_counsel_session(
    request: Request,
    response: Response,
    registry: SessionRegistry = Depends(get_registry),
) -> CounselSession:
    """Resolve the browser's identity from its cookie and return its session.

    History is only bound for browsers that come back with a cookie, so
    cookieless one-off requests never open a store subscription.
    """
    token = request.cookies.get(get_settings().IDENTITY_COOKIE_NAME)
    session = await registry.open(token)
    if token:
        session.bind_history()
    set_identity_cookie(response, session.token)
    return session


async def get_acting_session(session: CounselSession = Depends(get_counsel_session)) -> CounselSession:
    """Session about to run an action; its history is bound before anything is saved."""
    session.bind_history()
    return session
