import json
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from ....models.session import SessionRecord
from ....models.state import AppState
from ....services.history import history_stream
from ....services.sessions import CounselSession, SessionRegistry
from ....views import ViewModel, present
from ...deps import get_acting_session, get_counsel_session, get_registry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/counsel", tags=["counsel"])


class ProblemBody(BaseModel):
    problem_text: str = ""


class StepsBody(BaseModel):
    problem_text: Optional[str] = None


class CounselStateResponse(BaseModel):
    identity: str
    state: AppState
    view: ViewModel


def _respond(session: CounselSession, registry: SessionRegistry, state: AppState) -> CounselStateResponse:
    return CounselStateResponse(
        identity=session.identity,
        state=state,
        view=present(state, history_enabled=registry.has_history),
    )


@router.get("/state", response_model=CounselStateResponse)
async def get_state(
    session: CounselSession = Depends(get_counsel_session),
    registry: SessionRegistry = Depends(get_registry),
):
    return _respond(session, registry, session.controller.state)


@router.post("", response_model=CounselStateResponse)
async def request_counsel(
    body: ProblemBody,
    session: CounselSession = Depends(get_acting_session),
    registry: SessionRegistry = Depends(get_registry),
):
    """Ask for biblical counsel on the given problem text."""
    state = await session.controller.request_counsel(body.problem_text)
    return _respond(session, registry, state)


@router.post("/prayer", response_model=CounselStateResponse)
async def request_prayer_prompt(
    body: ProblemBody,
    session: CounselSession = Depends(get_acting_session),
    registry: SessionRegistry = Depends(get_registry),
):
    state = await session.controller.request_prayer_prompt(body.problem_text)
    return _respond(session, registry, state)


@router.post("/steps", response_model=CounselStateResponse)
async def request_actionable_steps(
    body: StepsBody,
    session: CounselSession = Depends(get_acting_session),
    registry: SessionRegistry = Depends(get_registry),
):
    """Suggest actionable steps for the counsel this session already received."""
    controller = session.controller
    problem_text = body.problem_text if body.problem_text is not None else controller.state.problem_text
    state = await controller.request_actionable_steps(controller.state.counsel, problem_text)
    return _respond(session, registry, state)


@router.get("/history", response_model=List[SessionRecord])
async def get_history(session: CounselSession = Depends(get_counsel_session)):
    return list(session.controller.state.history)


@router.get("/history/stream")
async def stream_history(
    request: Request,
    session: CounselSession = Depends(get_counsel_session),
    registry: SessionRegistry = Depends(get_registry),
):
    """Server-sent events: one ``history`` event per snapshot, newest first."""

    def _event(records) -> str:
        payload = [r.model_dump(mode="json") for r in records]
        return f"event: history\ndata: {json.dumps(payload)}\n\n"

    async def agen():
        if registry.store is None:
            yield _event([])
            return
        stream = history_stream(registry.store, session.identity)
        try:
            async for records in stream:
                if await request.is_disconnected():
                    break
                yield _event(records)
        finally:
            await stream.aclose()
            logger.info("History stream closed for %s", session.identity)

    return StreamingResponse(agen(), media_type="text/event-stream")
