from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from ..common.auth import require_bearer
from ..common.errors import ApiError, ChatError
from ..common.time_util import utc_now_iso
from ..common.trace import new_trace_id
from ..core.presenter import list_models
from ..core.session import ChatSession
from ..models import (
    ChangeModelRequest,
    OkEnvelope,
    SendMessageRequest,
    SystemPromptRequest,
)

router = APIRouter()


def ok(trace_id: str, data: dict):
    return OkEnvelope(trace_id=trace_id, data=data)


def _session(request: Request) -> ChatSession:
    return request.app.state.session


def _state(session: ChatSession) -> dict:
    trace_id = new_trace_id()
    return ok(trace_id, session.state().model_dump(mode="json")).model_dump(mode="json")


def _invalid(e: ChatError) -> ApiError:
    return ApiError(code="INVALID_ARGUMENT", message=str(e), http_status=400)


@router.get("/health")
def health_check():
    # Health endpoint must be public (no auth)
    trace_id = new_trace_id()
    return ok(trace_id, {"service": "swiftchat", "time_utc": utc_now_iso()}).model_dump()


@router.get("/models")
async def models(request: Request, _: None = Depends(require_bearer)):
    trace_id = new_trace_id()
    result = list_models(_session(request).model)
    return ok(trace_id, result.model_dump(mode="json")).model_dump(mode="json")


@router.get("/session")
async def get_session(request: Request, _: None = Depends(require_bearer)):
    return _state(_session(request))


@router.post("/session/messages")
async def send_message(
    request: Request,
    body: SendMessageRequest,
    wait: bool = Query(default=False, description="Return after the reply finished streaming"),
    _: None = Depends(require_bearer),
):
    session = _session(request)
    try:
        session.send_message(body.text)
    except ChatError as e:
        raise _invalid(e) from e
    if wait:
        await session.wait_idle()
    return _state(session)


@router.post("/session/cancel")
async def cancel(request: Request, _: None = Depends(require_bearer)):
    session = _session(request)
    session.cancel_current_request()
    return _state(session)


@router.put("/session/model")
async def change_model(request: Request, body: ChangeModelRequest, _: None = Depends(require_bearer)):
    session = _session(request)
    try:
        session.change_model(body.model)
    except ChatError as e:
        raise _invalid(e) from e
    return _state(session)


@router.put("/session/system-prompt")
async def update_system_prompt(request: Request, body: SystemPromptRequest, _: None = Depends(require_bearer)):
    session = _session(request)
    session.update_system_prompt(body.system_prompt)
    return _state(session)


@router.post("/session/clear")
async def clear(request: Request, _: None = Depends(require_bearer)):
    session = _session(request)
    session.clear_all_messages()
    return _state(session)
