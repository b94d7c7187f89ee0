from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError

from ..common.auth import check_ws_bearer
from ..common.errors import ApiError, ChatError
from ..common.trace import new_trace_id
from ..core.session import ChatSession
from ..events.models import ASSISTANT_DELTA, REQUEST_FAILED, STATE_CHANGED, EventEnvelope
from ..models import (
    SessionState,
    WsAssistantDelta,
    WsCancel,
    WsChangeModel,
    WsClear,
    WsError,
    WsRequestFailed,
    WsSend,
    WsSessionState,
    WsUpdateSystemPrompt,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_TOPICS = (STATE_CHANGED, ASSISTANT_DELTA, REQUEST_FAILED)


def event_to_frame(env: EventEnvelope) -> Optional[BaseModel]:
    """Map a session event to the frame pushed to the client."""
    if env.type == STATE_CHANGED:
        return WsSessionState(state=SessionState.model_validate(env.payload["state"]))
    if env.type == ASSISTANT_DELTA:
        return WsAssistantDelta(request_id=env.request_id or "", **env.payload)
    if env.type == REQUEST_FAILED:
        return WsRequestFailed(request_id=env.request_id or "", error=env.payload["error"])
    return None


def handle_intent(session: ChatSession, obj: dict[str, Any]) -> None:
    """Validate one inbound frame and forward it to the session."""
    t = obj.get("type")
    if t == "send":
        session.send_message(WsSend.model_validate(obj).text)
    elif t == "cancel":
        WsCancel.model_validate(obj)
        session.cancel_current_request()
    elif t == "change_model":
        session.change_model(WsChangeModel.model_validate(obj).model)
    elif t == "clear":
        WsClear.model_validate(obj)
        session.clear_all_messages()
    elif t == "update_system_prompt":
        session.update_system_prompt(WsUpdateSystemPrompt.model_validate(obj).system_prompt)
    else:
        raise ApiError(code="INVALID_ARGUMENT", message=f"unknown message type: {t!r}")


@router.websocket("/ws/chat")
async def ws_chat(websocket: WebSocket):
    # Auth (reject before accept)
    auth = websocket.headers.get("authorization")
    try:
        check_ws_bearer(auth)
    except ApiError:
        await websocket.close(code=4401, reason="UNAUTHORIZED")
        return

    await websocket.accept()

    session: ChatSession = websocket.app.state.session
    outbox: asyncio.Queue[BaseModel] = asyncio.Queue()

    def on_event(_topic: str, env: EventEnvelope) -> None:
        frame = event_to_frame(env)
        if frame is not None:
            outbox.put_nowait(frame)

    async def send_error(code: str, message: str) -> None:
        err = WsError(code=code, message=message, trace_id=new_trace_id())
        await websocket.send_json(err.model_dump(mode="json"))

    async def handle_raw(raw_text: str) -> None:
        # tolerate invalid frames and keep the connection open
        try:
            obj = json.loads(raw_text)
        except ValueError:
            await send_error("INVALID_ARGUMENT", "invalid JSON")
            return
        if not isinstance(obj, dict):
            await send_error("INVALID_ARGUMENT", "message must be a JSON object")
            return
        try:
            handle_intent(session, obj)
        except ApiError as e:
            await send_error(e.code, e.message)
        except (ChatError, ValidationError) as e:
            await send_error("INVALID_ARGUMENT", str(e))

    for topic in _TOPICS:
        session.bus.subscribe(topic, on_event)

    # Main loop: one receive and one outbox read at a time
    recv_task: Optional[asyncio.Task] = None
    out_task: Optional[asyncio.Task] = None

    try:
        await websocket.send_json(WsSessionState(state=session.state()).model_dump(mode="json"))
        while True:
            if recv_task is None:
                recv_task = asyncio.create_task(websocket.receive_text())
            if out_task is None:
                out_task = asyncio.create_task(outbox.get())

            done, _pending = await asyncio.wait({recv_task, out_task}, return_when=asyncio.FIRST_COMPLETED)

            if out_task in done:
                frame = out_task.result()
                out_task = None
                await websocket.send_json(frame.model_dump(mode="json"))

            if recv_task in done:
                raw = recv_task.result()
                recv_task = None
                await handle_raw(raw)

    except WebSocketDisconnect:
        logger.info("chat client disconnected")
        session.cancel_current_request()
    finally:
        for topic in _TOPICS:
            session.bus.unsubscribe(topic, on_event)
        for t in (recv_task, out_task):
            if t and not t.done():
                t.cancel()
