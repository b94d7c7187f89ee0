from __future__ import annotations

from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field

from .capabilities.interfaces import ChatModel


# -------------------------
# HTTP envelopes & errors
# -------------------------

class OkEnvelope(BaseModel):
    status: Literal["ok"] = "ok"
    trace_id: str
    data: Any


class ErrorEnvelope(BaseModel):
    status: Literal["error"] = "error"
    code: str
    message: str
    trace_id: str
    data: Any = Field(default_factory=dict)


# -------------------------
# Session state (what the presentation layer renders)
# -------------------------

class DisplayMessage(BaseModel):
    id: str
    text: str
    is_user: bool


class SessionState(BaseModel):
    messages: List[DisplayMessage] = Field(default_factory=list)
    loading: bool = False
    model: ChatModel
    system_prompt: str


class ModelItem(BaseModel):
    id: ChatModel
    display_name: str
    selected: bool = False


class ModelListResult(BaseModel):
    items: List[ModelItem]


# -------------------------
# HTTP request bodies
# -------------------------

class SendMessageRequest(BaseModel):
    text: str


class ChangeModelRequest(BaseModel):
    model: str


class SystemPromptRequest(BaseModel):
    system_prompt: str


# -------------------------
# WebSocket messages
# -------------------------

class WsSend(BaseModel):
    type: Literal["send"] = "send"
    text: str


class WsCancel(BaseModel):
    type: Literal["cancel"] = "cancel"


class WsChangeModel(BaseModel):
    type: Literal["change_model"] = "change_model"
    model: str


class WsClear(BaseModel):
    type: Literal["clear"] = "clear"


class WsUpdateSystemPrompt(BaseModel):
    type: Literal["update_system_prompt"] = "update_system_prompt"
    system_prompt: str


class WsSessionState(BaseModel):
    type: Literal["session_state"] = "session_state"
    state: SessionState


class WsAssistantDelta(BaseModel):
    type: Literal["assistant_delta"] = "assistant_delta"
    request_id: str
    message_id: str
    delta: str
    text: str


class WsRequestFailed(BaseModel):
    type: Literal["request_failed"] = "request_failed"
    request_id: str
    error: dict[str, Any]


class WsError(BaseModel):
    type: Literal["error"] = "error"
    code: str
    message: str
    trace_id: Optional[str] = None
