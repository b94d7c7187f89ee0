from __future__ import annotations

from typing import Iterable

from ..capabilities.interfaces import ChatMessage, ChatModel
from ..models import DisplayMessage, ModelItem, ModelListResult, SessionState


def to_display_messages(messages: Iterable[ChatMessage]) -> list[DisplayMessage]:
    """Project history to what a chat view shows; the system message is hidden."""
    return [
        DisplayMessage(id=m.id, text=m.content_text, is_user=m.role == "user")
        for m in messages
        if m.role != "system"
    ]


def build_state(
    messages: Iterable[ChatMessage], *, loading: bool, model: ChatModel, system_prompt: str
) -> SessionState:
    return SessionState(
        messages=to_display_messages(messages),
        loading=loading,
        model=model,
        system_prompt=system_prompt,
    )


def list_models(selected: ChatModel) -> ModelListResult:
    return ModelListResult(
        items=[ModelItem(id=m, display_name=m.display_name, selected=m is selected) for m in ChatModel]
    )
