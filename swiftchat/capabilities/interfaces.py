from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Literal, Protocol

from ..common.errors import UnknownModelError
from ..common.trace import new_id

Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class ChatMessage:
    """One entry of the conversation history.

    Frozen: the in-progress assistant reply is updated by replacing it with a
    copy that keeps the same id.
    """

    role: Role
    content_text: str
    id: str = field(default_factory=new_id)


class ChatModel(str, Enum):
    """Closed set of selectable models; the value is the upstream model id."""

    GPT3_5_TURBO = "gpt-3.5-turbo"
    GPT4 = "gpt-4"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    ChatModel.GPT3_5_TURBO: "GPT-3.5",
    ChatModel.GPT4: "GPT-4",
}


def resolve_model(model: ChatModel | str) -> ChatModel:
    """Accept a ChatModel, an upstream id ("gpt-4") or a member name ("GPT4")."""
    if isinstance(model, ChatModel):
        return model
    try:
        return ChatModel(model)
    except ValueError:
        try:
            return ChatModel[str(model).strip().upper()]
        except KeyError:
            raise UnknownModelError(str(model)) from None


class StreamingClient(Protocol):
    """Upstream chat API (the session depends on this interface, not an SDK).

    Yields non-empty text fragments in arrival order. The sequence ends on
    completion, raises on transport/upstream failure, and stops early once
    `cancel` is set.
    """

    def astream(
        self, model: str, messages: list[ChatMessage], cancel: asyncio.Event
    ) -> AsyncIterator[str]:
        ...
