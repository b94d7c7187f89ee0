from __future__ import annotations

import asyncio
from typing import AsyncIterator

from .interfaces import ChatMessage, StreamingClient


class MockStreamingClient(StreamingClient):
    """Offline stand-in for the upstream API: echoes the last user message.

    Emits word-sized fragments with a small delay so cancellation and model
    switching can be exercised against it.
    """

    def __init__(self, delay_s: float = 0.02) -> None:
        self.delay_s = delay_s

    async def astream(
        self, model: str, messages: list[ChatMessage], cancel: asyncio.Event
    ) -> AsyncIterator[str]:
        prompt = ""
        for m in reversed(messages):
            if m.role == "user":
                prompt = m.content_text
                break

        text = f"[{model}] Echo: {prompt}"
        words = text.split(" ")
        for i, word in enumerate(words):
            if cancel.is_set():
                return
            await asyncio.sleep(self.delay_s)
            yield word if i == 0 else " " + word
