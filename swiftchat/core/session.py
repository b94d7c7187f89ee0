from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass, replace
from typing import Any, Optional

from ..capabilities.interfaces import ChatMessage, ChatModel, StreamingClient, resolve_model
from ..common.errors import EmptyMessageError
from ..common.time_util import utc_now_iso
from ..common.trace import new_id
from ..events.bus import InProcessEventBus
from ..events.models import ASSISTANT_DELTA, REQUEST_FAILED, STATE_CHANGED, EventEnvelope
from ..models import SessionState
from .config import DEFAULT_SYSTEM_PROMPT
from .presenter import build_state

logger = logging.getLogger(__name__)


@dataclass
class _Request:
    request_id: str
    generation: int
    model: str
    cancel: asyncio.Event
    task: Optional[asyncio.Task] = None
    assistant_index: Optional[int] = None
    text: str = ""


class ChatSession:
    """Single in-memory conversation streaming replies from a StreamingClient.

    All methods must be called from the event loop thread; fragment handling
    runs as a task on the same loop, so history has exactly one writer.

    Events (on `bus`):
    - chat.state.changed: SessionState snapshot after every mutation
    - chat.assistant.delta: one per applied fragment
    - chat.request.failed: once per failed request (never for cancellations)
    """

    def __init__(
        self,
        *,
        client: StreamingClient,
        bus: Optional[InProcessEventBus] = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        model: ChatModel | str = ChatModel.GPT3_5_TURBO,
    ) -> None:
        self.client = client
        self.bus = bus or InProcessEventBus()
        self._system_prompt = system_prompt
        self._model = resolve_model(model)
        self._messages: list[ChatMessage] = [self._system_message()]
        self._loading = False
        self._generation = 0
        self._current: Optional[_Request] = None

    # -------------------------
    # Read side
    # -------------------------

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return tuple(self._messages)

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def model(self) -> ChatModel:
        return self._model

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    @property
    def in_flight(self) -> bool:
        return self._current is not None

    def state(self) -> SessionState:
        return build_state(
            self._messages,
            loading=self._loading,
            model=self._model,
            system_prompt=self._system_prompt,
        )

    async def wait_idle(self) -> None:
        """Wait until no request is in flight (including ones started meanwhile)."""
        while self._current is not None:
            task = self._current.task
            if task is None or task.done():
                return
            await asyncio.wait({task})

    # -------------------------
    # Intents
    # -------------------------

    def send_message(self, text: str) -> None:
        """Append a user message and stream the reply in the background.

        Supersedes any in-flight request. Must be called with a running loop.
        """
        if not text or not text.strip():
            raise EmptyMessageError()
        loop = asyncio.get_running_loop()

        self._cancel_in_flight()
        self._messages.append(ChatMessage(role="user", content_text=text))

        self._generation += 1
        req = _Request(
            request_id=new_id(),
            generation=self._generation,
            model=self._model.value,
            cancel=asyncio.Event(),
        )
        self._current = req
        self._loading = True
        # the client gets its own copy; the reply is appended to self._messages later
        req.task = loop.create_task(self._run(req, list(self._messages)))
        logger.info("request %s started (model=%s, %d messages)", req.request_id, req.model, len(self._messages))
        self._publish_state(req.request_id)

    def cancel_current_request(self) -> None:
        if not self._cancel_in_flight():
            return
        self._loading = False
        self._publish_state()

    def change_model(self, model: ChatModel | str) -> None:
        """Select the model for the next request; the in-flight one keeps its model."""
        self._model = resolve_model(model)
        logger.info("model changed to %s", self._model.value)
        self._publish_state()

    def clear_all_messages(self) -> None:
        self._cancel_in_flight()
        self._messages = [self._system_message()]
        self._loading = False
        logger.info("session cleared")
        self._publish_state()

    def update_system_prompt(self, system_prompt: str) -> None:
        """Replace the system prompt; the conversation restarts from it."""
        self._system_prompt = system_prompt
        self.clear_all_messages()

    # -------------------------
    # Streaming
    # -------------------------

    def _system_message(self) -> ChatMessage:
        return ChatMessage(role="system", content_text=self._system_prompt)

    def _is_current(self, req: _Request) -> bool:
        return req.generation == self._generation and not req.cancel.is_set()

    def _cancel_in_flight(self) -> bool:
        req = self._current
        if req is None:
            return False
        self._current = None
        # invalidate before signalling so nothing from req is applied any more
        self._generation += 1
        req.cancel.set()
        if req.task is not None and not req.task.done():
            req.task.cancel()
        logger.info("request %s cancelled", req.request_id)
        return True

    async def _run(self, req: _Request, history: list[ChatMessage]) -> None:
        try:
            async with aclosing(self.client.astream(req.model, history, req.cancel)) as stream:
                async for fragment in stream:
                    if not self._is_current(req):
                        logger.debug("dropping fragment from stale request %s", req.request_id)
                        return
                    if fragment:
                        self._apply_fragment(req, fragment)
        except asyncio.CancelledError:
            if self._is_current(req):
                # cancelled from outside the session (e.g. loop shutdown)
                self._finish(req)
            raise
        except Exception as e:
            if not self._is_current(req):
                logger.debug("ignoring failure of stale request %s: %s", req.request_id, e)
                return
            logger.warning("request %s failed: %s", req.request_id, e)
            self._finish(req)
            self._publish(
                REQUEST_FAILED,
                {"error": {"type": type(e).__name__, "message": str(e)}},
                request_id=req.request_id,
            )
            return

        if self._is_current(req):
            logger.info("request %s completed (%d chars)", req.request_id, len(req.text))
            self._finish(req)

    def _apply_fragment(self, req: _Request, fragment: str) -> None:
        req.text += fragment
        if req.assistant_index is None:
            msg = ChatMessage(role="assistant", content_text=req.text)
            self._messages.append(msg)
            req.assistant_index = len(self._messages) - 1
        else:
            msg = replace(self._messages[req.assistant_index], content_text=req.text)
            self._messages[req.assistant_index] = msg

        self._publish(
            ASSISTANT_DELTA,
            {"message_id": msg.id, "delta": fragment, "text": req.text},
            request_id=req.request_id,
        )
        # a subscriber may have superseded req while handling the delta
        if self._is_current(req):
            self._publish_state(req.request_id)

    def _finish(self, req: _Request) -> None:
        if self._current is req:
            self._current = None
        self._loading = False
        self._publish_state(req.request_id)

    # -------------------------
    # Events
    # -------------------------

    def _publish(self, topic: str, payload: dict[str, Any], *, request_id: Optional[str] = None) -> None:
        env = EventEnvelope(
            event_id=new_id(),
            occurred_at_utc=utc_now_iso(),
            producer="core.session",
            type=topic,
            payload=payload,
            request_id=request_id,
        )
        self.bus.publish(topic, env)

    def _publish_state(self, request_id: Optional[str] = None) -> None:
        self._publish(STATE_CHANGED, {"state": self.state().model_dump(mode="json")}, request_id=request_id)
