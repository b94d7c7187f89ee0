from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

# Topics published by the chat session
STATE_CHANGED = "chat.state.changed"
ASSISTANT_DELTA = "chat.assistant.delta"
REQUEST_FAILED = "chat.request.failed"


@dataclass(frozen=True)
class EventEnvelope:
    """Event published by the chat session.

    Note:
    - `type` repeats the topic so subscribers registered on several topics can dispatch on it.
    - `request_id` identifies the streaming request the event belongs to (None for
      state changes not tied to a request, e.g. clear or model change).
    """

    event_id: str
    occurred_at_utc: str
    producer: str
    type: str
    payload: dict[str, Any]
    request_id: Optional[str] = None
