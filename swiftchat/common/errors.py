from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

@dataclass
class ApiError(Exception):
    """Business error rendered as the error envelope by the HTTP layer."""
    code: str
    message: str
    http_status: int = 400
    data: Optional[dict[str, Any]] = None


class ChatError(Exception):
    """Base class for errors raised by the chat session core."""


class EmptyMessageError(ChatError, ValueError):
    def __init__(self) -> None:
        super().__init__("message text must not be empty")


class UnknownModelError(ChatError, ValueError):
    def __init__(self, model: str) -> None:
        super().__init__(f"unknown model: {model!r}")
        self.model = model


class UpstreamError(ChatError):
    """The upstream API answered a streaming request with an error status."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"upstream error {status_code}: {message}")
        self.status_code = status_code
        self.message = message
