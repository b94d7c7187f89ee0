from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import httpx

from ..capabilities.interfaces import ChatMessage, StreamingClient
from ..common.errors import UpstreamError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemoteChatConfig:
    base_url: str
    api_key: str
    organization: str = ""
    stream_path: str = "/v1/chat/completions"
    timeout_s: float = 30.0


def _sse_payload(line: str) -> Optional[str]:
    """Return the payload of a 'data: ...' SSE line, None for anything else.

    OpenAI-compatible servers send `data: {json}` per chunk, `data: [DONE]`
    at the end, and blank keepalive lines in between.
    """
    if not line or not line.startswith("data:"):
        return None
    payload = line[len("data:"):].strip()
    return payload or None


def _extract_delta_text(payload_json: dict) -> str:
    """Extract the incremental delta text from a streamed chat completion chunk."""
    choices = payload_json.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return ""
    delta = choices[0].get("delta") or {}
    txt = delta.get("content")
    if isinstance(txt, str):
        return txt
    # Some proxies use 'text'
    txt2 = delta.get("text")
    if isinstance(txt2, str):
        return txt2
    return ""


def _error_message(body: bytes) -> str:
    try:
        data = json.loads(body)
    except ValueError:
        return body.decode("utf-8", errors="replace").strip() or "no response body"
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and isinstance(err.get("message"), str):
            return err["message"]
    return str(data)


class RemoteStreamingClient(StreamingClient):
    """OpenAI-compatible chat completions streaming client.

    Contract:
    - astream(model, messages, cancel) yields incremental strings.
    - Non-2xx responses raise UpstreamError; transport failures propagate as httpx errors.
    """

    def __init__(self, cfg: RemoteChatConfig, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.cfg = cfg
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.cfg.api_key:
            headers["Authorization"] = f"Bearer {self.cfg.api_key}"
        if self.cfg.organization:
            headers["OpenAI-Organization"] = self.cfg.organization
        return headers

    async def astream(
        self, model: str, messages: list[ChatMessage], cancel: asyncio.Event
    ) -> AsyncIterator[str]:
        url = self.cfg.base_url.rstrip("/") + self.cfg.stream_path
        payload = {
            "model": model,
            "stream": True,
            "messages": [{"role": m.role, "content": m.content_text} for m in messages],
        }
        timeout = httpx.Timeout(self.cfg.timeout_s)

        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            async with client.stream("POST", url, headers=self._headers(), json=payload) as resp:
                if resp.status_code >= 400:
                    body = await resp.aread()
                    raise UpstreamError(resp.status_code, _error_message(body))

                async for line in resp.aiter_lines():
                    if cancel.is_set():
                        return
                    raw = _sse_payload(line)
                    if raw is None:
                        continue
                    if raw == "[DONE]":
                        return

                    try:
                        chunk = json.loads(raw)
                    except ValueError:
                        logger.debug("skipping unparsable stream line: %r", raw)
                        continue
                    if not isinstance(chunk, dict):
                        continue
                    if "error" in chunk:
                        # mid-stream errors arrive as a data line on a 200 response
                        raise UpstreamError(resp.status_code, _error_message(raw.encode("utf-8")))

                    delta = _extract_delta_text(chunk)
                    if delta:
                        yield delta
