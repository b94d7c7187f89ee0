from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from .api.http import router as http_router
from .api.ws import router as ws_router
from .capabilities.interfaces import StreamingClient
from .capabilities.mock_llm import MockStreamingClient
from .common.dotenv import load_dotenv_auto
from .common.errors import ApiError
from .common.secrets import OPENAI_API_KEY, SecretStore
from .common.trace import new_trace_id
from .core.config import DOTENV_ALLOW_KEYS, DOTENV_ALLOW_PREFIXES, ConfigManager, KernelConfig
from .core.session import ChatSession
from .events.bus import InProcessEventBus
from .models import ErrorEnvelope
from .modules.llm_remote import RemoteChatConfig, RemoteStreamingClient

logger = logging.getLogger(__name__)


def build_client(cfg: KernelConfig, secrets: SecretStore) -> StreamingClient:
    """Select the streaming client based on config.

    Missing credentials do not fall back to the mock: the first request fails
    with the upstream authentication error instead.
    """
    if cfg.llm.mode == "mock":
        return MockStreamingClient()

    if not secrets.api_key:
        logger.warning("%s is not set; requests will be rejected upstream", OPENAI_API_KEY)
    return RemoteStreamingClient(
        RemoteChatConfig(
            base_url=cfg.llm.base_url,
            api_key=secrets.api_key,
            organization=secrets.organization,
            stream_path=cfg.llm.stream_path,
            timeout_s=cfg.llm.timeout_s,
        )
    )


def create_app(
    *,
    config: Optional[KernelConfig] = None,
    client: Optional[StreamingClient] = None,
) -> FastAPI:
    app = FastAPI(title="SwiftChat Kernel")

    # Load .env (best-effort). Environment variables set by the process take precedence.
    load_dotenv_auto(
        override=False,
        allow_keys=DOTENV_ALLOW_KEYS,
        allow_prefixes=DOTENV_ALLOW_PREFIXES,
    )

    # CORS (dev-friendly; tighten in prod)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    cfg = config or ConfigManager().load()
    app.state.config = cfg

    if client is None:
        secrets_path = Path(cfg.secrets_path)
        if not secrets_path.is_absolute():
            secrets_path = Path(__file__).resolve().parent.parent / secrets_path
        client = build_client(cfg, SecretStore(secrets_path))

    app.state.bus = InProcessEventBus()
    app.state.session = ChatSession(
        client=client,
        bus=app.state.bus,
        system_prompt=cfg.system_prompt,
        model=cfg.default_model,
    )

    @app.on_event("shutdown")
    def _shutdown() -> None:
        app.state.session.cancel_current_request()

    @app.exception_handler(ApiError)
    async def api_error_handler(_, exc: ApiError):
        body = ErrorEnvelope(code=exc.code, message=exc.message, trace_id=new_trace_id(), data=exc.data or {})
        return JSONResponse(status_code=exc.http_status, content=body.model_dump())

    app.include_router(http_router, prefix="/v1")
    app.include_router(ws_router, prefix="/v1")
    return app
