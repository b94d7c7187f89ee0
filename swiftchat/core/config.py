from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from ..capabilities.interfaces import ChatModel, resolve_model
from ..common.errors import UnknownModelError

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant."


class LlmConfig(BaseModel):
    """Upstream API configuration.

    Credentials are not part of this file; they come from the secret store
    (secrets.plist / OPENAI_API_KEY / OPENAI_ORG_ID).
    """

    mode: Literal["mock", "remote"] = "remote"

    # OpenAI-compatible base URL
    base_url: str = "https://api.openai.com"
    stream_path: str = "/v1/chat/completions"
    timeout_s: float = 30.0


class KernelConfig(BaseModel):
    """Runtime configuration loaded from file + env overrides."""

    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    default_model: ChatModel = ChatModel.GPT3_5_TURBO
    secrets_path: str = "secrets.plist"

    llm: LlmConfig = Field(default_factory=LlmConfig)


_TOP_LEVEL_ENV = {
    "system_prompt": "SWIFTCHAT_SYSTEM_PROMPT",
    "default_model": "SWIFTCHAT_DEFAULT_MODEL",
    "secrets_path": "SWIFTCHAT_SECRETS_PATH",
}

_LLM_ENV = {
    "mode": "SWIFTCHAT_LLM_MODE",
    "base_url": "SWIFTCHAT_LLM_BASE_URL",
    "stream_path": "SWIFTCHAT_LLM_STREAM_PATH",
    "timeout_s": "SWIFTCHAT_LLM_TIMEOUT_S",
}

# keys a .env file may set (see app.create_app); all SWIFTCHAT_* settings plus credentials
DOTENV_ALLOW_KEYS = frozenset({"OPENAI_API_KEY", "OPENAI_ORG_ID"})
DOTENV_ALLOW_PREFIXES = ("SWIFTCHAT_",)


class ConfigManager:
    """Load configuration from JSON file with environment overrides.

    - default < config file < environment variables (including those loaded from .env)
    - self-healing:
        * if config file is missing: write a default config (best-effort)
        * if config file is corrupted: backup the bad file then write a default config (best-effort)
    - never crash startup due to config issues
    """

    def __init__(self, repo_root: Path | None = None) -> None:
        self.repo_root = repo_root or Path(__file__).resolve().parents[2]
        self.default_path = self.repo_root / "config" / "swiftchat.json"

    def _default_data(self) -> dict:
        return KernelConfig().model_dump(mode="json")

    def _write_default(self, cfg_path: Path) -> None:
        try:
            cfg_path.parent.mkdir(parents=True, exist_ok=True)
            cfg_path.write_text(
                json.dumps(self._default_data(), indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
        except OSError as e:
            logger.warning("could not write default config to %s: %s", cfg_path, e)

    def _backup(self, cfg_path: Path) -> None:
        ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        backup = cfg_path.with_suffix(cfg_path.suffix + f".bad-{ts}")
        try:
            cfg_path.replace(backup)
        except OSError as e:
            logger.warning("could not back up corrupt config %s: %s", cfg_path, e)
            return
        logger.warning("corrupt config moved to %s", backup)

    def resolve_path(self) -> Path:
        cfg_path = Path(os.getenv("SWIFTCHAT_CONFIG_PATH", str(self.default_path)))
        if not cfg_path.is_absolute():
            # relative paths are taken from the repo root, not the process CWD
            cfg_path = self.repo_root / cfg_path
        return cfg_path

    def _read(self, cfg_path: Path) -> dict:
        if not cfg_path.exists():
            self._write_default(cfg_path)
            return self._default_data()
        try:
            data = json.loads(cfg_path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("config root must be an object")
            KernelConfig.model_validate(data)
        except (ValueError, ValidationError) as e:
            logger.warning("config %s is invalid (%s); restoring defaults", cfg_path, e)
            self._backup(cfg_path)
            self._write_default(cfg_path)
            return self._default_data()
        return data

    def _apply(self, data: dict, path: tuple[str, ...], value: object, env_name: str) -> dict:
        """Return data with one override applied, or unchanged if it does not validate."""
        candidate = json.loads(json.dumps(data))
        target = candidate
        for part in path[:-1]:
            target = target.setdefault(part, {})
        target[path[-1]] = value
        try:
            KernelConfig.model_validate(candidate)
        except ValidationError as e:
            logger.warning("ignoring invalid %s=%r (%s)", env_name, value, e.errors()[0]["msg"])
            return data
        return candidate

    def load(self) -> KernelConfig:
        data = self._read(self.resolve_path())
        data.setdefault("llm", {})

        for key, env_name in _TOP_LEVEL_ENV.items():
            value = os.getenv(env_name)
            if value is None or not value.strip():
                continue
            if key == "default_model":
                try:
                    value = resolve_model(value).value
                except UnknownModelError:
                    logger.warning("ignoring unknown %s=%r", env_name, value)
                    continue
            data = self._apply(data, (key,), value, env_name)

        for key, env_name in _LLM_ENV.items():
            value = os.getenv(env_name)
            if value is None or not value.strip():
                continue
            if key == "mode":
                value = value.strip().lower()
            data = self._apply(data, ("llm", key), value, env_name)

        return KernelConfig.model_validate(data)
