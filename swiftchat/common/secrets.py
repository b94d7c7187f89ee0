from __future__ import annotations

import logging
import os
import plistlib
from pathlib import Path
from typing import Any, Mapping, Optional
from xml.parsers.expat import ExpatError

logger = logging.getLogger(__name__)

OPENAI_API_KEY = "OPENAI_API_KEY"
OPENAI_ORG_ID = "OPENAI_ORG_ID"


def default_secrets_path() -> Path:
    raw = os.getenv("SWIFTCHAT_SECRETS_PATH")
    if raw:
        return Path(raw)
    # <repo>/swiftchat/common/secrets.py -> parents[2] is <repo>
    return Path(__file__).resolve().parents[2] / "secrets.plist"


def _read_plist(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        with path.open("rb") as fh:
            data = plistlib.load(fh)
    except (OSError, plistlib.InvalidFileException, ExpatError, ValueError) as e:
        logger.warning("ignoring unreadable secrets file %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("ignoring secrets file %s: top level is not a dictionary", path)
        return {}
    return data


class SecretStore:
    """Credentials read once from a property-list file.

    Lookup order for a key:
    1) the process environment (including values loaded from .env)
    2) the secrets.plist dictionary
    3) "" (missing credentials never fail startup; the first upstream call
       fails with an authentication error instead)
    """

    def __init__(self, path: str | Path | None = None, *, environ: Optional[Mapping[str, str]] = None) -> None:
        self.path = Path(path) if path is not None else default_secrets_path()
        self._environ = environ if environ is not None else os.environ
        self._values = _read_plist(self.path)

    def get(self, key: str) -> str:
        env_value = self._environ.get(key)
        if env_value:
            return env_value
        value = self._values.get(key)
        return value if isinstance(value, str) else ""

    @property
    def api_key(self) -> str:
        return self.get(OPENAI_API_KEY)

    @property
    def organization(self) -> str:
        return self.get(OPENAI_ORG_ID)


def get_config_value(key: str, path: str | Path | None = None) -> str:
    """One-shot lookup of a single secret; "" when absent."""
    return SecretStore(path).get(key)
