from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Optional


def _parse_line(raw: str) -> Optional[tuple[str, str]]:
    line = raw.strip()
    if not line or line.startswith("#"):
        return None
    if line.startswith("export "):
        line = line[len("export ") :].strip()
    if "=" not in line:
        return None
    key, value = line.split("=", 1)
    key = key.strip()
    value = value.strip()
    if not key:
        return None
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        value = value[1:-1]
    return key, value


def load_dotenv(
    path: str | Path,
    *,
    override: bool = False,
    allow_keys: Optional[Iterable[str]] = None,
    allow_prefixes: Optional[Iterable[str]] = None,
) -> bool:
    """Load environment variables from a .env file.

    - Supports lines: KEY=VALUE or export KEY=VALUE
    - Ignores blank lines and comments (# ...)
    - If override=False (default), existing env vars are not overwritten.
    - If allow_keys / allow_prefixes is provided, only matching keys are loaded.

    Returns True if the file existed and was processed, else False.
    """
    p = Path(path)
    if not p.is_file():
        return False

    keys = set(allow_keys) if allow_keys is not None else None
    prefixes = tuple(allow_prefixes) if allow_prefixes is not None else None
    filtered = keys is not None or prefixes is not None

    for raw in p.read_text(encoding="utf-8").splitlines():
        parsed = _parse_line(raw)
        if parsed is None:
            continue
        key, value = parsed
        if filtered:
            by_key = keys is not None and key in keys
            by_prefix = prefixes is not None and key.startswith(prefixes)
            if not (by_key or by_prefix):
                continue
        if not override and key in os.environ:
            continue
        os.environ[key] = value

    return True


def load_dotenv_auto(
    *,
    env_file: Optional[str] = None,
    override: bool = False,
    allow_keys: Optional[Iterable[str]] = None,
    allow_prefixes: Optional[Iterable[str]] = None,
) -> Optional[Path]:
    """Try to load environment variables from a .env file.

    Priority:
    1) SWIFTCHAT_ENV_FILE (if set) or env_file parameter (if provided)
    2) ./.env (current working dir)
    3) repo root's .env

    Returns the loaded path if success, else None.
    """
    candidates: list[Path] = []
    env_path = os.getenv("SWIFTCHAT_ENV_FILE") or env_file
    if env_path:
        candidates.append(Path(env_path))
    candidates.append(Path.cwd() / ".env")
    # <repo>/swiftchat/common/dotenv.py -> parents[2] is <repo>
    candidates.append(Path(__file__).resolve().parents[2] / ".env")

    for candidate in candidates:
        if load_dotenv(candidate, override=override, allow_keys=allow_keys, allow_prefixes=allow_prefixes):
            return candidate
    return None
