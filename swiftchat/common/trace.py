from __future__ import annotations

import uuid


def new_id() -> str:
    """Generate an opaque identifier for messages and events."""
    return uuid.uuid4().hex


def new_trace_id() -> str:
    """Generate trace_id (same format as IDs)."""
    return new_id()
