from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, DefaultDict, List
from collections import defaultdict

from .models import EventEnvelope

logger = logging.getLogger(__name__)

Subscriber = Callable[[str, EventEnvelope], None]

@dataclass
class InProcessEventBus:
    """In-process publish/subscribe; subscribers run synchronously on publish.

    A subscriber that raises is logged and skipped; publishing never fails.
    """

    _subs: DefaultDict[str, List[Subscriber]] = field(default_factory=lambda: defaultdict(list))

    def subscribe(self, topic: str, fn: Subscriber) -> None:
        self._subs[topic].append(fn)

    def unsubscribe(self, topic: str, fn: Subscriber) -> None:
        subs = self._subs.get(topic)
        if subs and fn in subs:
            subs.remove(fn)

    def publish(self, topic: str, env: EventEnvelope) -> None:
        # copy: a subscriber may unsubscribe while being notified
        for fn in list(self._subs.get(topic, [])):
            try:
                fn(topic, env)
            except Exception:
                logger.exception("subscriber %r failed on %s", fn, topic)
