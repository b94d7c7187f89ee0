"""In-process event bus delivery."""

import unittest

from swiftchat.events.bus import InProcessEventBus
from swiftchat.events.models import STATE_CHANGED, EventEnvelope


def envelope():
    return EventEnvelope(
        event_id="e1",
        occurred_at_utc="2026-01-01T00:00:00Z",
        producer="test",
        type=STATE_CHANGED,
        payload={},
    )


class TestInProcessEventBus(unittest.TestCase):
    def test_raising_subscriber_does_not_stop_delivery(self):
        bus = InProcessEventBus()
        seen = []

        def broken(_topic, _env):
            raise RuntimeError("render failed")

        bus.subscribe(STATE_CHANGED, broken)
        bus.subscribe(STATE_CHANGED, lambda topic, env: seen.append((topic, env.event_id)))

        with self.assertLogs("swiftchat.events.bus", level="ERROR"):
            bus.publish(STATE_CHANGED, envelope())

        self.assertEqual(seen, [(STATE_CHANGED, "e1")])

    def test_unsubscribe(self):
        bus = InProcessEventBus()
        seen = []

        def fn(topic, env):
            seen.append(env)

        bus.subscribe(STATE_CHANGED, fn)
        bus.unsubscribe(STATE_CHANGED, fn)
        bus.unsubscribe(STATE_CHANGED, fn)
        bus.publish(STATE_CHANGED, envelope())

        self.assertEqual(seen, [])


if __name__ == "__main__":
    unittest.main(verbosity=2)
