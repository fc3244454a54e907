"""In-process, room-scoped publish/subscribe for alert lifecycle events."""
import logging
import threading
from collections import defaultdict

logger = logging.getLogger("pulsewatch.alerts.broadcaster")

GLOBAL = None


def project_room(project_id):
    return f"project-{project_id}"


class EventBroadcaster:
    """Handlers subscribe to an event name in a room, or globally (room=None).

    ``publish`` delivers to the handlers of exactly one room. A handler that
    raises is logged and skipped; the others still receive the event.
    """

    def __init__(self):
        self._handlers = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event, handler, room=GLOBAL):
        with self._lock:
            self._handlers[(event, room)].append(handler)

    def unsubscribe(self, event, handler, room=GLOBAL):
        with self._lock:
            handlers = self._handlers.get((event, room), [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event, payload, room=GLOBAL):
        with self._lock:
            handlers = list(self._handlers.get((event, room), []))
        for handler in handlers:
            try:
                handler(event, payload)
            except Exception as e:
                logger.warning(f"Subscriber error for {event} in {room or 'global'}: {e}")
        return len(handlers)
