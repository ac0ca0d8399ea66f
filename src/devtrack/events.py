from collections import defaultdict
from typing import Any, Callable, Dict, List, Protocol

from devtrack.logs import get_logger

log = get_logger("events")

EventCallback = Callable[[str, str, Any], None]

class EventSink(Protocol):
    """Anything the repositories can notify after a successful mutation."""

    def notify(self, entity_kind: str, action: str, payload: Any) -> None:
        ...

class EventBus:
    """In-process publish/subscribe for repository events.

    Subscribers register for ``"<entity>:<action>"``, ``"<entity>:*"`` or
    ``"*"``. A failing subscriber is logged and never affects the publisher.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[EventCallback]] = defaultdict(list)

    def subscribe(self, pattern: str, callback: EventCallback) -> Callable[[], None]:
        self._subscribers[pattern].append(callback)

        def unsubscribe():
            if callback in self._subscribers[pattern]:
                self._subscribers[pattern].remove(callback)

        return unsubscribe

    def notify(self, entity_kind: str, action: str, payload: Any) -> None:
        event_name = f"{entity_kind}:{action}"
        log.debug(f"Event {event_name}")
        for pattern in (event_name, f"{entity_kind}:*", "*"):
            for callback in list(self._subscribers.get(pattern, [])):
                try:
                    callback(entity_kind, action, payload)
                except Exception as e:
                    log.warning(f"Subscriber for {pattern} failed on {event_name}: {e}")
