import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

ON_COMMAND = "command"
ON_TRANSCRIPT = "transcript"
ON_TRANSCRIPTION_FAILED = "transcription_failed"

EVENTS = (ON_COMMAND, ON_TRANSCRIPT, ON_TRANSCRIPTION_FAILED)

Handler = Callable[[Dict[str, Any]], None]


class EventBus:
    """Per-event subscriber lists owned by the pipeline.

    A handler that raises is logged and skipped; the remaining handlers still run.
    """

    def __init__(self, events=EVENTS) -> None:
        self._known = tuple(events)
        self._subs: Dict[str, List[Handler]] = defaultdict(list)

    def _check(self, event: str) -> None:
        if event not in self._known:
            raise ValueError(f"unknown event {event!r}; expected one of {self._known}")

    def subscribe(self, event: str, handler: Handler) -> None:
        self._check(event)
        if handler not in self._subs[event]:
            self._subs[event].append(handler)

    def unsubscribe(self, event: str, handler: Handler) -> bool:
        self._check(event)
        try:
            self._subs[event].remove(handler)
            return True
        except ValueError:
            return False

    def subscribers(self, event: str) -> List[Handler]:
        return list(self._subs.get(event, ()))

    def clear(self) -> None:
        self._subs.clear()

    def emit(self, event: str, payload: Dict[str, Any]) -> int:
        self._check(event)
        delivered = 0
        for handler in list(self._subs.get(event, ())):
            try:
                handler(payload)
                delivered += 1
            except Exception:
                logger.exception("Subscriber %r for %s raised", handler, event)
        return delivered
