import logging
from typing import Awaitable, Callable, Dict

from narrator.orchestrator.events import Event, SegmentEvent

logger = logging.getLogger(__name__)

SegmentHandler = Callable[[SegmentEvent], Awaitable[None]]

class EventRouter:
    """Delivers backend segment events to one subscriber per event kind."""

    def __init__(self):
        self._handlers: Dict[Event, SegmentHandler] = {}

    def register(self, event: Event, handler: SegmentHandler):
        self._handlers[event] = handler

    def unregister(self, event: Event):
        self._handlers.pop(event, None)

    async def dispatch(self, event: Event, payload: SegmentEvent):
        handler = self._handlers.get(event)
        if handler is None:
            logger.warning(f"No handler for event {event.name}")
            return

        # progress arrives every few hundred ms, keep it out of debug logs
        if event is not Event.SEGMENT_PROGRESS:
            logger.debug(
                f"{event.name} from {payload.backend} for segment {payload.index}",
                extra={"event": event.name, "backend": payload.backend, "generation": payload.generation}
            )
        try:
            await handler(payload)
        except Exception as e:
            # Handler errors stay here; the emitting backend task keeps running
            logger.error(f"Error handling event {event.name}: {e}", exc_info=True)
