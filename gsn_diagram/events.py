"""
Event Bus - Delivers diagram events to subscribed handlers.

This module carries node activation events from the renderer to the host
and to the diagram controller. Handlers may be plain callables or
coroutine functions; coroutine results are scheduled on the running loop
and tracked so callers can wait for them.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

# Emitted by the renderer
NODE_ACTIVATED = "node-activated"        # {id, label, kind, typeIri}
NODE_OPENED = "node-opened"              # {id, label, kind, typeIri}
CONTEXT_ACTIVATED = "context-activated"  # {id, label}
DEFEATER_ACTIVATED = "defeater-activated"  # {id, label}

# Commands consumed by the diagram controller
GRAPH_HIGHLIGHT = "graph-highlight"            # {ids, cls, replace}
GRAPH_CLEAR_HIGHLIGHTS = "graph-clear-highlights"

Handler = Callable[[dict], Any]


class EventBus:
    """
    Publish/subscribe hub for diagram events.

    A failing handler is logged and does not stop delivery to the
    remaining handlers.
    """

    def __init__(self):
        self._handlers: dict[str, list[Handler]] = {}
        self._pending: set[asyncio.Task] = set()

    def on(self, event_type: str, handler: Handler) -> Callable[[], None]:
        """Register a handler; returns a function that unregisters it."""
        self._handlers.setdefault(event_type, []).append(handler)

        def off() -> None:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return off

    def once(self, event_type: str, handler: Handler) -> Callable[[], None]:
        """Register a handler that runs for the next event only."""
        def wrapper(payload: dict) -> Any:
            off()
            return handler(payload)

        off = self.on(event_type, wrapper)
        return off

    def emit(self, event_type: str, payload: dict | None = None) -> None:
        """Deliver an event to every handler registered for its type."""
        detail = dict(payload or {})
        for handler in list(self._handlers.get(event_type, [])):
            try:
                result = handler(detail)
            except Exception:
                logger.exception("Handler for %s failed", event_type)
                continue
            if inspect.isawaitable(result):
                self._schedule(event_type, result)

    def _schedule(self, event_type: str, awaitable: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: run the coroutine to completion here.
            asyncio.run(_await(awaitable))
            return
        task = loop.create_task(_await(awaitable))
        self._pending.add(task)
        task.add_done_callback(lambda t: self._finish(event_type, t))

    def _finish(self, event_type: str, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Async handler for %s failed", event_type, exc_info=task.exception())

    async def drain(self) -> None:
        """Wait until every scheduled async handler has finished."""
        while self._pending:
            await asyncio.wait(list(self._pending))

    def handler_count(self, event_type: str) -> int:
        return len(self._handlers.get(event_type, []))

    def clear(self) -> None:
        self._handlers.clear()


async def _await(awaitable: Any) -> Any:
    return await awaitable
