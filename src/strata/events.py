"""
Event system for the Strata framework.

Provides the named-event broadcaster the application uses as its error sink.
Listeners run in registration order when an event is emitted. Coroutine
listeners are scheduled on the running event loop so ``emit`` itself stays
synchronous and can be called from any point in request handling.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)


@dataclass
class EventHandler:
    """Listener registration"""
    listener: Callable[..., Any]
    once: bool = False


class EventEmitter:
    """Named-event broadcaster with zero or more listeners per event"""

    def __init__(self):
        self._handlers: Dict[str, List[EventHandler]] = {}
        self._pending: Set[asyncio.Task] = set()

    def on(self, event: str, listener: Optional[Callable[..., Any]] = None):
        """
        Register ``listener`` for ``event``.

        Can also be used as a decorator:

            @app.on('error')
            def report(err, ctx):
                ...
        """
        if listener is None:
            def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
                self.on(event, func)
                return func
            return decorator

        if not callable(listener):
            raise TypeError("listener must be callable")
        self._handlers.setdefault(event, []).append(EventHandler(listener))
        return self

    def once(self, event: str, listener: Callable[..., Any]) -> "EventEmitter":
        """Register a listener that is removed after its first call"""
        if not callable(listener):
            raise TypeError("listener must be callable")
        self._handlers.setdefault(event, []).append(EventHandler(listener, once=True))
        return self

    def off(self, event: str, listener: Optional[Callable[..., Any]] = None) -> "EventEmitter":
        """Remove one listener, or every listener of ``event`` when none is given"""
        if listener is None:
            self._handlers.pop(event, None)
            return self

        handlers = self._handlers.get(event, [])
        for index, handler in enumerate(handlers):
            if handler.listener == listener:
                handlers.pop(index)
                break
        if not handlers:
            self._handlers.pop(event, None)
        return self

    def listeners(self, event: str) -> List[Callable[..., Any]]:
        return [handler.listener for handler in self._handlers.get(event, [])]

    def listener_count(self, event: str) -> int:
        return len(self._handlers.get(event, []))

    def emit(self, event: str, *args: Any) -> bool:
        """
        Call every listener of ``event`` with ``args``.

        Returns True when at least one listener was registered. A listener
        that raises stops the broadcast and the exception propagates to the
        caller.
        """
        handlers = self._handlers.get(event)
        if not handlers:
            return False

        for handler in list(handlers):
            if handler.once:
                self._discard(event, handler)
            try:
                result = handler.listener(*args)
            except Exception as e:
                logger.error(f"Error in listener for '{event}': {e}")
                raise
            if inspect.isawaitable(result):
                self._schedule(event, result)
        return True

    def _discard(self, event: str, record: EventHandler) -> None:
        # by identity: equal records may belong to separate registrations
        handlers = self._handlers.get(event, [])
        for index, handler in enumerate(handlers):
            if handler is record:
                handlers.pop(index)
                break
        if not handlers:
            self._handlers.pop(event, None)

    def _schedule(self, event: str, awaitable) -> None:
        task = asyncio.ensure_future(awaitable)
        self._pending.add(task)
        task.add_done_callback(lambda t: self._reap(event, t))

    def _reap(self, event: str, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Error in async listener for '{event}': {exc}", exc_info=exc)

    async def drain(self) -> None:
        """Wait for scheduled coroutine listeners to finish"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


__all__ = ['EventEmitter', 'EventHandler']
