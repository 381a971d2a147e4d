"""
Event Bus

Outbound-only channel that delivers decoded frames and lifecycle
notifications of a long connection to external subscribers.
"""

import asyncio
import inspect
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


class EventBus:
    """
    Named-event subscription with in-order delivery.

    Listeners run in registration order for each emitted event. A listener
    that raises is logged and skipped; it never reaches the emitter. Coroutine
    listeners are scheduled as tasks, so slow subscribers do not hold up the
    connection.
    """

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)
        self._waiters: Dict[str, List[asyncio.Future]] = defaultdict(list)
        self._tasks: Set[asyncio.Task] = set()

    def on(self, event: str, listener: Optional[Listener] = None):
        """
        Register a listener for an event.

        Can be used directly or as a decorator:

            bus.on("READY", handle_ready)

            @bus.on("MESSAGE_CREATE")
            async def handle_message(data): ...

        Args:
            event: Event name (dispatch type or lifecycle notification)
            listener: Callable receiving the event arguments
        """
        if listener is None:
            def decorator(func: Listener) -> Listener:
                self._listeners[event].append(func)
                return func
            return decorator

        self._listeners[event].append(listener)
        return listener

    def off(self, event: str, listener: Listener) -> bool:
        """
        Remove a listener.

        Returns:
            True if the listener was registered
        """
        listeners = self._listeners.get(event)
        if listeners and listener in listeners:
            listeners.remove(listener)
            return True
        return False

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def emit(self, event: str, *args: Any) -> int:
        """
        Deliver an event to its listeners and waiters.

        Args:
            event: Event name
            *args: Event payload

        Returns:
            Number of listeners invoked
        """
        listeners = list(self._listeners.get(event, ()))
        for listener in listeners:
            try:
                result = listener(*args)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._tasks.add(task)
                    task.add_done_callback(self._on_task_done)
            except Exception:
                logger.exception(f"EventBus: listener for '{event}' failed")

        waiters = self._waiters.pop(event, [])
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(args[0] if len(args) == 1 else args)

        return len(listeners)

    async def wait_for(self, event: str, timeout: Optional[float] = None) -> Any:
        """
        Wait for the next emission of an event.

        Args:
            event: Event name
            timeout: Seconds to wait, None waits forever

        Returns:
            The single event argument, or a tuple when emitted with several

        Raises:
            asyncio.TimeoutError: If the event is not emitted in time
        """
        waiter = asyncio.get_running_loop().create_future()
        self._waiters[event].append(waiter)
        try:
            return await asyncio.wait_for(waiter, timeout=timeout)
        finally:
            pending = self._waiters.get(event)
            if pending and waiter in pending:
                pending.remove(waiter)

    async def drain(self) -> None:
        """Wait for all scheduled coroutine listeners to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def clear(self) -> None:
        """Remove all listeners."""
        self._listeners.clear()

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"EventBus: async listener failed: {error!r}")
