"""
Long Connection Platform Abstract Base Class

Defines the interface for long-lived connection implementations and the
connection states they move through.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from mini_discord.long_connection.events import EventBus, Listener

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection states for a platform."""
    IDLE = "idle"
    CONNECTING = "connecting"
    AWAITING_HELLO = "awaiting_hello"
    IDENTIFYING = "identifying"
    RESUMING = "resuming"
    READY = "ready"
    CLOSING = "closing"
    RECONNECTING = "reconnecting"


# States in which the socket is open but the session is not established yet
HANDSHAKE_STATES = frozenset({
    ConnectionState.AWAITING_HELLO,
    ConnectionState.IDENTIFYING,
    ConnectionState.RESUMING,
})


class LongConnectionPlatform(ABC):
    """
    Abstract base class for long connection implementations.

    Subscribers observe the connection through the event bus; the platform
    only ever emits to it.
    """

    def __init__(self, platform_id: str, events: Optional[EventBus] = None):
        """
        Initialize the platform.

        Args:
            platform_id: Unique identifier for this platform (e.g., "discord")
            events: Event bus to emit to, a new one if omitted
        """
        self.platform_id = platform_id
        self.events = events or EventBus()
        self._state = ConnectionState.IDLE

    @property
    def state(self) -> ConnectionState:
        """Get the current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Check if the session is established."""
        return self._state == ConnectionState.READY

    @abstractmethod
    async def connect(self) -> None:
        """
        Open a new connection, closing any previous one first.

        Raises:
            ConnectionError: If the connection cannot be started
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """
        Gracefully close the connection and stop reconnecting.

        This should clean up all resources and stop any running tasks.
        """

    def on(self, event: str, listener: Optional[Listener] = None):
        """
        Register a listener on the platform's event bus.

        Args:
            event: Event name
            listener: Callable receiving the event payload
        """
        return self.events.on(event, listener)

    def _set_state(self, state: ConnectionState) -> None:
        """Internal method to update connection state."""
        if state != self._state:
            logger.debug(f"{self.platform_id}: state {self._state.value} -> {state.value}")
        self._state = state
