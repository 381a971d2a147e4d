"""
Long Connection Framework

Provides the building blocks shared by long-running connections: the
connection state enumeration, the platform base class and the outbound
event bus.

Usage:
    from mini_discord.long_connection import EventBus

    bus = EventBus()
    bus.on("READY", lambda data: print(data["session_id"]))
"""

from mini_discord.long_connection.base import (
    HANDSHAKE_STATES,
    ConnectionState,
    LongConnectionPlatform,
)
from mini_discord.long_connection.events import EventBus

__all__ = [
    "ConnectionState",
    "EventBus",
    "HANDSHAKE_STATES",
    "LongConnectionPlatform",
]
