"""
Mini Discord

A small Discord client whose gateway connection survives network drops,
server requested reconnects and invalidated sessions.

Usage:
    from mini_discord import DiscordClient

    client = DiscordClient(token)
    gateway = await client.connect_gateway()
    gateway.on("MESSAGE_CREATE", lambda data: print(data["content"]))
"""

from mini_discord.client import DiscordClient
from mini_discord.config import DiscordConfig, load_config
from mini_discord.gateway import DiscordGateway
from mini_discord.gateway.errors import (
    GatewayError,
    ProtocolError,
    RequestError,
    SessionInvalidated,
    TransportError,
)
from mini_discord.long_connection import ConnectionState, EventBus

__version__ = "1.0.0"

__all__ = [
    "ConnectionState",
    "DiscordClient",
    "DiscordConfig",
    "DiscordGateway",
    "EventBus",
    "GatewayError",
    "ProtocolError",
    "RequestError",
    "SessionInvalidated",
    "TransportError",
    "load_config",
]
