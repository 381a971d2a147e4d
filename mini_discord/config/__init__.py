"""
Mini Discord Configuration

Configuration model for the REST client and the gateway connection, plus the
YAML loader used by run_gateway.py.
"""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator

LOG_DIR = Path(os.environ.get("MINI_DISCORD_LOG_DIR", "logs"))

DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"

TOKEN_ENV_VAR = "DISCORD_TOKEN"


class DiscordConfig(BaseModel):
    """
    Configuration for the Discord client and gateway.

    This config is loaded from config.yaml under the 'discord' key.
    """

    token: Optional[str] = Field(
        default=None,
        description="Bot token (or use the DISCORD_TOKEN env var)"
    )

    # REST API configuration
    api_version: int = Field(
        default=10,
        description="Discord API version, used for REST paths and the gateway URL"
    )

    api_base: str = Field(
        default="discord.com/api",
        description="Host and base path of the REST API"
    )

    api_auto_retry: bool = Field(
        default=True,
        description="Retry requests answered with 429 after retry_after"
    )

    api_throw_error: bool = Field(
        default=True,
        description="Raise RequestError on non-2xx responses"
    )

    request_timeout: float = Field(
        default=10.0,
        description="HTTP request timeout in seconds"
    )

    # Gateway configuration
    gateway_url: str = Field(
        default="wss://gateway.discord.gg",
        description="Gateway endpoint used when no endpoint provider is set"
    )

    gateway_intents: int = Field(
        default=0b11111111111111111000110011,
        description="Intents bitmask sent with Identify"
    )

    gateway_reconnect_delay: float = Field(
        default=5.0,
        description="Reconnect delay in seconds, negative disables auto reconnect"
    )

    gateway_connect_timeout: float = Field(
        default=5.0,
        description="Socket open timeout in seconds, zero or negative disables it"
    )

    gateway_throw_error: bool = Field(
        default=True,
        description="Surface protocol errors instead of logging them"
    )

    heartbeat_ack_tracking: bool = Field(
        default=False,
        description="Reconnect when a heartbeat is not acknowledged before the next one"
    )

    client_name: str = Field(
        default="mini-discord",
        description="Client name reported in the Identify connection properties"
    )

    @field_validator("api_version")
    @classmethod
    def validate_api_version(cls, v: int) -> int:
        """Validate api_version is positive."""
        if v <= 0:
            raise ValueError("api_version must be positive")
        return v

    @field_validator("gateway_url")
    @classmethod
    def validate_gateway_url(cls, v: str) -> str:
        """Validate gateway_url is a websocket URL."""
        if not v.startswith(("ws://", "wss://")):
            raise ValueError("gateway_url must start with 'ws://' or 'wss://'")
        return v.rstrip("/")

    @field_validator("gateway_intents")
    @classmethod
    def validate_gateway_intents(cls, v: int) -> int:
        """Validate gateway_intents is a non-negative bitmask."""
        if v < 0:
            raise ValueError("gateway_intents must not be negative")
        return v

    @field_validator("request_timeout")
    @classmethod
    def validate_request_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("request_timeout must be positive")
        return v

    @property
    def auto_reconnect(self) -> bool:
        """Whether the gateway reconnects after a closure."""
        return self.gateway_reconnect_delay >= 0

    def resolve_token(self) -> Optional[str]:
        """Get the bot token from config or environment variable."""
        if self.token:
            return self.token
        return os.environ.get(TOKEN_ENV_VAR)

    class Config:
        """Pydantic configuration."""
        extra = "allow"


def load_config(config_path: Optional[str] = None) -> DiscordConfig:
    """
    Load the Discord configuration from a YAML file.

    Args:
        config_path: Path to the YAML file (default: mini_discord/config/config.yaml)

    Returns:
        DiscordConfig built from the 'discord' section, defaults if the file
        does not exist
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    if not path.exists():
        return DiscordConfig()

    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    return DiscordConfig(**(data.get("discord") or {}))


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DiscordConfig",
    "LOG_DIR",
    "TOKEN_ENV_VAR",
    "load_config",
]
