#!/usr/bin/env python3
"""
Gateway runner

Usage:
    python run_gateway.py --config mini_discord/config/config.yaml

Connects a bot to the Discord gateway, logs every dispatch event it receives
and keeps the connection alive until interrupted with Ctrl+C.
"""

import argparse
import asyncio
import logging
from typing import Optional

from mini_discord import DiscordClient, load_config
from mini_discord.gateway.logging_config import setup_gateway_logging


def _log_lifecycle(gateway, logger: logging.Logger) -> None:
    """Register lifecycle and dispatch listeners on the gateway."""

    gateway.on("socket_opened", lambda url: logger.info(f"socket opened: {url}"))
    gateway.on("socket_closed", lambda info: logger.info(f"socket closed: code={info.code} reason='{info.reason}'"))
    gateway.on("socket_error", lambda error: logger.warning(f"socket error: {error}"))
    gateway.on("timeout", lambda url: logger.warning(f"connect timeout: {url}"))
    gateway.on("READY", lambda d: logger.info(f"ready as {d.get('user', {}).get('username')}"))

    def on_message(data: dict) -> None:
        if data.get("op") == 0 and data.get("t") != "READY":
            logger.info(f"dispatch {data.get('t')} seq={data.get('s')}")

    gateway.on("message", on_message)


async def run_gateway(config_path: Optional[str], token: Optional[str], intents: Optional[int]) -> None:
    config = load_config(config_path)
    if intents is not None:
        config = config.model_copy(update={"gateway_intents": intents})

    logger = logging.getLogger("run_gateway")
    client = DiscordClient(token=token, config=config)
    if not client.token:
        raise SystemExit("No bot token: set discord.token in the config, DISCORD_TOKEN or --token")

    gateway = await client.connect_gateway(lambda gw: _log_lifecycle(gw, logger))
    try:
        await gateway.run_task
    finally:
        await client.close()


def main():
    parser = argparse.ArgumentParser(description="Discord gateway runner")
    parser.add_argument("--config", type=str, default=None, help="Config file path (default: mini_discord/config/config.yaml)")
    parser.add_argument("--token", type=str, default=None, help="Bot token (overrides config and DISCORD_TOKEN)")
    parser.add_argument("--intents", type=int, default=None, help="Intents bitmask (overrides config)")
    parser.add_argument("--log-level", type=str, default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Log level")
    args = parser.parse_args()

    level = getattr(logging, args.log_level)
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    setup_gateway_logging(level)

    try:
        asyncio.run(run_gateway(args.config, args.token, args.intents))
    except KeyboardInterrupt:
        print("Interrupted, gateway closed")


if __name__ == "__main__":
    main()
