"""
Discord Client

Authenticated REST access to the Discord API and the entry point that
discovers the gateway endpoint and starts the gateway connection.
"""

import asyncio
import json
from typing import Any, Callable, Optional

import httpx

from mini_discord.config import DiscordConfig
from mini_discord.gateway import DiscordGateway
from mini_discord.gateway.errors import RequestError
from mini_discord.gateway.logging_config import get_gateway_logger

logger = get_gateway_logger()

USER_AGENT = "DiscordBot (https://github.com/mini-discord/mini-discord, 1.0.0)"


class DiscordClient:
    """
    Discord client, everything starts here.

    Usage:
        client = DiscordClient(token, config)
        gateway = await client.connect_gateway()
        gateway.on("MESSAGE_CREATE", handle_message)
    """

    def __init__(
        self,
        token: Optional[str] = None,
        config: Optional[DiscordConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **gateway_options: Any,
    ):
        """
        Initialize the client.

        Args:
            token: Bot token, defaults to config.token or DISCORD_TOKEN
            config: DiscordConfig instance (default: all defaults)
            transport: httpx transport override (used by tests)
            **gateway_options: Extra keyword arguments for DiscordGateway
                (connector, session, events)
        """
        self.config = config or DiscordConfig()
        self.token = token or self.config.resolve_token()

        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

        self.gateway = DiscordGateway(
            self.config,
            token=self.token,
            endpoint_provider=self.get_gateway_url,
            **gateway_options,
        )

    def api_url(self, path: str) -> str:
        """Get the full API URL for a path."""
        return f"https://{self.config.api_base}/v{self.config.api_version}{path}"

    def _get_http(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                timeout=self.config.request_timeout,
                transport=self._transport,
            )
        return self._http

    async def api_request(self, method: str = "GET", path: str = "/", body: Any = None) -> httpx.Response:
        """
        Make an authenticated request to the Discord API.

        Args:
            method: HTTP method
            path: API path, e.g. "/gateway/bot"
            body: JSON-serializable request body (optional)

        Returns:
            The httpx response

        Raises:
            RequestError: On a non-2xx status when api_throw_error is set
        """
        headers = {
            "Authorization": f"Bot {self.token}",
            "User-Agent": USER_AGENT,
        }
        content = None
        if body is not None:
            headers["Content-Type"] = "application/json"
            content = json.dumps(body)

        http = self._get_http()
        url = self.api_url(path)

        while True:
            response = await http.request(method, url, headers=headers, content=content)

            if response.status_code == 429 and self.config.api_auto_retry:
                retry_after = _retry_after(response)
                logger.warning(
                    f"DiscordClient: [RATE_LIMITED] {method} {path} retry_after={retry_after}s"
                )
                await asyncio.sleep(retry_after)
                continue

            if not 200 <= response.status_code <= 299 and self.config.api_throw_error:
                logger.error(f"DiscordClient: [REQUEST_FAIL] {method} {path} status={response.status_code}")
                raise RequestError(response.status_code, _response_body(response), response.headers)

            return response

    async def get_gateway_url(self) -> str:
        """
        Get the gateway URL for this bot.

        Returns:
            Gateway websocket URL

        Raises:
            RequestError: If the request fails
        """
        response = await self.api_request("GET", "/gateway/bot")
        url = response.json()["url"]
        logger.info(f"DiscordClient: [GATEWAY_URL] {url}")
        return url

    async def connect_gateway(
        self, callback: Optional[Callable[[DiscordGateway], Any]] = None
    ) -> DiscordGateway:
        """
        Discover the gateway endpoint and start the gateway in the background.

        Args:
            callback: Called with the gateway once it has been started, a
                convenient place to register listeners

        Returns:
            The started gateway

        Raises:
            RequestError: If endpoint discovery fails (no connection is attempted)
        """
        self.gateway.session.set_original_endpoint(await self.get_gateway_url())
        await self.gateway.start()
        if callback:
            callback(self.gateway)
        return self.gateway

    async def close(self) -> None:
        """Disconnect the gateway and close the HTTP client."""
        await self.gateway.disconnect()
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
        self._http = None


def _retry_after(response: httpx.Response) -> float:
    """Seconds to wait before retrying a rate-limited request."""
    try:
        return float(response.json()["retry_after"])
    except (ValueError, KeyError, TypeError):
        return float(response.headers.get("Retry-After", 1))


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
