"""
Discord Gateway - long connection to the Discord event gateway

Keeps one websocket to the gateway alive across network drops, server
requested reconnects and invalidated sessions:
- handshake (Hello -> Identify/Resume -> READY)
- heartbeats at the interval announced by the server
- session resume with the last seen sequence number
- fixed-delay reconnects driven by an explicit run loop
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, Union

import websockets
from websockets.exceptions import ConnectionClosed

from mini_discord.config import DiscordConfig
from mini_discord.gateway.attempt import ConnectionAttempt
from mini_discord.gateway.errors import (
    GatewayError,
    ProtocolError,
    RequestError,
    SessionInvalidated,
    TransportError,
)
from mini_discord.gateway.heartbeat import HeartbeatScheduler
from mini_discord.gateway.logging_config import get_gateway_logger
from mini_discord.gateway.protocol import (
    NORMAL_CLOSE_CODE,
    READY_EVENT,
    RESUMED_EVENT,
    RESUMABLE_CLOSE_CODE,
    GatewayFrame,
    OpCode,
    build_gateway_url,
    decode_frame,
    encode_frame,
    identify_payload,
    resume_payload,
)
from mini_discord.gateway.reconnect import CloseInfo, ReconnectPolicy
from mini_discord.gateway.session import SessionState
from mini_discord.long_connection.base import HANDSHAKE_STATES, ConnectionState, LongConnectionPlatform
from mini_discord.long_connection.events import EventBus

logger = get_gateway_logger()

EndpointProvider = Callable[[], Awaitable[str]]
Connector = Callable[[str], Awaitable[Any]]


def default_connector(url: str) -> Awaitable[Any]:
    """Open a websocket without a message size limit (READY payloads can be large)."""
    return websockets.connect(url, max_size=None)


class DiscordGateway(LongConnectionPlatform):
    """
    Connection state machine for the Discord gateway.

    Events emitted on ``self.events``:
    - ``socket_opened`` (url), ``socket_closed`` (CloseInfo),
      ``socket_error`` (TransportError), ``timeout`` (url)
    - ``socket_message`` (raw text), ``message`` (decoded dict)
    - ``protocol_error`` (ProtocolError), ``session_invalidated`` (SessionInvalidated)
    - one event per dispatch type (``READY``, ``MESSAGE_CREATE``, ...) with its payload
    """

    def __init__(
        self,
        config: DiscordConfig,
        token: Optional[str] = None,
        session: Optional[SessionState] = None,
        endpoint_provider: Optional[EndpointProvider] = None,
        connector: Optional[Connector] = None,
        events: Optional[EventBus] = None,
    ):
        """
        Initialize the gateway.

        Args:
            config: DiscordConfig instance
            token: Bot token, defaults to the configured one
            session: Session state to resume from, a new empty one if omitted
            endpoint_provider: Async callable returning the gateway URL; when
                omitted config.gateway_url is used
            connector: Async callable opening a websocket for a URL
                (default: websockets.connect)
            events: Event bus to emit to
        """
        super().__init__(platform_id="discord", events=events)
        self.config = config
        self.token = token or config.resolve_token()

        self._endpoint_provider = endpoint_provider
        self.session = session or SessionState(
            original_endpoint=None if endpoint_provider else config.gateway_url
        )
        self.reconnect_policy = ReconnectPolicy(config.gateway_reconnect_delay)

        self._connector: Connector = connector or default_connector
        self._attempt: Optional[ConnectionAttempt] = None
        self._attempt_count = 0

        self._run_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self._stopping = False

    @property
    def attempt(self) -> Optional[ConnectionAttempt]:
        """The current connection attempt."""
        return self._attempt

    @property
    def heartbeat(self) -> Optional[HeartbeatScheduler]:
        """Heartbeat scheduler of the current attempt."""
        return self._attempt.heartbeat if self._attempt else None

    @property
    def is_open(self) -> bool:
        """Whether a socket is currently live."""
        attempt = self._attempt
        return attempt is not None and attempt.socket is not None and not attempt.retired

    @property
    def run_task(self) -> Optional[asyncio.Task]:
        return self._run_task

    # ==================== Lifecycle ====================

    async def start(self) -> asyncio.Task:
        """
        Discover the endpoint and start the run loop in the background.

        Endpoint discovery happens before the task is created, so a failing
        request prevents the first connection attempt and raises here.

        Returns:
            The run loop task
        """
        if self._run_task is not None and not self._run_task.done():
            return self._run_task

        if self._endpoint_provider is not None and self.session.original_endpoint is None:
            await self._discover_endpoint()

        self._run_task = asyncio.create_task(self.run(), name="discord-gateway")
        return self._run_task

    async def run(self) -> None:
        """
        Connect and keep the connection alive until disconnect().

        After every closure the reconnect policy decides whether to open a new
        socket and after which delay.

        Protocol errors end only the socket they occurred on; the closure
        they cause is handled like any other.

        Raises:
            RequestError: If the initial endpoint discovery fails
        """
        self._stopping = False
        self._stop_event.clear()

        try:
            if self._endpoint_provider is not None and self.session.original_endpoint is None:
                await self._discover_endpoint()

            while not self._stopping:
                if self._has_live_attempt():
                    # connect() was called while the loop was waiting
                    logger.info(f"DiscordGateway: [FOLLOW] attempt={self._attempt.attempt_id}")
                else:
                    await self.connect()
                info = await self._wait_until_closed()

                if self._stopping:
                    break

                delay = self.reconnect_policy.next_delay(info)
                if delay is None:
                    break

                self._set_state(ConnectionState.RECONNECTING)
                if await self._wait_for_stop(delay):
                    break

                if self.session.needs_discovery and self._endpoint_provider is not None:
                    await self._rediscover_endpoint()
        finally:
            attempt = self._attempt
            if attempt is not None and not attempt.retired:
                await self._close_attempt(
                    attempt,
                    CloseInfo(code=NORMAL_CLOSE_CODE, reason="run loop stopped"),
                    send_code=NORMAL_CLOSE_CODE,
                )
            self._set_state(ConnectionState.IDLE)
            logger.info("DiscordGateway: [RUN_STOPPED]")

    async def connect(self) -> None:
        """
        Open a new socket to the current endpoint.

        A previous socket of this gateway is closed first, so at most one
        socket is live. Returns once the socket is open or once the attempt
        has failed; failures are reported on the event bus and resolve the
        attempt's closed future.

        Raises:
            GatewayError: If no endpoint or no token is available
        """
        endpoint = self.session.endpoint
        if endpoint is None:
            raise GatewayError("No gateway endpoint known; discover it before connecting")
        if not self.token:
            raise GatewayError("No bot token configured")

        self._attempt_count += 1
        attempt = ConnectionAttempt(
            attempt_id=self._attempt_count,
            url=build_gateway_url(endpoint, self.config.api_version),
        )
        attempt.heartbeat = HeartbeatScheduler(
            send_heartbeat=lambda: self._send_heartbeat(attempt),
            on_missed_ack=lambda: self._on_missed_ack(attempt),
            track_acks=self.config.heartbeat_ack_tracking,
        )

        previous = self._attempt
        self._attempt = attempt
        if previous is not None and not previous.retired:
            await self._close_attempt(
                previous,
                CloseInfo(code=RESUMABLE_CLOSE_CODE, reason="superseded by a new connection"),
                send_code=RESUMABLE_CLOSE_CODE,
            )

        self._transition(attempt, ConnectionState.CONNECTING)
        logger.info(f"DiscordGateway: [CONNECT_START] attempt={attempt.attempt_id} url={attempt.url}")

        try:
            socket = await self._open_socket(attempt.url)
        except asyncio.TimeoutError:
            logger.warning(
                f"DiscordGateway: [CONNECT_TIMEOUT] attempt={attempt.attempt_id} "
                f"after {self.config.gateway_connect_timeout}s"
            )
            self.events.emit("timeout", attempt.url)
            await self._close_attempt(attempt, CloseInfo(reason="connect timeout", timed_out=True))
            return
        except Exception as e:
            error = TransportError(f"Failed to open gateway socket: {e}")
            error.__cause__ = e
            logger.error(f"DiscordGateway: [CONNECT_FAIL] attempt={attempt.attempt_id} {e}")
            self.events.emit("socket_error", error)
            await self._close_attempt(attempt, CloseInfo(code=1006, reason=str(e)))
            return

        if attempt.retired:
            # Superseded or disconnected while the socket was opening
            await self._close_socket(socket, NORMAL_CLOSE_CODE, "attempt retired")
            return

        attempt.socket = socket
        self._transition(attempt, ConnectionState.AWAITING_HELLO)
        logger.info(f"DiscordGateway: [CONNECTED] attempt={attempt.attempt_id}")
        self.events.emit("socket_opened", attempt.url)

        attempt.reader_task = asyncio.create_task(
            self._read_loop(attempt), name=f"discord-gateway-reader-{attempt.attempt_id}"
        )

    async def disconnect(self) -> None:
        """Close the socket and stop reconnecting."""
        logger.info("DiscordGateway: [DISCONNECT_START]")
        self._stopping = True
        self._stop_event.set()

        attempt = self._attempt
        if attempt is not None and not attempt.retired:
            await self._close_attempt(
                attempt,
                CloseInfo(code=NORMAL_CLOSE_CODE, reason="client disconnect"),
                send_code=NORMAL_CLOSE_CODE,
            )

        task = self._run_task
        if task is not None and task is not asyncio.current_task() and not task.done():
            await asyncio.gather(task, return_exceptions=True)
        self._run_task = None

        self._set_state(ConnectionState.IDLE)
        logger.info("DiscordGateway: [DISCONNECTED]")

    async def send(self, op: int, d: Any = None) -> None:
        """
        Send a frame on the live socket.

        Raises:
            TransportError: If no socket is open
        """
        attempt = self._attempt
        if attempt is None:
            raise TransportError("Gateway socket is not open")
        await self._send(attempt, op, d)

    # ==================== Frame handling ====================

    async def handle_frame(
        self, raw: Union[str, bytes], attempt: Optional[ConnectionAttempt] = None
    ) -> None:
        """
        Process one inbound frame.

        Frames are handled strictly one at a time in arrival order. Frames
        belonging to a retired attempt are dropped.

        Args:
            raw: Frame text as received from the socket
            attempt: Attempt the frame arrived on (default: the current one)

        Raises:
            ProtocolError: If the frame is malformed or handling it failed,
                and gateway_throw_error is set
        """
        attempt = attempt or self._attempt
        if attempt is None or attempt.retired:
            logger.debug("DiscordGateway: dropping frame for a retired attempt")
            return

        frame: Optional[GatewayFrame] = None
        try:
            self.events.emit("socket_message", raw)
            data, frame = decode_frame(raw)
            self.events.emit("message", data)
            await self._dispatch(attempt, frame)
        except ConnectionClosed:
            raise
        except Exception as e:
            if isinstance(e, ProtocolError):
                error = e
            else:
                error = ProtocolError(
                    f"Failed to handle frame: {e!r}",
                    raw=raw if isinstance(raw, str) else None,
                    op=frame.op if frame else None,
                )
                error.__cause__ = e
            logger.error(f"DiscordGateway: [PROTOCOL_ERROR] {error}")
            self.events.emit("protocol_error", error)
            if self.config.gateway_throw_error:
                raise error

    async def _dispatch(self, attempt: ConnectionAttempt, frame: GatewayFrame) -> None:
        op = frame.op

        if op == OpCode.DISPATCH:
            self._handle_dispatch(attempt, frame)
        elif op == OpCode.HEARTBEAT:
            # Server asks for a heartbeat right away
            await attempt.heartbeat.beat()
        elif op == OpCode.HEARTBEAT_ACK:
            attempt.heartbeat.ack()
        elif op == OpCode.RECONNECT:
            await self._handle_reconnect(attempt)
        elif op == OpCode.INVALID_SESSION:
            await self._handle_invalid_session(attempt, frame)
        elif op == OpCode.HELLO:
            await self._handle_hello(attempt, frame)
        else:
            logger.debug(f"DiscordGateway: [UNKNOWN_OP] op={op}")

    def _handle_dispatch(self, attempt: ConnectionAttempt, frame: GatewayFrame) -> None:
        ready = None
        if frame.t == READY_EVENT:
            ready = self._parse_ready(frame.d)

        self.session.record_sequence(frame.s)
        if ready is not None:
            self.session.capture_ready(*ready)

        if attempt.state in HANDSHAKE_STATES:
            # The server only dispatches on an established session
            previous = attempt.state
            self._transition(attempt, ConnectionState.READY)
            self.reconnect_policy.reset()
            logger.info(
                f"DiscordGateway: [READY] attempt={attempt.attempt_id} via={frame.t} "
                f"from={previous.value} session_id={self.session.session_id}"
            )

        if frame.t == RESUMED_EVENT:
            logger.info(
                f"DiscordGateway: [RESUMED] session_id={self.session.session_id} seq={self.session.sequence}"
            )

        if frame.t:
            self.events.emit(frame.t, frame.d)

    @staticmethod
    def _parse_ready(d: Any) -> tuple[str, Optional[str]]:
        if not isinstance(d, dict) or not d.get("session_id"):
            raise ProtocolError("READY payload without a session_id", op=OpCode.DISPATCH)
        return str(d["session_id"]), d.get("resume_gateway_url")

    async def _handle_hello(self, attempt: ConnectionAttempt, frame: GatewayFrame) -> None:
        d = frame.d if isinstance(frame.d, dict) else {}
        interval = d.get("heartbeat_interval")
        if isinstance(interval, bool) or not isinstance(interval, (int, float)) or interval <= 0:
            raise ProtocolError("Hello frame without a valid heartbeat_interval", op=OpCode.HELLO)

        heartbeat = attempt.heartbeat
        heartbeat.stop()
        await heartbeat.beat()
        heartbeat.arm(interval)

        if self.session.can_resume:
            self._transition(attempt, ConnectionState.RESUMING)
            logger.info(
                f"DiscordGateway: [RESUME] session_id={self.session.session_id} seq={self.session.sequence}"
            )
            await self._send(
                attempt,
                OpCode.RESUME,
                resume_payload(self.token, self.session.session_id, self.session.sequence),
            )
        else:
            self._transition(attempt, ConnectionState.IDENTIFYING)
            logger.info(f"DiscordGateway: [IDENTIFY] intents={self.config.gateway_intents}")
            await self._send(
                attempt,
                OpCode.IDENTIFY,
                identify_payload(self.token, self.config.gateway_intents, self.config.client_name),
            )

    async def _handle_reconnect(self, attempt: ConnectionAttempt) -> None:
        logger.info(f"DiscordGateway: [RECONNECT_REQUESTED] attempt={attempt.attempt_id}")
        await self._close_attempt(
            attempt,
            CloseInfo(code=RESUMABLE_CLOSE_CODE, reason="server requested reconnect"),
            send_code=RESUMABLE_CLOSE_CODE,
        )

    async def _handle_invalid_session(self, attempt: ConnectionAttempt, frame: GatewayFrame) -> None:
        signal = SessionInvalidated(resumable=bool(frame.d))
        logger.warning(
            f"DiscordGateway: [INVALID_SESSION] attempt={attempt.attempt_id} resumable={signal.resumable}"
        )
        self.session.invalidate()
        self.events.emit("session_invalidated", signal)
        await self._close_attempt(
            attempt,
            CloseInfo(code=NORMAL_CLOSE_CODE, reason="session invalidated"),
            send_code=NORMAL_CLOSE_CODE,
        )

    # ==================== Socket plumbing ====================

    async def _open_socket(self, url: str) -> Any:
        timeout = self.config.gateway_connect_timeout
        if timeout > 0:
            return await asyncio.wait_for(self._open(url), timeout=timeout)
        return await self._open(url)

    async def _open(self, url: str) -> Any:
        return await self._connector(url)

    async def _read_loop(self, attempt: ConnectionAttempt) -> None:
        """Feed frames of one socket through handle_frame until it closes."""
        socket = attempt.socket
        try:
            async for raw in socket:
                await self.handle_frame(raw, attempt)
                if attempt.retired:
                    return
        except ProtocolError as e:
            # Already logged and emitted by handle_frame; reconnecting is up to the run loop
            attempt.error = e
            await self._close_attempt(
                attempt,
                CloseInfo(code=RESUMABLE_CLOSE_CODE, reason="protocol error"),
                send_code=RESUMABLE_CLOSE_CODE,
            )
            return
        except (ConnectionClosed, OSError) as e:
            if attempt.retired:
                return
            error = TransportError(
                f"Gateway connection lost: {e}", code=getattr(socket, "close_code", None)
            )
            error.__cause__ = e
            logger.warning(f"DiscordGateway: [SOCKET_ERROR] attempt={attempt.attempt_id} {e}")
            self.events.emit("socket_error", error)

        await self._close_attempt(
            attempt,
            CloseInfo(
                code=getattr(socket, "close_code", None),
                reason=getattr(socket, "close_reason", None) or "",
            ),
        )

    async def _close_attempt(
        self,
        attempt: ConnectionAttempt,
        info: CloseInfo,
        send_code: Optional[int] = None,
    ) -> None:
        """
        Retire an attempt: stop its timers, close its socket, report the closure.

        Args:
            attempt: Attempt to retire
            info: Closure details reported on the event bus
            send_code: Close code to send when this side initiates the close
        """
        if attempt.retired:
            return

        attempt.retire()
        if attempt is self._attempt:
            self._set_state(ConnectionState.CLOSING)

        if attempt.socket is not None:
            await self._close_socket(attempt.socket, send_code, info.reason)

        logger.info(
            f"DiscordGateway: [CLOSED] attempt={attempt.attempt_id} code={info.code} reason='{info.reason}'"
        )
        self.events.emit("socket_closed", info)
        attempt.finish(info)

    @staticmethod
    async def _close_socket(socket: Any, code: Optional[int], reason: str) -> None:
        try:
            if code is None:
                await socket.close()
            else:
                # Close reasons are limited to 123 bytes on the wire
                await socket.close(code=code, reason=reason[:120])
        except Exception as e:
            logger.debug(f"DiscordGateway: socket close failed: {e}")

    async def _send(self, attempt: ConnectionAttempt, op: int, d: Any = None) -> None:
        if attempt.socket is None or attempt.retired:
            raise TransportError("Gateway socket is not open")
        await attempt.socket.send(encode_frame(op, d))
        logger.debug(f"DiscordGateway: [SEND] op={int(op)}")

    async def _send_heartbeat(self, attempt: ConnectionAttempt) -> None:
        if attempt.retired:
            return
        await self._send(attempt, OpCode.HEARTBEAT, self.session.sequence)

    async def _on_missed_ack(self, attempt: ConnectionAttempt) -> None:
        if attempt.retired:
            return
        logger.warning(f"DiscordGateway: [ZOMBIE] attempt={attempt.attempt_id} closing to resume")
        await self._close_attempt(
            attempt,
            CloseInfo(code=RESUMABLE_CLOSE_CODE, reason="heartbeat ack missed"),
            send_code=RESUMABLE_CLOSE_CODE,
        )

    def _transition(self, attempt: ConnectionAttempt, state: ConnectionState) -> None:
        attempt.state = state
        if attempt is self._attempt:
            self._set_state(state)

    # ==================== Run loop helpers ====================

    def _has_live_attempt(self) -> bool:
        """Whether the current attempt is open or still opening."""
        attempt = self._attempt
        return attempt is not None and not attempt.retired

    async def _wait_until_closed(self) -> CloseInfo:
        """Wait for the current attempt to end, following attempts opened by connect()."""
        while True:
            attempt = self._attempt
            info = await attempt.closed
            if attempt is self._attempt:
                return info

    async def _wait_for_stop(self, delay: float) -> bool:
        """Sleep for the reconnect delay; True if disconnect() was called meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            return True
        except asyncio.TimeoutError:
            return self._stopping

    async def _discover_endpoint(self) -> None:
        logger.info("DiscordGateway: [DISCOVER]")
        url = await self._endpoint_provider()
        self.session.set_original_endpoint(url.rstrip("/"))

    async def _rediscover_endpoint(self) -> None:
        try:
            await self._discover_endpoint()
        except Exception as e:
            logger.warning(
                f"DiscordGateway: [DISCOVER_FAIL] keeping {self.session.original_endpoint}: {e}"
            )

    def get_stats(self) -> dict:
        """Get connection statistics."""
        heartbeat = self.heartbeat
        stats = {
            "platform": self.platform_id,
            "state": self._state.value,
            "is_connected": self.is_connected,
            "attempts": self._attempt_count,
            "heartbeat_interval_ms": heartbeat.interval_ms if heartbeat else None,
            "latency": heartbeat.latency if heartbeat else None,
        }
        stats.update(self.session.get_stats())
        return stats


__all__ = [
    "CloseInfo",
    "ConnectionAttempt",
    "DiscordGateway",
    "GatewayError",
    "HeartbeatScheduler",
    "OpCode",
    "ProtocolError",
    "ReconnectPolicy",
    "RequestError",
    "SessionInvalidated",
    "SessionState",
    "TransportError",
]
