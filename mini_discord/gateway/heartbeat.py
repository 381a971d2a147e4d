"""
Gateway Heartbeat Scheduler

Keeps a gateway connection alive by sending heartbeats at the interval the
server advertised in Hello.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional

from websockets.exceptions import ConnectionClosed

from mini_discord.gateway.logging_config import get_gateway_logger

logger = get_gateway_logger()

# Beat a little faster than the server asks so a beat never arrives late
SAFETY_FACTOR = 0.9


class HeartbeatScheduler:
    """
    Periodic heartbeat emitter owned by a single connection attempt.

    Only one timer is active at a time: arming always cancels the previous
    timer, and stop() is called whenever the socket closes.
    """

    def __init__(
        self,
        send_heartbeat: Callable[[], Awaitable[None]],
        on_missed_ack: Optional[Callable[[], Awaitable[None]]] = None,
        track_acks: bool = False,
    ):
        """
        Initialize the scheduler.

        Args:
            send_heartbeat: Coroutine function that sends one heartbeat frame
            on_missed_ack: Called when a tick finds the previous beat unacknowledged
            track_acks: Enable zombie detection through heartbeat ACKs
        """
        self._send_heartbeat = send_heartbeat
        self._on_missed_ack = on_missed_ack
        self._track_acks = track_acks

        self.interval_ms: Optional[float] = None
        self._task: Optional[asyncio.Task] = None
        self._awaiting_ack = False
        self._last_sent: Optional[float] = None
        self._last_ack: Optional[float] = None
        self.beats_sent = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def awaiting_ack(self) -> bool:
        return self._awaiting_ack

    @property
    def latency(self) -> Optional[float]:
        """Seconds between the last heartbeat and its ACK, None if not measured yet."""
        if self._last_sent is None or self._last_ack is None or self._last_ack < self._last_sent:
            return None
        return self._last_ack - self._last_sent

    @staticmethod
    def compute_interval(server_interval_ms: float) -> float:
        """Scale the server-advertised interval by the safety factor."""
        return server_interval_ms * SAFETY_FACTOR

    def arm(self, server_interval_ms: float) -> float:
        """
        (Re)start the timer for the interval announced in Hello.

        Args:
            server_interval_ms: heartbeat_interval from the Hello payload

        Returns:
            The effective interval in milliseconds
        """
        self.stop()
        self.interval_ms = self.compute_interval(server_interval_ms)
        self._task = asyncio.create_task(self._run(self.interval_ms / 1000))
        logger.info(f"HeartbeatScheduler: [ARMED] interval_ms={self.interval_ms:.0f}")
        return self.interval_ms

    async def beat(self) -> None:
        """Send one heartbeat now."""
        self._awaiting_ack = True
        self._last_sent = time.monotonic()
        self.beats_sent += 1
        await self._send_heartbeat()

    def ack(self) -> None:
        """Record a heartbeat acknowledgement (op 11)."""
        self._awaiting_ack = False
        self._last_ack = time.monotonic()

    def stop(self) -> None:
        """Cancel the timer. Safe to call repeatedly."""
        task = self._task
        self._task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _run(self, interval_s: float) -> None:
        while True:
            await asyncio.sleep(interval_s)

            if self._track_acks and self._awaiting_ack:
                logger.warning("HeartbeatScheduler: [ACK_MISSED] previous heartbeat was not acknowledged")
                self._task = None
                if self._on_missed_ack:
                    await self._on_missed_ack()
                return

            try:
                await self.beat()
            except ConnectionClosed:
                logger.debug("HeartbeatScheduler: socket closed, stopping")
                return
            except Exception as e:
                logger.error(f"HeartbeatScheduler: [BEAT_ERROR] {e}")
                return
