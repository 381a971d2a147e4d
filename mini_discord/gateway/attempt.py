"""
Gateway Connection Attempt

Per-socket state of a gateway. A new attempt is created for every socket the
gateway opens; every timer and task hangs off the attempt that created it.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional

from mini_discord.gateway.errors import ProtocolError
from mini_discord.gateway.heartbeat import HeartbeatScheduler
from mini_discord.gateway.reconnect import CloseInfo
from mini_discord.long_connection.base import ConnectionState


def _new_future() -> asyncio.Future:
    return asyncio.get_running_loop().create_future()


@dataclass(eq=False)
class ConnectionAttempt:
    """
    One socket attempt.

    Once retired, nothing belonging to the attempt (heartbeat timer, reader
    task, late frames) may act on the gateway any more.
    """
    attempt_id: int
    url: str
    state: ConnectionState = ConnectionState.CONNECTING
    socket: Any = None
    heartbeat: Optional[HeartbeatScheduler] = None
    reader_task: Optional[asyncio.Task] = None
    closed: asyncio.Future = field(default_factory=_new_future)
    close_info: Optional[CloseInfo] = None
    error: Optional[ProtocolError] = None  # surfaced protocol error that ended the attempt
    retired: bool = False

    def retire(self) -> None:
        """Stop every timer and task owned by this attempt."""
        self.retired = True
        self.state = ConnectionState.CLOSING
        if self.heartbeat is not None:
            self.heartbeat.stop()
        task = self.reader_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def finish(self, info: CloseInfo) -> None:
        """Resolve the closed future with how the attempt ended."""
        self.close_info = info
        if not self.closed.done():
            self.closed.set_result(info)
