"""
Gateway Reconnect Policy

Decides whether and when to open a new connection after a closure.
"""

from dataclasses import dataclass
from typing import Optional

from mini_discord.gateway.logging_config import get_gateway_logger

logger = get_gateway_logger()


@dataclass(frozen=True)
class CloseInfo:
    """Why a connection attempt ended."""
    code: Optional[int] = None
    reason: str = ""
    timed_out: bool = False


class ReconnectPolicy:
    """
    Fixed-delay reconnect policy.

    Every closure (graceful, erroring or timed out) is followed by a new
    attempt after the same delay, indefinitely. A negative delay disables
    reconnecting altogether.
    """

    def __init__(self, delay: float):
        """
        Args:
            delay: Seconds to wait before reconnecting, negative disables
        """
        self.delay = delay
        self.attempts = 0

    @property
    def enabled(self) -> bool:
        return self.delay >= 0

    def next_delay(self, info: CloseInfo) -> Optional[float]:
        """
        Decide the next step after a closure.

        Args:
            info: How the previous attempt ended

        Returns:
            Seconds to wait before reconnecting, or None to stay idle
        """
        if not self.enabled:
            logger.info(f"ReconnectPolicy: [DISABLED] code={info.code} reason='{info.reason}'")
            return None

        self.attempts += 1
        logger.info(
            f"ReconnectPolicy: [SCHEDULED] attempt={self.attempts} delay={self.delay}s "
            f"code={info.code} reason='{info.reason}' timed_out={info.timed_out}"
        )
        return self.delay

    def reset(self) -> None:
        """Forget consecutive attempts once a session is established."""
        self.attempts = 0
