"""
Gateway Session State

Resumable-session identity shared across reconnects of one gateway.
"""

from dataclasses import dataclass
from typing import Optional

from mini_discord.gateway.logging_config import get_gateway_logger

logger = get_gateway_logger()


@dataclass
class SessionState:
    """
    Identity of a resumable gateway session.

    Created empty with the gateway, populated by READY, mutated in place
    across reconnects and wiped only when the server invalidates the session.
    Only the gateway that owns it mutates it.
    """
    original_endpoint: Optional[str] = None  # from the endpoint provider / config
    session_id: Optional[str] = None
    sequence: Optional[int] = None
    resume_endpoint: Optional[str] = None  # resume_gateway_url from READY
    needs_discovery: bool = False  # ask the endpoint provider again before the next attempt

    @property
    def endpoint(self) -> Optional[str]:
        """Endpoint for the next connection attempt."""
        return self.resume_endpoint or self.original_endpoint

    @property
    def can_resume(self) -> bool:
        """Whether the next handshake should send Resume instead of Identify."""
        return self.session_id is not None

    def set_original_endpoint(self, url: str) -> None:
        """Record a freshly discovered endpoint and connect to it next."""
        self.original_endpoint = url
        self.resume_endpoint = None
        self.needs_discovery = False
        logger.info(f"SessionState: [ENDPOINT] original={url}")

    def record_sequence(self, seq: Optional[int]) -> None:
        """
        Record the sequence number of a dispatch frame.

        The latest observed value always wins, even if it is lower than the
        previous one.
        """
        if seq is None:
            return
        if self.sequence is not None and seq < self.sequence:
            logger.debug(f"SessionState: [SEQ_BACKWARDS] {self.sequence} -> {seq}")
        self.sequence = seq

    def capture_ready(self, session_id: str, resume_endpoint: Optional[str]) -> None:
        """Store the session identity announced by READY."""
        self.session_id = session_id
        if resume_endpoint:
            self.resume_endpoint = resume_endpoint.rstrip("/")
        logger.info(
            f"SessionState: [READY] session_id={session_id} resume_endpoint={self.resume_endpoint}"
        )

    def invalidate(self) -> None:
        """Forget the session so the next handshake identifies fresh."""
        logger.info(f"SessionState: [INVALIDATED] session_id={self.session_id}")
        self.session_id = None
        self.sequence = None
        self.resume_endpoint = None
        self.needs_discovery = True

    def get_stats(self) -> dict:
        """Get session statistics."""
        return {
            "session_id": self.session_id,
            "sequence": self.sequence,
            "endpoint": self.endpoint,
            "can_resume": self.can_resume,
        }
