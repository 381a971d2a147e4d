"""
Gateway Wire Protocol

Op codes, the frame model and the payload builders for the JSON gateway
encoding.
"""

import json
import sys
from enum import IntEnum
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from mini_discord.gateway.errors import ProtocolError


class OpCode(IntEnum):
    """Gateway op codes."""
    DISPATCH = 0
    HEARTBEAT = 1
    IDENTIFY = 2
    RESUME = 6
    RECONNECT = 7
    INVALID_SESSION = 9
    HELLO = 10
    HEARTBEAT_ACK = 11


READY_EVENT = "READY"
RESUMED_EVENT = "RESUMED"

# Close codes sent by the client. 1000 ends the session on the server side,
# 4000 keeps it resumable.
NORMAL_CLOSE_CODE = 1000
RESUMABLE_CLOSE_CODE = 4000


class GatewayFrame(BaseModel):
    """Single gateway frame: {op, d, s?, t?}."""

    op: int = Field(description="Op code")
    d: Any = Field(default=None, description="Payload")
    s: Optional[int] = Field(default=None, description="Sequence number (dispatch only)")
    t: Optional[str] = Field(default=None, description="Event name (dispatch only)")

    class Config:
        """Pydantic configuration."""
        extra = "allow"


class ConnectionProperties(BaseModel):
    """Connection properties sent with Identify."""

    os: str
    browser: str
    device: str


class IdentifyPayload(BaseModel):
    """Payload of an Identify (op 2) frame."""

    token: str
    properties: ConnectionProperties
    intents: int


class ResumePayload(BaseModel):
    """Payload of a Resume (op 6) frame."""

    token: str
    session_id: str
    seq: Optional[int] = None


def decode_frame(raw: Union[str, bytes]) -> tuple[dict, GatewayFrame]:
    """
    Decode a raw text frame.

    Args:
        raw: Frame text as received from the socket

    Returns:
        (decoded dict, validated frame)

    Raises:
        ProtocolError: If the text is not JSON or not a gateway frame
    """
    text = raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else raw
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolError(f"Invalid JSON frame: {e}", raw=text) from e

    if not isinstance(data, dict):
        raise ProtocolError("Gateway frame must be a JSON object", raw=text)

    try:
        frame = GatewayFrame.model_validate(data)
    except ValidationError as e:
        raise ProtocolError(f"Invalid gateway frame: {e}", raw=text) from e

    return data, frame


def encode_frame(op: int, d: Any = None) -> str:
    """Encode an outbound frame."""
    return json.dumps({"op": int(op), "d": d})


def build_gateway_url(endpoint: str, api_version: int) -> str:
    """Append the version and encoding query to a gateway endpoint."""
    separator = "&" if "?" in endpoint else "?"
    return f"{endpoint.rstrip('/')}{separator}v={api_version}&encoding=json"


def identify_payload(token: str, intents: int, client_name: str) -> dict:
    """Build the Identify payload for a fresh session."""
    return IdentifyPayload(
        token=token,
        properties=ConnectionProperties(
            os=sys.platform,
            browser=client_name,
            device=client_name,
        ),
        intents=intents,
    ).model_dump()


def resume_payload(token: str, session_id: str, seq: Optional[int]) -> dict:
    """Build the Resume payload for an existing session."""
    return ResumePayload(token=token, session_id=session_id, seq=seq).model_dump()
