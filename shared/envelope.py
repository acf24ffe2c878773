from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import json

from shared.utils import UINT32_MAX, is_hex_payload, parse_uint32

# Origin tag stamped on every packet decoded by the bridge.
BRIDGE_SOURCE_TAG = 12

KIND_CALL = "call"
KIND_SEND = "send"


class ProtocolError(Exception):
    """Raised when an inbound frame cannot be turned into a packet."""
    pass
class MalformedEnvelopeError(ProtocolError):
    """Raised when a frame is not a JSON object shaped like an envelope."""
    pass
class MissingFieldError(ProtocolError):
    """Raised when a required envelope field is absent."""
    pass
class InvalidPayloadError(ProtocolError):
    """Raised when 'pb' is not an even-length hex string."""
    pass
class InvalidSequenceError(ProtocolError):
    """Raised when 'echo' is not an unsigned 32-bit decimal."""
    pass


@dataclass
class Packet:
    """
    Binary packet exchanged with the dispatcher.

    The payload is opaque to the bridge; it only moves bytes between the
    envelope's hex form and the caller.
    """
    command: str
    sequence: int
    payload: bytes = b""
    source: int = BRIDGE_SOURCE_TAG


@dataclass
class Envelope:
    """
    Wire wrapper for every text frame:
    {
    "type": "call" | "send" | <any inbound kind>,
    "data": { ... }
    }

    call: data = {"func": NAME}
    send: data = {"echo": "UINT", "cmd": "STRING", "pb": "HEX"}
    """
    type: str
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, json_str: str) -> 'Envelope':
        """Parse JSON string into Envelope, validating structure"""
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise MalformedEnvelopeError(f"Invalid JSON: {e}")

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Any) -> 'Envelope':
        """Create Envelope from dictionary, validating required fields"""
        if not isinstance(data, dict):
            raise MalformedEnvelopeError("Envelope must be a JSON object")

        missing = {'type', 'data'} - set(data.keys())
        if missing:
            raise MissingFieldError(f"Missing required fields: {sorted(missing)}")

        if not isinstance(data['type'], str):
            raise MalformedEnvelopeError("'type' must be a string")
        if not isinstance(data['data'], dict):
            raise MalformedEnvelopeError("'data' must be an object")

        return cls(type=data['type'], data=data['data'])

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type, 'data': self.data}

    def to_json(self) -> str:
        """Compact JSON; key order is part of the wire format so no sorting"""
        return json.dumps(self.to_dict(), separators=(',', ':'))


def create_call(func: str) -> Envelope:
    """One-shot invocation envelope, e.g. getSelfInfo"""
    return Envelope(type=KIND_CALL, data={'func': func})


def create_send(packet: Packet) -> Envelope:
    """Wrap an outbound packet; the payload is written as lowercase hex"""
    sequence = packet.sequence
    if isinstance(sequence, bool) or not isinstance(sequence, int) or not 0 <= sequence <= UINT32_MAX:
        raise InvalidSequenceError(f"Sequence must be an unsigned 32-bit integer, got {sequence!r}")
    return Envelope(
        type=KIND_SEND,
        data={
            'echo': str(packet.sequence),
            'cmd': packet.command,
            'pb': packet.payload.hex(),
        },
    )


def encode_packet(packet: Packet) -> str:
    return create_send(packet).to_json()


def parse_sequence(echo: Any) -> int:
    """Absent, null or empty echo means sequence 0"""
    if echo is None or echo == "":
        return 0
    if isinstance(echo, bool):
        raise InvalidSequenceError(f"Invalid 'echo': {echo!r}")
    if isinstance(echo, int):
        echo = str(echo)
    if not isinstance(echo, str):
        raise InvalidSequenceError(f"Invalid 'echo': {echo!r}")
    value = parse_uint32(echo)
    if value is None:
        raise InvalidSequenceError(f"Invalid 'echo': {echo!r}")
    return value


def decode_payload(pb: Any) -> bytes:
    if not isinstance(pb, str) or not is_hex_payload(pb):
        raise InvalidPayloadError(f"Invalid 'pb': expected even-length hex, got {pb!r:.64}")
    return bytes.fromhex(pb)


def envelope_to_packet(envelope: Envelope) -> Optional[Packet]:
    """
    Map an inbound envelope to a packet.

    Returns None when the envelope carries no payload ('pb' absent or null).
    An empty 'pb' decodes to an empty payload. Raises ProtocolError when the
    fields that are present are invalid.
    """
    data = envelope.data
    pb = data.get('pb')
    if pb is None:
        return None

    command = data.get('cmd')
    if command is None:
        raise MissingFieldError("Missing required field: 'cmd'")
    if not isinstance(command, str):
        raise MalformedEnvelopeError("'cmd' must be a string")

    return Packet(
        command=command,
        sequence=parse_sequence(data.get('echo')),
        payload=decode_payload(pb),
    )


def decode_frame(text: str) -> Optional[Packet]:
    """Parse one complete text message straight into a packet (or None)"""
    return envelope_to_packet(Envelope.from_json(text))
