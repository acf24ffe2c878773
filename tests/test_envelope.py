import json

import pytest

from shared.envelope import (
    BRIDGE_SOURCE_TAG,
    Envelope,
    InvalidPayloadError,
    InvalidSequenceError,
    MalformedEnvelopeError,
    MissingFieldError,
    Packet,
    create_call,
    decode_frame,
    encode_packet,
)


def test_send_frame_matches_wire_format():
    packet = Packet(command="Test.Cmd", sequence=42, payload=bytes([0xAB, 0xCD]))

    assert encode_packet(packet) == '{"type":"send","data":{"echo":"42","cmd":"Test.Cmd","pb":"abcd"}}'


def test_call_frame_matches_wire_format():
    assert create_call("getSelfInfo").to_json() == '{"type":"call","data":{"func":"getSelfInfo"}}'


def test_inbound_without_echo_defaults_to_zero():
    packet = decode_frame('{"type":"push","data":{"cmd":"X","pb":"01ff"}}')

    assert packet == Packet(command="X", sequence=0, payload=b"\x01\xff")
    assert packet.source == BRIDGE_SOURCE_TAG


@pytest.mark.parametrize("echo", ["", None])
def test_empty_or_null_echo_is_zero(echo):
    frame = json.dumps({"type": "push", "data": {"echo": echo, "cmd": "X", "pb": "00"}})

    assert decode_frame(frame).sequence == 0


def test_uppercase_hex_is_accepted():
    packet = decode_frame('{"type":"send","data":{"echo":"7","cmd":"Y","pb":"ABCDEF"}}')

    assert packet.sequence == 7
    assert packet.payload == b"\xab\xcd\xef"


@pytest.mark.parametrize("absent", [True, False])
def test_absent_or_null_payload_yields_no_packet(absent):
    data = {"echo": "3", "cmd": "X"}
    if not absent:
        data["pb"] = None

    assert decode_frame(json.dumps({"type": "push", "data": data})) is None


def test_empty_payload_decodes_to_empty_bytes():
    packet = decode_frame('{"type":"push","data":{"echo":"3","cmd":"X","pb":""}}')

    assert packet == Packet(command="X", sequence=3, payload=b"")


def test_send_then_decode_preserves_packet():
    for payload in (b"", b"\x00", bytes(range(256))):
        packet = Packet(command="Svc.Op", sequence=0xFFFFFFFF, payload=payload)

        assert decode_frame(encode_packet(packet)) == packet


@pytest.mark.parametrize("pb", ["abc", "zz", "0x01", "ab cd"])
def test_bad_hex_is_protocol_error(pb):
    frame = json.dumps({"type": "push", "data": {"cmd": "X", "pb": pb}})

    with pytest.raises(InvalidPayloadError):
        decode_frame(frame)


@pytest.mark.parametrize("echo", ["-1", "abc", "4294967296", "1.5", " 1"])
def test_bad_echo_is_protocol_error(echo):
    frame = json.dumps({"type": "push", "data": {"echo": echo, "cmd": "X", "pb": "00"}})

    with pytest.raises(InvalidSequenceError):
        decode_frame(frame)


def test_numeric_echo_is_tolerated():
    frame = json.dumps({"type": "push", "data": {"echo": 9, "cmd": "X", "pb": "00"}})

    assert decode_frame(frame).sequence == 9


@pytest.mark.parametrize("frame", ["not json", "[]", '{"type":"push"}', '{"type":1,"data":{}}', '{"type":"push","data":"x"}'])
def test_malformed_envelopes(frame):
    with pytest.raises((MalformedEnvelopeError, MissingFieldError)):
        Envelope.from_json(frame)


def test_payload_without_command_is_missing_field():
    with pytest.raises(MissingFieldError):
        decode_frame('{"type":"push","data":{"pb":"00"}}')


@pytest.mark.parametrize("sequence", [-1, 2**32, True, "7"])
def test_outbound_sequence_must_be_uint32(sequence):
    packet = Packet(command="X", sequence=sequence, payload=b"\x01")

    with pytest.raises(InvalidSequenceError):
        encode_packet(packet)
