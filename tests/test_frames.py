import logging

import pytest

from deceptchat.shared.errors import ProtocolParseError
from deceptchat.shared.frames import (
    ChatFrame,
    ChatSend,
    ControlFrame,
    FrameTag,
    Ping,
    RawFrame,
    RequestMatch,
    SetUsername,
    decode,
    encode,
)


def test_encode_outbound_frames():
    assert encode(SetUsername("Player7")) == "SET_USERNAME|Player7"
    assert encode(ChatSend(sender="Player7", body="hello")) == "Player7|hello"
    assert encode(RequestMatch()) == "REQUEST_MATCH"
    assert encode(RequestMatch(role="MIMIC")) == "REQUEST_MATCH|MIMIC"
    assert encode(Ping()) == "PING"


def test_encode_rejects_unknown_event():
    with pytest.raises(TypeError):
        encode("REQUEST_MATCH")  # type: ignore[arg-type]


def test_chat_body_with_delimiters_survives_the_wire():
    wire = encode(ChatSend(sender="X", body="a|b|c"))
    assert wire == "X|a|b|c"

    frame = decode(wire)
    assert frame == ChatFrame(sender="X", body="a|b|c")


def test_chat_body_edge_cases_survive_the_wire():
    for body in ["|", "||", "trailing|", "|leading", "SET_USERNAME|x"]:
        assert decode(encode(ChatSend(sender="Bob", body=body))) == ChatFrame(sender="Bob", body=body)


def test_decode_empty_is_ignored():
    assert decode("") is None
    assert decode(b"") is None


def test_decode_match_success_without_room_id():
    frame = decode("MATCH_SUCCESS")
    assert isinstance(frame, ControlFrame)
    assert frame.tag == FrameTag.MATCH_SUCCESS
    assert frame.args == ()
    assert frame.arg(0) == ""


def test_decode_control_frames_keep_arguments():
    assert decode("MATCH_SUCCESS|room42|1") == ControlFrame(FrameTag.MATCH_SUCCESS, ("room42", "1"))
    assert decode("MATCH_QUEUED|GUESSER") == ControlFrame(FrameTag.MATCH_QUEUED, ("GUESSER",))
    assert decode("MATCH_TIMEOUT") == ControlFrame(FrameTag.MATCH_TIMEOUT)
    assert decode("PLAYER_DISCONNECTED") == ControlFrame(FrameTag.PLAYER_DISCONNECTED)
    assert decode("MATCH_QUEUE_FULL") == ControlFrame(FrameTag.MATCH_QUEUE_FULL)
    assert decode("PONG") == ControlFrame(FrameTag.PONG)


def test_outbound_tags_are_not_control_frames_inbound():
    # A peer named like an outbound tag is still just a chat sender
    assert decode("REQUEST_MATCH|hi") == ChatFrame(sender="REQUEST_MATCH", body="hi")


def test_decode_single_field_is_raw_and_logged(caplog):
    with caplog.at_level(logging.WARNING, logger="deceptchat.shared.frames"):
        frame = decode("hello there")

    assert frame == RawFrame(body="hello there")
    assert frame.sender is None
    assert "Received simple message" in caplog.text


def test_decode_bytes_as_utf8():
    assert decode("Ana|olá".encode("utf-8")) == ChatFrame(sender="Ana", body="olá")


def test_decode_invalid_utf8_raises_parse_error():
    with pytest.raises(ProtocolParseError):
        decode(b"\xff\xfe|x")


def test_frame_tag_helpers():
    assert FrameTag.is_valid("MATCH_QUEUED")
    assert not FrameTag.is_valid("Player12")
    assert FrameTag.from_string("PONG") is FrameTag.PONG
    with pytest.raises(ValueError):
        FrameTag.from_string("NOPE")
