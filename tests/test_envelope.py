import json

import pytest

from mp3converter.envelope import ConversionMessage, is_valid_identifier, validate_identifier
from mp3converter.exceptions import InvalidIdentifier, MalformedMessage

VIDEO_ID = "65a1f0c2e4b0a1b2c3d4e5f6"


def test_inbound_message_parses_without_result() -> None:
    message = ConversionMessage.from_json(json.dumps({"video_fid": VIDEO_ID, "mp3_fid": None, "username": "alice"}))

    assert message.source_ref == VIDEO_ID
    assert message.requester == "alice"
    assert message.result_ref is None
    assert not message.is_completion


def test_with_result_derives_completion_and_keeps_source_message() -> None:
    message = ConversionMessage(source_ref=VIDEO_ID, requester="alice")
    completion = message.with_result("65a1f0c2e4b0a1b2c3d4e5f7")

    assert completion.is_completion
    assert completion.source_ref == VIDEO_ID
    assert message.result_ref is None
    assert json.loads(completion.to_json()) == {
        "video_fid": VIDEO_ID,
        "mp3_fid": "65a1f0c2e4b0a1b2c3d4e5f7",
        "username": "alice",
    }


def test_envelope_survives_wire_round_trip() -> None:
    message = ConversionMessage(source_ref=VIDEO_ID, requester="bob", result_ref="65a1f0c2e4b0a1b2c3d4e5f7")

    assert ConversionMessage.from_json(message.to_json().encode("utf-8")) == message


@pytest.mark.parametrize(
    "payload, needle",
    [
        ("not json", "Invalid JSON"),
        (json.dumps(["a list"]), "JSON object"),
        (json.dumps({"username": "alice"}), "video_fid"),
        (json.dumps({"video_fid": VIDEO_ID}), "username"),
        (json.dumps({"video_fid": "", "username": "alice"}), "video_fid"),
    ],
)
def test_malformed_bodies_are_rejected(payload: str, needle: str) -> None:
    with pytest.raises(MalformedMessage) as excinfo:
        ConversionMessage.from_json(payload)

    assert needle in str(excinfo.value)


def test_envelope_is_immutable() -> None:
    message = ConversionMessage(source_ref=VIDEO_ID, requester="alice")

    with pytest.raises(AttributeError):
        message.requester = "mallory"  # type: ignore[misc]


@pytest.mark.parametrize("value", [VIDEO_ID, "0" * 24])
def test_identifier_accepts_24_lowercase_hex(value: str) -> None:
    assert is_valid_identifier(value)
    assert validate_identifier(value) == value


@pytest.mark.parametrize("value", ["", "xyz", VIDEO_ID.upper(), VIDEO_ID + "0", VIDEO_ID[:-1], VIDEO_ID + "\n", None, 42])
def test_identifier_rejects_other_shapes(value) -> None:
    assert not is_valid_identifier(value)
    with pytest.raises(InvalidIdentifier) as excinfo:
        validate_identifier(value)
    assert "Invalid file ID" in str(excinfo.value)
