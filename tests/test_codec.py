"""Tests for the JSON codec."""

import json
from datetime import datetime, timezone

import pytest

from portastore.codec import JSONCodec
from portastore.errors import DecodeError, EncodeError
from portastore.testing import Address, Profile, User


@pytest.fixture
def codec():
    return JSONCodec()


class TestJSONCodec:
    """Tests for JSONCodec."""

    def test_content_type(self, codec):
        assert codec.content_type == "application/json"

    def test_encodes_json_names(self, codec):
        data = json.loads(codec.encode(User(id="1", email="a@b.c")))
        assert data["mail"] == "a@b.c"
        assert "email" not in data

    def test_round_trip_nested_and_optional(self, codec):
        value = Profile(
            user_id="u1",
            avatar=b"\xff\x00",
            home=Address(street="1 Main"),
            work=None,
            login_count=None,
        )
        assert codec.decode(codec.encode(value), Profile) == value

    def test_bytes_and_times(self, codec):
        created = datetime(2024, 3, 4, 5, 6, 7, tzinfo=timezone.utc)
        data = json.loads(codec.encode(User(id="1", created=created)))
        assert data["created"] == created.isoformat()
        data = json.loads(codec.encode(Profile(user_id="1", avatar=b"hi")))
        assert data["avatar"] == "aGk="

    def test_decode_without_target_returns_structure(self, codec):
        assert codec.decode(b'{"a": 1}') == {"a": 1}
        assert codec.decode(b'{"a": 1}', dict) == {"a": 1}

    def test_decode_invalid_json(self, codec):
        with pytest.raises(DecodeError):
            codec.decode(b"\xff not json", User)

    def test_decode_type_mismatch(self, codec):
        with pytest.raises(DecodeError):
            codec.decode(b'{"id": 1}', User)

    def test_encode_unserializable(self, codec):
        with pytest.raises(EncodeError):
            codec.encode({"value": object()})
