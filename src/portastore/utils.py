"""Shared helpers for the facades and atomic bridges.

Keeps key validation and the codec error boundary in one place so every
facade reports the same failure kinds.
"""

import uuid
from collections.abc import Mapping
from typing import Any, Optional

from .codec import Codec
from .errors import DecodeError, EncodeError, InvalidKeyError, TTLNotSupportedError
from .interfaces import TTL, KeyValueProvider, ttl_seconds
from .schema import Spec


def validate_key(key: str) -> None:
    """Reject empty or non-string keys."""
    if not isinstance(key, str) or not key:
        raise InvalidKeyError("key must be a non-empty string")


def as_uuid(id: Any) -> uuid.UUID:
    """Accept a UUID or its string form."""
    if isinstance(id, uuid.UUID):
        return id
    try:
        return uuid.UUID(str(id))
    except (TypeError, ValueError) as e:
        raise InvalidKeyError(f"invalid vector id {id!r}") from e


def decode_record(codec: Codec, data: bytes, spec: Spec) -> Any:
    """Decode bytes into the record type of spec.

    Any codec failure surfaces as DecodeError, chained to its cause.
    """
    try:
        value = codec.decode(data, spec.record_type)
    except DecodeError:
        raise
    except Exception as e:
        raise DecodeError(f"{spec.qualified_name}: decode failed: {e}") from e
    if not isinstance(value, spec.record_type):
        raise DecodeError(
            f"{spec.qualified_name}: codec returned {type(value).__name__}"
        )
    return value


def encode_record(codec: Codec, value: Any, spec: Spec) -> bytes:
    """Encode a record of spec's type; failures surface as EncodeError."""
    if not isinstance(value, spec.record_type):
        raise EncodeError(
            f"expected {spec.type_name}, got {type(value).__name__}"
        )
    try:
        return codec.encode(value)
    except EncodeError:
        raise
    except Exception as e:
        raise EncodeError(f"{spec.qualified_name}: encode failed: {e}") from e


def check_ttl(provider: KeyValueProvider, ttl: Optional[TTL]) -> float:
    """Normalize ttl and fail fast when the provider cannot expire keys."""
    seconds = ttl_seconds(ttl)
    if seconds < 0:
        raise ValueError("ttl cannot be negative")
    if seconds > 0 and not provider.supports_ttl:
        raise TTLNotSupportedError(
            f"{type(provider).__name__} does not support TTL"
        )
    return seconds


def metadata_filter(codec: Codec, spec: Spec, value: Any) -> Optional[dict[str, Any]]:
    """Turn a search filter into the equality dict providers accept.

    A mapping is used as is. A record is encoded through the codec and
    its None-valued fields are dropped, so optional fields left unset do
    not constrain the search.
    """
    if value is None:
        return None
    if isinstance(value, Mapping):
        return dict(value)
    data = encode_record(codec, value, spec)
    decoded = codec.decode(data, dict)
    if not isinstance(decoded, dict):
        raise DecodeError(f"{spec.qualified_name}: filter did not encode to an object")
    return {k: v for k, v in decoded.items() if v is not None}


def row_to_record(spec: Spec, row: dict[str, Any]) -> Any:
    try:
        return spec.from_row(row)
    except DecodeError:
        raise
    except (TypeError, ValueError) as e:
        raise DecodeError(f"{spec.qualified_name}: cannot decode row: {e}") from e


def record_to_row(spec: Spec, key: Any, value: Any) -> dict[str, Any]:
    """Row for an upsert at key; the record's primary key must equal key."""
    if not isinstance(value, spec.record_type):
        raise EncodeError(f"expected {spec.type_name}, got {type(value).__name__}")
    pk = spec.require_primary_key()
    key = spec.coerce_key(key)
    try:
        row = spec.to_row(value)
    except (TypeError, ValueError) as e:
        raise EncodeError(f"{spec.qualified_name}: cannot encode row: {e}") from e
    if row[pk.column] != key:
        raise InvalidKeyError(
            f"key {key!r} does not match {pk.name}={row[pk.column]!r}"
        )
    return row
