"""Payload codecs.

A codec turns a record into bytes and back. The persisted byte layout is
entirely codec-defined; facades only rely on the two-method contract.
"""

import dataclasses
import json
from abc import ABC, abstractmethod
from typing import Any, Optional

from .errors import DecodeError, EncodeError
from .schema import inspect


class Codec(ABC):
    """Serialization contract for record payloads."""

    @abstractmethod
    def encode(self, value: Any) -> bytes:
        """Serialize value. Raises EncodeError."""
        pass

    @abstractmethod
    def decode(self, data: bytes, target: Optional[type] = None) -> Any:
        """Deserialize data into an instance of target.

        With no target (or ``dict``) the decoded structure is returned as is.
        Raises DecodeError.
        """
        pass

    @property
    @abstractmethod
    def content_type(self) -> str:
        """MIME type of the encoding."""
        pass


class JSONCodec(Codec):
    """JSON encoding driven by the record Spec.

    Dataclass records are written with their ``json`` field names; datetimes
    become ISO-8601 strings and bytes become base64.
    """

    def encode(self, value: Any) -> bytes:
        try:
            if dataclasses.is_dataclass(value) and not isinstance(value, type):
                value = inspect(type(value)).to_primitive(value)
            return json.dumps(value, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise EncodeError(f"json encode failed: {e}") from e

    def decode(self, data: bytes, target: Optional[type] = None) -> Any:
        try:
            obj = json.loads(data)
        except (TypeError, ValueError) as e:
            # UnicodeDecodeError is a ValueError
            raise DecodeError(f"json decode failed: {e}") from e
        if target is None or target is dict or target is Any:
            return obj
        if dataclasses.is_dataclass(target):
            return inspect(target).from_primitive(obj)
        if not isinstance(obj, target):
            raise DecodeError(f"expected {target.__name__}, got {type(obj).__name__}")
        return obj

    @property
    def content_type(self) -> str:
        return "application/json"
