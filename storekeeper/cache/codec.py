"""
Storekeeper — Value Codecs

Pluggable serialize/deserialize pairs. Stores treat the codec as an injected
dependency and persist its output verbatim.
"""

import json
import pickle
from abc import ABC, abstractmethod
from typing import Any

from ..errors import InvalidConfigurationError


class Codec(ABC):
    """Abstract value codec."""

    name: str = "codec"

    @abstractmethod
    def serialize(self, value: Any) -> bytes:
        """Serialize a value to bytes."""
        pass

    @abstractmethod
    def deserialize(self, data: bytes) -> Any:
        """Deserialize bytes back into a value."""
        pass


class PickleCodec(Codec):
    """Pickle-based codec. Handles arbitrary Python values."""

    name = "pickle"

    def __init__(self, protocol: int = pickle.HIGHEST_PROTOCOL):
        self.protocol = protocol

    def serialize(self, value: Any) -> bytes:
        return pickle.dumps(value, protocol=self.protocol)

    def deserialize(self, data: bytes) -> Any:
        return pickle.loads(data)


class JsonCodec(Codec):
    """
    Compact UTF-8 JSON codec.

    Integers and floats encode to their plain decimal text, which lets
    key-value servers apply native numeric increments to stored values.
    """

    name = "json"

    def serialize(self, value: Any) -> bytes:
        return json.dumps(value, ensure_ascii=False, separators=(",", ":")).encode("utf-8")

    def deserialize(self, data: bytes) -> Any:
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        return json.loads(data)


_CODECS: dict[str, type[Codec]] = {
    PickleCodec.name: PickleCodec,
    JsonCodec.name: JsonCodec,
}


def get_codec(name: str) -> Codec:
    """
    Build a codec by name.

    Raises:
        InvalidConfigurationError: If the codec name is unknown
    """
    try:
        return _CODECS[getattr(name, "value", name)]()
    except KeyError:
        raise InvalidConfigurationError(
            f"Unknown codec: {name}",
            details={"codec": getattr(name, "value", name), "supported": sorted(_CODECS)},
        ) from None
