"""Message codec: JSON serialization wrapped in an optional named byte encoding."""

import base64
import binascii
import json
from typing import Any, Protocol, Union

from trigger_pubsub.errors import ConfigurationError, MessageDecodeError

RawPayload = Union[bytes, bytearray, memoryview, str]

UTF8 = "utf8"
BASE64 = "base64"
HEX = "hex"

_ALIASES = {
    "utf8": UTF8,
    "utf-8": UTF8,
    "base64": BASE64,
    "hex": HEX,
}


class MessageCodec(Protocol):
    """Converts logical messages to transport payloads and back."""

    def encode(self, message: Any) -> bytes: ...

    def decode(self, raw: RawPayload) -> Any: ...


def normalize_encoding(name: str | None) -> str:
    """Return the canonical encoding name, or raise ConfigurationError."""
    if name is None:
        return UTF8
    key = str(name).strip().lower()
    if key not in _ALIASES:
        raise ConfigurationError(
            f"unknown message encoding {name!r} (expected one of {sorted(set(_ALIASES.values()))})"
        )
    return _ALIASES[key]


class JsonCodec:
    """
    JSON text, UTF-8 encoded, then wrapped with the named byte encoding.

    decode(encode(m)) == m for any JSON-representable m. Inbound payloads that
    are not JSON decode to their text, so plain-text producers on the same
    topic are still readable.
    """

    def __init__(self, encoding: str | None = UTF8) -> None:
        self._encoding = normalize_encoding(encoding)

    @property
    def encoding(self) -> str:
        return self._encoding

    def encode(self, message: Any) -> bytes:
        data = json.dumps(message).encode("utf-8")
        if self._encoding == BASE64:
            return base64.b64encode(data)
        if self._encoding == HEX:
            return binascii.hexlify(data)
        return data

    def decode(self, raw: RawPayload) -> Any:
        if isinstance(raw, str):
            raw = raw.encode("utf-8")
        data = bytes(raw)
        try:
            if self._encoding == BASE64:
                data = base64.b64decode(data, validate=True)
            elif self._encoding == HEX:
                data = binascii.unhexlify(data)
            text = data.decode("utf-8")
        except (binascii.Error, ValueError) as e:
            raise MessageDecodeError(f"payload is not valid {self._encoding}: {e}") from e
        try:
            return json.loads(text)
        except ValueError:
            return text

    def __repr__(self) -> str:
        return f"JsonCodec(encoding={self._encoding!r})"


def get_codec(name: str | None = None) -> JsonCodec:
    """Return a JsonCodec for a named byte encoding (utf8, base64, hex)."""
    return JsonCodec(name)
