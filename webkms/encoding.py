"""
Encoding utilities.

Base64url (RFC 4648 section 5, without padding) is used for every binary
value that crosses the wire or lands in an envelope. Objects are serialized
as canonical JSON so the same object always produces the same bytes.
"""

import base64
import binascii
import json
from typing import Any

from webkms.errors import InvalidArgument


def to_base64url(data: bytes) -> str:
    """Encode bytes to an unpadded URL-safe base64 string."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def from_base64url(data: str) -> bytes:
    """
    Decode an unpadded (or padded) URL-safe base64 string.

    Raises:
        ValueError: If the input is not valid base64url
    """
    try:
        raw = data.encode("ascii")
    except UnicodeEncodeError as e:
        raise ValueError("Invalid base64url string") from e
    raw = raw.rstrip(b"=")
    if b"+" in raw or b"/" in raw:
        raise ValueError("Invalid base64url string")
    try:
        return base64.b64decode(
            raw + b"=" * (-len(raw) % 4),
            altchars=b"-_",
            validate=True,
        )
    except binascii.Error as e:
        raise ValueError("Invalid base64url string") from e


def to_bytes(data: str | bytes, name: str) -> bytes:
    """
    Normalize text or a byte buffer to bytes.

    Text is UTF-8 encoded. Anything else is rejected.

    Raises:
        InvalidArgument: If `data` is neither text nor bytes
    """
    if isinstance(data, str):
        return data.encode("utf-8")
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    raise InvalidArgument(f'"{name}" must be bytes or a string.')


def canonical_json(obj: Any) -> bytes:
    """
    Serialize `obj` to canonical JSON bytes (sorted keys, compact).

    Raises:
        ValueError: If `obj` contains NaN or infinite floats
        TypeError: If `obj` is not JSON-serializable
    """
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    ).encode("utf-8")
