"""
JWE envelope codec.

Envelopes use the general JSON serialization with a single recipient:

    {
        "protected": b64u({"enc": ...}),
        "recipients": [{
            "header": {"alg": "A256KW", "enc": ..., "kid": <KEK id>},
            "encrypted_key": b64u(wrapped CEK)
        }],
        "iv": b64u(...),
        "ciphertext": b64u(...),
        "tag": b64u(...)
    }

The ASCII bytes of ``protected`` are the AEAD additional data. Parsing
checks fields in a fixed order (protected, iv, ciphertext, tag, recipients,
recipient header) and reports the first failure.
"""

import json
from dataclasses import dataclass
from typing import Any

from webkms.ciphers import SUPPORTED_ENC
from webkms.encoding import canonical_json, from_base64url, to_base64url
from webkms.errors import InvalidArgument, InvalidEnvelope

KEY_WRAP_ALG = "A256KW"


@dataclass(frozen=True)
class ParsedEnvelope:
    """Validated, decoded envelope contents for one recipient."""
    enc: str
    kid: str
    encrypted_key: str
    iv: bytes
    ciphertext: bytes
    tag: bytes
    additional_data: bytes


def encode_protected_header(enc: str) -> str:
    """Return the base64url protected header for `enc`."""
    return to_base64url(canonical_json({"enc": enc}))


def additional_data_for(protected: str) -> bytes:
    """AEAD additional data bound to a protected header."""
    return protected.encode("ascii")


def build_envelope(
    protected: str,
    enc: str,
    kid: str,
    encrypted_key: str,
    iv: bytes,
    ciphertext: bytes,
    tag: bytes,
) -> dict[str, Any]:
    """Assemble a single-recipient JWE."""
    return {
        "protected": protected,
        "recipients": [
            {
                "header": {"alg": KEY_WRAP_ALG, "enc": enc, "kid": kid},
                "encrypted_key": encrypted_key,
            }
        ],
        "iv": to_base64url(iv),
        "ciphertext": to_base64url(ciphertext),
        "tag": to_base64url(tag),
    }


def _find_recipient(recipients: list[Any], kid: str) -> dict[str, Any] | None:
    for recipient in recipients:
        if not isinstance(recipient, dict):
            continue
        header = recipient.get("header")
        if isinstance(header, dict) and header.get("kid") == kid:
            return recipient
    return None


def _decode_field(jwe: dict[str, Any], name: str) -> bytes:
    try:
        return from_base64url(jwe[name])
    except ValueError:
        raise InvalidEnvelope(name, f'"{name}" is not valid base64url.') from None


def parse_envelope(jwe: dict[str, Any], kid: str) -> ParsedEnvelope:
    """
    Validate `jwe` and extract the entry for recipient `kid`.

    Raises:
        InvalidArgument: If `jwe` is not an object
        InvalidEnvelope: Naming the first invalid or missing field
    """
    if not isinstance(jwe, dict):
        raise InvalidArgument('"jwe" must be an object.')

    for name in ("protected", "iv", "ciphertext", "tag"):
        if not isinstance(jwe.get(name), str):
            raise InvalidEnvelope(name)

    recipients = jwe.get("recipients")
    if not isinstance(recipients, list) or not recipients:
        raise InvalidEnvelope("recipients", '"recipients" must be a non-empty array.')

    recipient = _find_recipient(recipients, kid)
    if recipient is None:
        raise InvalidEnvelope("header", f'No recipient found for key "{kid}".')
    header = recipient["header"]
    if header.get("alg") != KEY_WRAP_ALG:
        raise InvalidEnvelope("header", f'Unsupported recipient "alg"; expected "{KEY_WRAP_ALG}".')
    enc = header.get("enc")
    if enc not in SUPPORTED_ENC:
        raise InvalidEnvelope("header", f'Unsupported recipient "enc": {enc!r}.')

    encrypted_key = recipient.get("encrypted_key")
    if not isinstance(encrypted_key, str):
        raise InvalidEnvelope("encrypted_key")

    protected = jwe["protected"]
    try:
        protected_header = json.loads(from_base64url(protected))
    except ValueError:
        raise InvalidEnvelope("protected", '"protected" is not a base64url-encoded JSON object.') from None
    if not isinstance(protected_header, dict) or protected_header.get("enc") != enc:
        raise InvalidEnvelope("protected", '"protected" header "enc" does not match recipient.')

    return ParsedEnvelope(
        enc=enc,
        kid=kid,
        encrypted_key=encrypted_key,
        iv=_decode_field(jwe, "iv"),
        ciphertext=_decode_field(jwe, "ciphertext"),
        tag=_decode_field(jwe, "tag"),
        additional_data=additional_data_for(protected),
    )
