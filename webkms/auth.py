"""
Request authentication for KMS operations.

Every operation sent to the KMS service is authorized by the account's
signer. Two strategies exist and are selected by configuration:

capability-invocation
    The operation object is signed with a detached proof asserting the
    invoked key URL as the capability. The signed object is the request
    body and it is POSTed to the key's own URL.

http-signature
    The operation is sent as plain JSON to a shared operations endpoint.
    A signing string over the request target, creation and expiration
    times, host, invoked capability, content type and body digest is
    signed and placed in the Authorization header.

Both bind the invoked key, so a captured request cannot be replayed
against another key.
"""

import base64
import hashlib
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Protocol, runtime_checkable
from urllib.parse import urlsplit

from webkms.config import (
    AUTH_CAPABILITY_INVOCATION,
    AUTH_HTTP_SIGNATURE,
    Settings,
)
from webkms.encoding import canonical_json, to_base64url
from webkms.errors import InvalidArgument

logger = logging.getLogger(__name__)

SECURITY_CONTEXT_V2_URL = "https://w3id.org/security/v2"
PROOF_TYPE = "Ed25519Signature2018"
PROOF_PURPOSE = "capabilityInvocation"

# Detached, unencoded-payload JWS header (RFC 7797)
JWS_HEADER = {"alg": "EdDSA", "b64": False, "crit": ["b64"]}

SIGNED_HEADERS = [
    "(request-target)",
    "(created)",
    "(expires)",
    "host",
    "capability-invocation",
    "content-type",
    "digest",
]


@runtime_checkable
class Signer(Protocol):
    """Anything with an `id` and a `sign(bytes) -> bytes` method."""

    id: str

    def sign(self, data: bytes) -> bytes:
        ...


@dataclass
class SignedRequest:
    """A request ready to be transmitted."""
    url: str
    body: bytes
    headers: dict[str, str] = field(default_factory=dict)


class Authenticator(ABC):
    """Turns an operation into an authorized, transmittable request."""

    name: str = ""

    @abstractmethod
    def authorize(self, operation: dict[str, Any], target: str, signer: Signer) -> SignedRequest:
        """
        Authorize `operation` as an invocation of `target`.

        Args:
            operation: Operation object (``type``, ``invocationTarget``, ...)
            target: URL of the invoked key
            signer: Signer for the account's master identity

        Returns:
            SignedRequest
        """


def _proof_created(now: float) -> str:
    return datetime.fromtimestamp(int(now), tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def capability_verify_data(document: dict[str, Any], proof_options: dict[str, Any]) -> bytes:
    """Bytes covered by a capability invocation proof."""
    return (
        hashlib.sha256(canonical_json(proof_options)).digest()
        + hashlib.sha256(canonical_json(document)).digest()
    )


class CapabilityInvocationAuthenticator(Authenticator):
    """Signs the operation object itself."""

    name = AUTH_CAPABILITY_INVOCATION

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock

    def authorize(self, operation: dict[str, Any], target: str, signer: Signer) -> SignedRequest:
        document = {"@context": SECURITY_CONTEXT_V2_URL, **operation}
        proof = {
            "type": PROOF_TYPE,
            "created": _proof_created(self._clock()),
            "verificationMethod": signer.id,
            "proofPurpose": PROOF_PURPOSE,
            "capability": target,
        }

        encoded_header = to_base64url(canonical_json(JWS_HEADER))
        signing_input = encoded_header.encode("ascii") + b"." + capability_verify_data(document, proof)
        signature = signer.sign(signing_input)
        proof["jws"] = f"{encoded_header}..{to_base64url(signature)}"

        body = canonical_json({**document, "proof": proof})
        return SignedRequest(
            url=target,
            body=body,
            headers={"Content-Type": "application/json"},
        )


def signing_string(values: dict[str, str], headers: list[str] = SIGNED_HEADERS) -> str:
    """Build the HTTP signature signing string for `headers`."""
    return "\n".join(f"{name}: {values[name]}" for name in headers)


def body_digest(body: bytes) -> str:
    """Digest header value for `body`."""
    return "SHA-256=" + base64.b64encode(hashlib.sha256(body).digest()).decode("ascii")


class HttpSignatureAuthenticator(Authenticator):
    """Signs the HTTP request and posts to a shared operations endpoint."""

    name = AUTH_HTTP_SIGNATURE

    def __init__(
        self,
        operations_url: str,
        expires_in: int = 600,
        clock: Callable[[], float] = time.time,
    ):
        if expires_in < 1:
            raise InvalidArgument('"expires_in" must be a positive number of seconds.')
        self.operations_url = operations_url
        self.expires_in = expires_in
        self._clock = clock

    def authorize(self, operation: dict[str, Any], target: str, signer: Signer) -> SignedRequest:
        body = canonical_json(operation)
        parts = urlsplit(self.operations_url)
        request_target = parts.path or "/"
        if parts.query:
            request_target += f"?{parts.query}"

        created = int(self._clock())
        expires = created + self.expires_in
        values = {
            "(request-target)": f"post {request_target}",
            "(created)": str(created),
            "(expires)": str(expires),
            "host": parts.netloc,
            "capability-invocation": f'zcap id="{target}",action="{operation["type"]}"',
            "content-type": "application/json",
            "digest": body_digest(body),
        }
        signature = signer.sign(signing_string(values).encode("utf-8"))

        authorization = (
            f'Signature keyId="{signer.id}",algorithm="hs2019",'
            f'created={created},expires={expires},'
            f'headers="{" ".join(SIGNED_HEADERS)}",'
            f'signature="{base64.b64encode(signature).decode("ascii")}"'
        )
        return SignedRequest(
            url=self.operations_url,
            body=body,
            headers={
                "Host": values["host"],
                "Capability-Invocation": values["capability-invocation"],
                "Content-Type": values["content-type"],
                "Digest": values["digest"],
                "Authorization": authorization,
            },
        )


def create_authenticator(settings: Settings) -> Authenticator:
    """Return the authenticator selected by `settings.auth_strategy`."""
    if settings.auth_strategy == AUTH_CAPABILITY_INVOCATION:
        return CapabilityInvocationAuthenticator()
    if settings.auth_strategy == AUTH_HTTP_SIGNATURE:
        return HttpSignatureAuthenticator(
            operations_url=settings.operations_url,
            expires_in=settings.signature_expires_in,
        )
    raise InvalidArgument(f'Unknown auth strategy "{settings.auth_strategy}".')
