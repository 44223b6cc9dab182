"""Pytest fixtures and an in-process fake KMS service."""

import base64
import hashlib
import hmac
import json
import os
import re
import time

import base58
import httpx
import pytest
import pytest_asyncio
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
from cryptography.hazmat.primitives.keywrap import InvalidUnwrap, aes_key_unwrap, aes_key_wrap

from webkms.auth import (
    CapabilityInvocationAuthenticator,
    HttpSignatureAuthenticator,
    body_digest,
    capability_verify_data,
    signing_string,
)
from webkms.client import KmsService
from webkms.encoding import from_base64url, to_base64url
from webkms.master_key import AccountMasterKey
from webkms.seed_cache import SeedCache
from webkms.signer import ED25519_PUB_MULTICODEC, KEY_ID_PREFIX
from webkms.storage import MemoryStore

BASE_URL = "https://kms.example.com/kms"
OPERATIONS_URL = f"{BASE_URL}/operations"
KMS_PLUGIN = "test-plugin"

_SIGNATURE_PARAM = re.compile(r'(\w+)=(?:"([^"]*)"|(\d+))')
_ZCAP_ID = re.compile(r'id="([^"]*)"')


def _public_key_for(signer_id: str) -> Ed25519PublicKey:
    """Recover the Ed25519 public key from a master signer id."""
    if not signer_id.startswith(KEY_ID_PREFIX + "z"):
        raise ValueError("unknown verification method")
    decoded = base58.b58decode(signer_id[len(KEY_ID_PREFIX) + 1:])
    if not decoded.startswith(ED25519_PUB_MULTICODEC):
        raise ValueError("not an ed25519 key")
    return Ed25519PublicKey.from_public_bytes(decoded[len(ED25519_PUB_MULTICODEC):])


def _target_of(operation: dict) -> str:
    target = operation.get("invocationTarget")
    if isinstance(target, dict):
        return target.get("id")
    return target


class FakeKms:
    """
    Minimal KMS service.

    Verifies both request authentication schemes, enforces that only a key's
    controller may invoke it, and really performs AES key wrap and
    HMAC-SHA256 so client round-trips are meaningful.
    """

    def __init__(self):
        self.keys: dict[str, dict] = {}
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method != "POST":
            return self._error(405, "Method not allowed")

        try:
            body = json.loads(request.content)
        except ValueError:
            return self._error(400, "Body is not JSON")

        if "authorization" in request.headers:
            signer_id, target, error = self._check_http_signature(request, body)
        else:
            signer_id, target, error = self._check_capability_invocation(request, body)
        if error:
            return self._error(401, error)

        if target != _target_of(body):
            return self._error(401, "Signature does not bind the invocation target")

        return self._run(body, signer_id)

    def _check_capability_invocation(self, request, body):
        proof = body.get("proof")
        if not isinstance(proof, dict):
            return None, None, "Missing proof"
        if proof.get("capability") != str(request.url):
            return None, None, "Capability does not match request URL"

        document = {k: v for k, v in body.items() if k != "proof"}
        proof_options = {k: v for k, v in proof.items() if k != "jws"}
        encoded_header, _, encoded_signature = proof.get("jws", "").partition("..")
        try:
            public_key = _public_key_for(proof["verificationMethod"])
            public_key.verify(
                from_base64url(encoded_signature),
                encoded_header.encode("ascii") + b"." + capability_verify_data(document, proof_options),
            )
        except (KeyError, ValueError, InvalidSignature):
            return None, None, "Invalid proof"
        return proof["verificationMethod"], proof["capability"], None

    def _check_http_signature(self, request, body):
        authorization = request.headers["authorization"]
        if not authorization.startswith("Signature "):
            return None, None, "Unsupported authorization scheme"
        params = {
            name: quoted if quoted else number
            for name, quoted, number in _SIGNATURE_PARAM.findall(authorization)
        }
        if int(params.get("expires", 0)) < time.time():
            return None, None, "Signature expired"
        if request.headers.get("digest") != body_digest(request.content):
            return None, None, "Digest mismatch"

        values = {
            "(request-target)": f"post {request.url.raw_path.decode('ascii')}",
            "(created)": params.get("created", ""),
            "(expires)": params.get("expires", ""),
        }
        header_names = params.get("headers", "").split(" ")
        try:
            for name in header_names:
                if not name.startswith("("):
                    values[name] = request.headers[name]
            public_key = _public_key_for(params["keyId"])
            public_key.verify(
                base64.b64decode(params["signature"]),
                signing_string(values, header_names).encode("utf-8"),
            )
        except (KeyError, ValueError, InvalidSignature):
            return None, None, "Invalid signature"

        if "capability-invocation" not in header_names:
            return None, None, "Capability invocation is not signed"
        match = _ZCAP_ID.search(values["capability-invocation"])
        return params["keyId"], match.group(1) if match else None, None

    def _run(self, operation: dict, signer_id: str) -> httpx.Response:
        op_type = operation.get("type")
        if op_type == "GenerateKeyOperation":
            target = operation["invocationTarget"]
            if target.get("controller") != signer_id:
                return self._error(403, "Controller must be the invoker")
            if target["id"] in self.keys:
                return self._error(409, "Duplicate key")
            self.keys[target["id"]] = {
                "type": target["type"],
                "controller": target["controller"],
                "material": os.urandom(32),
            }
            return httpx.Response(200, json={"id": target["id"]})

        key = self.keys.get(operation.get("invocationTarget"))
        if key is None:
            return self._error(404, "Key not found")
        if key["controller"] != signer_id:
            return self._error(403, "Not the key controller")

        try:
            if op_type == "WrapKeyOperation":
                wrapped = aes_key_wrap(key["material"], from_base64url(operation["unwrappedKey"]))
                return httpx.Response(200, json={"wrappedKey": to_base64url(wrapped)})
            if op_type == "UnwrapKeyOperation":
                unwrapped = aes_key_unwrap(key["material"], from_base64url(operation["wrappedKey"]))
                return httpx.Response(200, json={"unwrappedKey": to_base64url(unwrapped)})
            if op_type == "SignOperation":
                mac = hmac.new(key["material"], from_base64url(operation["verifyData"]), hashlib.sha256)
                return httpx.Response(200, json={"signatureValue": to_base64url(mac.digest())})
            if op_type == "VerifyOperation":
                mac = hmac.new(key["material"], from_base64url(operation["verifyData"]), hashlib.sha256)
                expected = to_base64url(mac.digest())
                verified = hmac.compare_digest(expected, operation["signatureValue"])
                return httpx.Response(200, json={"verified": verified})
        except (KeyError, ValueError, InvalidUnwrap):
            return self._error(400, "Invalid operation")
        return self._error(400, f"Unknown operation {op_type}")

    @staticmethod
    def _error(status: int, message: str) -> httpx.Response:
        return httpx.Response(status, json={"message": message})


@pytest.fixture
def fake_kms():
    """A fresh fake KMS service."""
    return FakeKms()


@pytest.fixture(params=["capability-invocation", "http-signature"])
def kms_service(request, fake_kms):
    """KmsService talking to the fake KMS, once per authentication strategy."""
    if request.param == "capability-invocation":
        authenticator = CapabilityInvocationAuthenticator()
    else:
        authenticator = HttpSignatureAuthenticator(operations_url=OPERATIONS_URL)
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake_kms.handler))
    return KmsService(base_url=BASE_URL, authenticator=authenticator, http_client=http_client)


@pytest.fixture
def seed_cache():
    """Seed cache backed by memory."""
    return SeedCache(MemoryStore())


@pytest_asyncio.fixture
async def master_key(kms_service, seed_cache):
    """Account master key for a test account."""
    return await AccountMasterKey.from_secret(
        secret="s3cr3t",
        account_id="acct-1",
        kms_service=kms_service,
        kms_plugin=KMS_PLUGIN,
        seed_cache=seed_cache,
        namespace="ns",
    )
