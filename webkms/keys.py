"""
Remote key handles.

A handle is a capability to operate one key held by the KMS service. It
stores no key material; every call is a single delegation to KmsService
with the key id and signer bound.

    KeyHandle = Kek | Hmac
"""

from enum import Enum
from typing import Union

from webkms.auth import Signer
from webkms.client import KmsService
from webkms.errors import UnknownKeyType


class KeyType(str, Enum):
    """Key types that can be generated."""

    HMAC = "hmac"
    KEK = "kek"

    @property
    def remote_type(self) -> str:
        """Key type name understood by the KMS service."""
        return _REMOTE_TYPES[self]


_REMOTE_TYPES = {
    KeyType.HMAC: "Sha256HmacKey2019",
    KeyType.KEK: "AesKeyWrappingKey2019",
}


class Kek:
    """
    Key encryption key (KEK) used to wrap and unwrap other keys.

    Example:
        kek = Kek(id=kek_id, kms_service=kms, signer=signer)
        wrapped = await kek.wrap(cek)
        assert await kek.unwrap(wrapped) == cek
    """

    # TODO: support algorithms other than AES-256 key wrap
    algorithm = "A256KW"

    def __init__(
        self,
        id: str,
        kms_service: KmsService,
        signer: Signer,
        kms_plugin: str | None = None,
    ):
        self.id = id
        self.kms_service = kms_service
        self.signer = signer
        self.kms_plugin = kms_plugin

    async def wrap(self, key: bytes) -> str:
        """Wrap `key`, returning the base64url-encoded wrapped key."""
        return await self.kms_service.wrap_key(key=key, kek_id=self.id, signer=self.signer)

    async def unwrap(self, wrapped_key: str) -> bytes:
        """Unwrap a base64url-encoded wrapped key."""
        return await self.kms_service.unwrap_key(wrapped_key=wrapped_key, kek_id=self.id, signer=self.signer)

    def __repr__(self) -> str:
        return f"Kek(id={self.id!r})"


class Hmac:
    """
    HMAC key held by the KMS service.

    The data is sent to the server. If it is secret, hash it first, keeping
    in mind that pre-hashing may hurt interoperability.
    """

    algorithm = "HS256"

    def __init__(self, id: str, kms_service: KmsService, signer: Signer):
        self.id = id
        self.kms_service = kms_service
        self.signer = signer

    async def sign(self, data: bytes) -> str:
        """Sign `data`, returning the base64url-encoded signature."""
        return await self.kms_service.sign(key_id=self.id, data=data, signer=self.signer)

    async def verify(self, data: bytes, signature: str) -> bool:
        """Verify a base64url-encoded signature over `data`."""
        return await self.kms_service.verify(
            key_id=self.id, data=data, signature=signature, signer=self.signer
        )

    def __repr__(self) -> str:
        return f"Hmac(id={self.id!r})"


KeyHandle = Union[Kek, Hmac]


def parse_key_type(type: str | KeyType) -> KeyType:
    """
    Resolve a key type name.

    Raises:
        UnknownKeyType: If `type` is not ``hmac`` or ``kek``
    """
    try:
        return KeyType(type)
    except ValueError:
        raise UnknownKeyType(str(type)) from None


def create_key_handle(
    type: str | KeyType,
    id: str,
    kms_service: KmsService,
    signer: Signer,
    kms_plugin: str | None = None,
) -> KeyHandle:
    """Return the handle variant matching `type` for key `id`."""
    key_type = parse_key_type(type)
    if key_type is KeyType.KEK:
        return Kek(id=id, kms_service=kms_service, signer=signer, kms_plugin=kms_plugin)
    return Hmac(id=id, kms_service=kms_service, signer=signer)
