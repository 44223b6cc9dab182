"""
Master signing identity.

An Ed25519 keypair is derived deterministically from a 32-byte seed, so the
same seed always restores the same identity. Only the seed is ever cached;
the keypair lives as long as the AccountMasterKey holding it.
"""

import base58
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from webkms.errors import InvalidArgument

SEED_SIZE = 32

# multicodec varint prefix for an ed25519 public key
ED25519_PUB_MULTICODEC = b"\xed\x01"

KEY_ID_PREFIX = "urn:webkms:key:"


class MasterSigner:
    """
    Ed25519 signer restored from a seed.

    Attributes:
        id: Verification key reference, ``urn:webkms:key:<fingerprint>``
        algorithm: JOSE algorithm name of the signatures produced

    Example:
        signer = MasterSigner.from_seed(seed)
        signature = signer.sign(b"data")
    """

    algorithm = "EdDSA"

    def __init__(self, private_key: Ed25519PrivateKey):
        self._private_key = private_key
        self.public_key_bytes = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        self.id = KEY_ID_PREFIX + self.fingerprint()

    @classmethod
    def from_seed(cls, seed: bytes) -> "MasterSigner":
        """
        Derive the signer for `seed`.

        Raises:
            InvalidArgument: If `seed` is not 32 bytes
        """
        if not isinstance(seed, bytes) or len(seed) != SEED_SIZE:
            raise InvalidArgument(f'"seed" must be {SEED_SIZE} bytes.')
        return cls(Ed25519PrivateKey.from_private_bytes(seed))

    def fingerprint(self) -> str:
        """Multibase (base58-btc) multicodec fingerprint of the public key."""
        encoded = base58.b58encode(ED25519_PUB_MULTICODEC + self.public_key_bytes)
        return "z" + encoded.decode("ascii")

    def sign(self, data: bytes) -> bytes:
        """Sign `data`, returning the 64-byte Ed25519 signature."""
        return self._private_key.sign(data)

    def verify(self, signature: bytes, data: bytes) -> bool:
        """Verify a signature produced by this signer."""
        try:
            self._private_key.public_key().verify(signature, data)
            return True
        except InvalidSignature:
            return False

    def derive_key(self, info: bytes, length: int = 32) -> bytes:
        """
        Derive a symmetric key bound to this identity.

        Uses HKDF-SHA256 over the private seed with `info` for domain
        separation. The result never leaves the process.
        """
        seed = self._private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        hkdf = HKDF(
            algorithm=hashes.SHA256(),
            length=length,
            salt=None,
            info=info,
        )
        return hkdf.derive(seed)
