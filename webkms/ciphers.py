"""
Content encryption profiles.

Two interchangeable AEAD profiles protect envelope content:

- ``recommended``: ChaCha20-Poly1305 (``enc`` = ``C20P``)
- ``fips``: AES-256-GCM (``enc`` = ``A256GCM``)

Both take a 256-bit content encryption key (CEK), draw a fresh 96-bit nonce
per call and produce a 128-bit tag. The AEAD output is ciphertext followed by
the tag; the profiles split it so the envelope can carry them separately.
"""

import os
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from webkms.errors import DecryptionError, InvalidArgument, UnsupportedVersion

VERSIONS = ("recommended", "fips")


@dataclass(frozen=True)
class EncryptResult:
    """Output of a profile encryption."""
    enc: str
    ciphertext: bytes
    iv: bytes
    tag: bytes


class CipherProfile:
    """
    Base AEAD profile.

    Subclasses set `ENC` and `AEAD`; everything else is shared.

    Example:
        profile = get_profile("fips")
        cek = profile.generate_key()
        result = profile.encrypt(b"secret", b"aad", cek)
        plaintext = profile.decrypt(
            result.enc, result.ciphertext, result.iv, result.tag, b"aad", cek
        )
    """

    ENC: str = ""
    AEAD: type = None
    KEY_SIZE = 32    # 256 bits
    NONCE_SIZE = 12  # 96 bits
    TAG_SIZE = 16    # 128 bits

    def generate_key(self) -> bytes:
        """Generate a random 256-bit content encryption key."""
        return os.urandom(self.KEY_SIZE)

    def encrypt(self, data: bytes, additional_data: bytes | None, key: bytes) -> EncryptResult:
        """
        Encrypt `data` under `key`.

        Args:
            data: Plaintext bytes
            additional_data: Authenticated but unencrypted data
            key: 32-byte content encryption key

        Returns:
            EncryptResult with the profile's `enc`, ciphertext, iv and tag
        """
        if not isinstance(data, bytes):
            raise InvalidArgument('"data" must be bytes.')
        aead = self._aead(key)
        iv = os.urandom(self.NONCE_SIZE)
        encrypted = aead.encrypt(iv, data, additional_data)
        return EncryptResult(
            enc=self.ENC,
            ciphertext=encrypted[:-self.TAG_SIZE],
            iv=iv,
            tag=encrypted[-self.TAG_SIZE:],
        )

    def decrypt(
        self,
        enc: str,
        ciphertext: bytes,
        iv: bytes,
        tag: bytes,
        additional_data: bytes | None,
        key: bytes,
    ) -> bytes:
        """
        Decrypt and authenticate.

        Raises:
            InvalidArgument: If `enc` does not belong to this profile
            DecryptionError: If authentication fails
        """
        if enc != self.ENC:
            raise InvalidArgument(f'"enc" must be "{self.ENC}", got "{enc}".')
        if len(iv) != self.NONCE_SIZE:
            raise DecryptionError(f"iv must be {self.NONCE_SIZE} bytes, got {len(iv)}")
        if len(tag) != self.TAG_SIZE:
            raise DecryptionError(f"tag must be {self.TAG_SIZE} bytes, got {len(tag)}")
        aead = self._aead(key)
        try:
            return aead.decrypt(iv, ciphertext + tag, additional_data)
        except InvalidTag as e:
            raise DecryptionError("Decryption failed: authentication tag mismatch") from e

    def _aead(self, key: bytes):
        if not isinstance(key, bytes) or len(key) != self.KEY_SIZE:
            raise InvalidArgument(f'"key" must be {self.KEY_SIZE} bytes.')
        return self.AEAD(key)


class RecommendedProfile(CipherProfile):
    """ChaCha20-Poly1305. Fast in software, the default choice."""

    ENC = "C20P"
    AEAD = ChaCha20Poly1305


class FipsProfile(CipherProfile):
    """AES-256-GCM, for deployments that require FIPS-approved ciphers."""

    ENC = "A256GCM"
    AEAD = AESGCM


_PROFILES = {
    "recommended": RecommendedProfile(),
    "fips": FipsProfile(),
}

_PROFILES_BY_ENC = {profile.ENC: profile for profile in _PROFILES.values()}

SUPPORTED_ENC = tuple(_PROFILES_BY_ENC)


def assert_version(version: str) -> None:
    """
    Check that `version` names a known profile.

    Raises:
        InvalidArgument: If `version` is not a string
        UnsupportedVersion: If `version` is not recognized
    """
    if not isinstance(version, str):
        raise InvalidArgument('"version" must be a string.')
    if version not in VERSIONS:
        raise UnsupportedVersion(version)


def get_profile(version: str) -> CipherProfile:
    """Return the profile for `version` (``recommended`` or ``fips``)."""
    assert_version(version)
    return _PROFILES[version]


def get_profile_for_enc(enc: str) -> CipherProfile | None:
    """Return the profile publishing `enc`, or None."""
    return _PROFILES_BY_ENC.get(enc)
