"""
Account master key.

The master key is an Ed25519 signing identity derived deterministically
from an account secret. It authorizes every operation on the account's
remote keys and drives local envelope (JWE) encryption whose content key is
protected by a remote key encryption key (KEK).

Seed derivation:
    seed = SHA-256(utf8("<namespace>:<account_id>:") || secret)
"""

import hashlib
import hmac
import json
import logging
from typing import Any

from webkms.auth import Signer
from webkms.ciphers import assert_version, get_profile, get_profile_for_enc
from webkms.client import KmsService
from webkms.config import get_settings
from webkms.encoding import canonical_json, to_base64url, to_bytes
from webkms.errors import DecryptionError, DerivationNotImplemented, InvalidArgument
from webkms.jwe import (
    additional_data_for,
    build_envelope,
    encode_protected_header,
    parse_envelope,
)
from webkms.keys import Hmac, Kek, KeyHandle, create_key_handle, parse_key_type
from webkms.seed_cache import SeedCache
from webkms.signer import MasterSigner

logger = logging.getLogger(__name__)

BLIND_KEY_INFO = b"webkms-blind"


def derive_seed(secret: str | bytes, account_id: str, namespace: str | None = None) -> bytes:
    """
    Compute the 32-byte seed for `account_id` from `secret`.

    Raises:
        InvalidArgument: If `secret` is not text or bytes
    """
    secret = to_bytes(secret, "secret")
    if not isinstance(account_id, str):
        raise InvalidArgument('"account_id" must be a string.')
    if namespace is None:
        namespace = get_settings().seed_namespace
    prefix = f"{namespace}:{account_id}:".encode("utf-8")
    return hashlib.sha256(prefix + secret).digest()


class AccountMasterKey:
    """
    Master key for one account.

    Do not construct directly; use one of:

        AccountMasterKey.from_secret(...)
        AccountMasterKey.from_cache(...)
        AccountMasterKey.from_biometric()
        AccountMasterKey.from_fido()

    Example:
        cache = SeedCache(FileStore("~/.webkms"))
        amk = await AccountMasterKey.from_secret(
            secret=bcrypt_hash,
            account_id="acct-1",
            kms_service=kms,
            kms_plugin="ssm-v1",
            seed_cache=cache,
        )
        kek = await amk.generate_key("kek")
        jwe = await amk.encrypt(b"secret", kek_id=kek.id)
        assert await amk.decrypt(jwe, kek_id=kek.id) == b"secret"
    """

    def __init__(
        self,
        account_id: str,
        signer: Signer,
        kms_service: KmsService,
        kms_plugin: str,
    ):
        """
        Args:
            account_id: ID of the account this master key belongs to
            signer: Master signing identity
            kms_service: Client used for remote key operations
            kms_plugin: ID of the KMS plugin new keys are created in
        """
        self.account_id = account_id
        self.signer = signer
        self.kms_service = kms_service
        self.kms_plugin = kms_plugin

    @property
    def id(self) -> str:
        """Identifier of the master signing identity."""
        return self.signer.id

    # ------------------------------------------------------------------
    # Derivation
    # ------------------------------------------------------------------

    @classmethod
    async def from_secret(
        cls,
        secret: str | bytes,
        account_id: str,
        kms_service: KmsService,
        kms_plugin: str,
        cache: bool = True,
        seed_cache: SeedCache | None = None,
        namespace: str | None = None,
    ) -> "AccountMasterKey":
        """
        Derive the master key from a secret, such as a bcrypt hash.

        Args:
            secret: Secret as text or bytes
            account_id: ID of the account
            kms_service: Client used for remote key operations
            kms_plugin: ID of the KMS plugin to use
            cache: Store the seed in `seed_cache` so `from_cache` can restore
                it; a cached seed persists until `clear_cache` is called
            seed_cache: Seed cache to write to
            namespace: Seed prefix namespace (defaults to settings)

        Raises:
            InvalidArgument: If `secret` is not text or bytes
        """
        seed = derive_seed(secret, account_id, namespace)

        if cache and seed_cache is not None:
            if not await seed_cache.set(account_id, seed):
                logger.debug("Seed for %s was not cached", account_id)

        signer = MasterSigner.from_seed(seed)
        return cls(account_id=account_id, signer=signer, kms_service=kms_service, kms_plugin=kms_plugin)

    @classmethod
    async def from_cache(
        cls,
        account_id: str,
        kms_service: KmsService,
        kms_plugin: str,
        seed_cache: SeedCache | None = None,
    ) -> "AccountMasterKey | None":
        """
        Restore a master key previously cached by `from_secret`.

        Returns:
            The master key, or None if nothing is cached for `account_id`
            (or the cache cannot be read)
        """
        if seed_cache is None or not seed_cache.available:
            return None

        seed = await seed_cache.get(account_id)
        if not seed:
            return None

        try:
            signer = MasterSigner.from_seed(seed)
        except InvalidArgument:
            logger.debug("Cached seed for %s has the wrong size", account_id)
            return None
        return cls(account_id=account_id, signer=signer, kms_service=kms_service, kms_plugin=kms_plugin)

    @classmethod
    async def from_biometric(cls, *args, **kwargs) -> "AccountMasterKey":
        raise DerivationNotImplemented("Biometric derivation is not implemented.")

    @classmethod
    async def from_fido(cls, *args, **kwargs) -> "AccountMasterKey":
        raise DerivationNotImplemented("FIDO derivation is not implemented.")

    @staticmethod
    async def clear_cache(account_id: str, seed_cache: SeedCache | None = None) -> bool:
        """
        Remove the cached seed for `account_id`.

        Required after `from_secret(..., cache=True)` to stop `from_cache`
        from restoring the key.

        Returns:
            True if the removal was persisted
        """
        if seed_cache is None:
            return False
        return await seed_cache.remove(account_id)

    # ------------------------------------------------------------------
    # Remote keys
    # ------------------------------------------------------------------

    async def generate_key(self, type: str, version: str = "recommended") -> KeyHandle:
        """
        Generate a KEK or an HMAC key on the KMS service.

        Args:
            type: ``kek`` or ``hmac``
            version: ``recommended`` or ``fips``

        Returns:
            Kek or Hmac handle for the new key

        Raises:
            UnsupportedVersion: If `version` is not recognized
            UnknownKeyType: If `type` is not recognized
        """
        assert_version(version)
        # fips and recommended share key types; there is no other
        # standardized key wrapping algorithm
        key_type = parse_key_type(type)

        key_id = await self.kms_service.generate_key(
            plugin=self.kms_plugin,
            type=key_type.remote_type,
            signer=self.signer,
        )
        logger.info(
            "Generated %s key",
            key_type.value,
            extra={"extra_fields": {"key_id": key_id, "account_id": self.account_id}},
        )
        return create_key_handle(
            key_type,
            id=key_id,
            kms_service=self.kms_service,
            signer=self.signer,
            kms_plugin=self.kms_plugin,
        )

    def get_kek(self, id: str) -> Kek:
        """
        Return a handle for an existing KEK.

        The id is presumed to belong to this account's KMS service; it is
        not checked.
        """
        return Kek(id=id, kms_service=self.kms_service, signer=self.signer, kms_plugin=self.kms_plugin)

    def get_hmac(self, id: str) -> Hmac:
        """
        Return a handle for an existing HMAC key.

        The id is presumed to belong to this account's KMS service; it is
        not checked.
        """
        return Hmac(id=id, kms_service=self.kms_service, signer=self.signer)

    # ------------------------------------------------------------------
    # Envelope encryption
    # ------------------------------------------------------------------

    async def encrypt(
        self,
        data: str | bytes,
        kek_id: str,
        wrapped_cek: str | None = None,
        version: str = "recommended",
    ) -> dict[str, Any]:
        """
        Encrypt `data` into a JWE.

        Args:
            data: Plaintext (text is UTF-8 encoded)
            kek_id: ID of the KEK protecting the content encryption key
            wrapped_cek: Existing wrapped CEK to reuse; a fresh CEK is
                generated and wrapped when omitted
            version: ``recommended`` or ``fips``

        Returns:
            The JWE as a dict
        """
        assert_version(version)
        data = to_bytes(data, "data")
        if not isinstance(kek_id, str):
            raise InvalidArgument('"kek_id" must be a string.')
        if wrapped_cek is not None and not isinstance(wrapped_cek, str):
            raise InvalidArgument('"wrapped_cek" must be a string.')

        profile = get_profile(version)
        kek = self.get_kek(kek_id)
        if wrapped_cek is not None:
            cek = await kek.unwrap(wrapped_cek)
        else:
            cek = profile.generate_key()
            wrapped_cek = await kek.wrap(cek)

        protected = encode_protected_header(profile.ENC)
        result = profile.encrypt(data, additional_data_for(protected), cek)
        return build_envelope(
            protected=protected,
            enc=result.enc,
            kid=kek_id,
            encrypted_key=wrapped_cek,
            iv=result.iv,
            ciphertext=result.ciphertext,
            tag=result.tag,
        )

    async def encrypt_object(
        self,
        obj: Any,
        kek_id: str,
        wrapped_cek: str | None = None,
        version: str = "recommended",
    ) -> dict[str, Any]:
        """Encrypt a JSON-serializable object into a JWE."""
        try:
            data = canonical_json(obj)
        except (TypeError, ValueError) as e:
            raise InvalidArgument('"obj" must be JSON-serializable.') from e
        return await self.encrypt(data, kek_id=kek_id, wrapped_cek=wrapped_cek, version=version)

    async def decrypt(self, jwe: dict[str, Any], kek_id: str) -> bytes:
        """
        Decrypt a JWE produced by `encrypt`.

        Raises:
            InvalidArgument: If `kek_id` is not a string
            InvalidEnvelope: If the JWE is malformed
            DecryptionError: If authentication fails
        """
        if not isinstance(kek_id, str):
            raise InvalidArgument('"kek_id" must be a string.')
        envelope = parse_envelope(jwe, kek_id)
        cek = await self.get_kek(kek_id).unwrap(envelope.encrypted_key)
        profile = get_profile_for_enc(envelope.enc)
        try:
            return profile.decrypt(
                envelope.enc,
                envelope.ciphertext,
                envelope.iv,
                envelope.tag,
                envelope.additional_data,
                cek,
            )
        except InvalidArgument as e:
            raise DecryptionError("Unwrapped key is not a valid content encryption key") from e

    async def decrypt_object(self, jwe: dict[str, Any], kek_id: str) -> Any:
        """Decrypt a JWE produced by `encrypt_object`."""
        data = await self.decrypt(jwe, kek_id)
        try:
            return json.loads(data.decode("utf-8"))
        except ValueError as e:
            raise DecryptionError("Decrypted data is not a JSON document") from e

    # ------------------------------------------------------------------
    # Blinding
    # ------------------------------------------------------------------

    def blind(self, data: str | bytes) -> str:
        """
        Produce an opaque, deterministic index token for `data`.

        Returns:
            base64url HMAC-SHA256 of `data` under a key derived from the
            master identity
        """
        data = to_bytes(data, "data")
        derive_key = getattr(self.signer, "derive_key", None)
        if derive_key is None:
            raise InvalidArgument("Blinding requires a signer that can derive keys.")
        blind_key = derive_key(BLIND_KEY_INFO)
        return to_base64url(hmac.new(blind_key, data, hashlib.sha256).digest())

    def __repr__(self) -> str:
        return f"AccountMasterKey(account_id={self.account_id!r}, id={self.id!r})"
