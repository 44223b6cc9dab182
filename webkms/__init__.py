"""
WebKMS - client-side key management.

Derives an account master key from a secret, authorizes operations on keys
held by a remote KMS service and encrypts data into JWE envelopes whose
content key is wrapped by a remote key encryption key.

Example:
    from webkms import AccountMasterKey, KmsService, SeedCache, FileStore

    async with KmsService.from_settings() as kms:
        amk = await AccountMasterKey.from_secret(
            secret="s3cr3t",
            account_id="acct-1",
            kms_service=kms,
            kms_plugin="ssm-v1",
            seed_cache=SeedCache(FileStore("~/.webkms")),
        )
        kek = await amk.generate_key("kek")
        jwe = await amk.encrypt_object({"ssn": "123-45-6789"}, kek_id=kek.id)
"""

from webkms.auth import (
    Authenticator,
    CapabilityInvocationAuthenticator,
    HttpSignatureAuthenticator,
    SignedRequest,
    Signer,
    create_authenticator,
)
from webkms.ciphers import (
    CipherProfile,
    FipsProfile,
    RecommendedProfile,
    get_profile,
    get_profile_for_enc,
)
from webkms.client import KmsService
from webkms.config import Settings, get_settings
from webkms.errors import (
    WebKmsError,
    InvalidArgument,
    UnsupportedVersion,
    UnknownKeyType,
    InvalidEnvelope,
    DerivationNotImplemented,
    DecryptionError,
    RemoteOperationFailed,
    AuthenticationError,
    AuthorizationError,
    KeyNotFoundError,
    ServerError,
    RateLimitError,
)
from webkms.keys import Hmac, Kek, KeyHandle, KeyType, create_key_handle
from webkms.master_key import AccountMasterKey, derive_seed
from webkms.seed_cache import SeedCache
from webkms.signer import MasterSigner
from webkms.storage import FileStore, KeyValueStore, MemoryStore

__version__ = "0.1.0"

__all__ = [
    # Master key
    "AccountMasterKey",
    "derive_seed",
    "MasterSigner",
    # Remote keys
    "KmsService",
    "Kek",
    "Hmac",
    "KeyHandle",
    "KeyType",
    "create_key_handle",
    # Authentication
    "Authenticator",
    "CapabilityInvocationAuthenticator",
    "HttpSignatureAuthenticator",
    "SignedRequest",
    "Signer",
    "create_authenticator",
    # Content encryption
    "CipherProfile",
    "RecommendedProfile",
    "FipsProfile",
    "get_profile",
    "get_profile_for_enc",
    # Seed cache
    "SeedCache",
    "KeyValueStore",
    "MemoryStore",
    "FileStore",
    # Configuration
    "Settings",
    "get_settings",
    # Errors
    "WebKmsError",
    "InvalidArgument",
    "UnsupportedVersion",
    "UnknownKeyType",
    "InvalidEnvelope",
    "DerivationNotImplemented",
    "DecryptionError",
    "RemoteOperationFailed",
    "AuthenticationError",
    "AuthorizationError",
    "KeyNotFoundError",
    "ServerError",
    "RateLimitError",
]
