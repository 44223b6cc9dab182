"""
Exception classes for the WebKMS client.
"""


class WebKmsError(Exception):
    """Base exception for WebKMS errors."""
    pass


class InvalidArgument(WebKmsError, TypeError):
    """An argument has the wrong type or shape."""
    pass


class UnsupportedVersion(WebKmsError, ValueError):
    """The requested cipher version is not recognized."""

    def __init__(self, version: str):
        super().__init__(f'Unsupported version "{version}".')
        self.version = version


class UnknownKeyType(WebKmsError, ValueError):
    """The requested key type is not recognized."""

    def __init__(self, key_type: str):
        super().__init__(f'Unknown key type "{key_type}".')
        self.key_type = key_type


class InvalidEnvelope(WebKmsError, ValueError):
    """A JWE envelope is malformed. `field` names the first bad field."""

    def __init__(self, field: str, message: str | None = None):
        super().__init__(message or f'Invalid or missing "{field}".')
        self.field = field


class DerivationNotImplemented(WebKmsError, NotImplementedError):
    """The requested master key derivation is not available."""
    pass


class DecryptionError(WebKmsError):
    """Authenticated decryption failed."""
    pass


class RemoteOperationFailed(WebKmsError):
    """The KMS service rejected or failed an operation."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(RemoteOperationFailed):
    """The request signature was not accepted."""
    pass


class AuthorizationError(RemoteOperationFailed):
    """The signer is not allowed to invoke this key."""
    pass


class KeyNotFoundError(RemoteOperationFailed):
    """The invoked key does not exist on the KMS service."""
    pass


class ServerError(RemoteOperationFailed):
    """Server encountered an error."""
    pass


class RateLimitError(RemoteOperationFailed):
    """Too many requests - rate limit exceeded."""

    def __init__(self, message: str, retry_after: int | None = None):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after
