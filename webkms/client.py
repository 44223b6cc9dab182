"""
Asynchronous KMS service client.

Builds key operations, has them authorized by the configured
Authenticator and POSTs them to the KMS service. Failures are not retried;
HTTP errors are mapped to RemoteOperationFailed subclasses and transport
errors propagate unchanged.
"""

import logging
import uuid
from typing import Any

import httpx

from webkms.auth import Authenticator, Signer, create_authenticator
from webkms.config import Settings, get_settings
from webkms.encoding import from_base64url, to_base64url
from webkms.errors import (
    AuthenticationError,
    AuthorizationError,
    InvalidArgument,
    KeyNotFoundError,
    RateLimitError,
    RemoteOperationFailed,
    ServerError,
)

logger = logging.getLogger(__name__)

_TYPE_NAMES = {
    str: "string",
    bytes: "bytes",
}


def _assert(variable: Any, name: str, expected: type | str) -> None:
    """
    Fail fast when an argument has the wrong type.

    `expected` is a type, or ``"signer"`` for the Signer protocol.
    """
    if expected == "signer":
        if not (isinstance(getattr(variable, "id", None), str) and callable(getattr(variable, "sign", None))):
            raise InvalidArgument(f'"{name}" must be a signer with an "id" and a "sign" method.')
        return
    if not isinstance(variable, expected):
        type_name = _TYPE_NAMES.get(expected, expected.__name__)
        raise InvalidArgument(f'"{name}" must be {type_name}.')


class KmsService:
    """
    Client for the KMS service.

    Example:
        async with KmsService.from_settings() as kms:
            key_id = await kms.generate_key(
                plugin="ssm-v1", type="AesKeyWrappingKey2019", signer=signer
            )
            wrapped = await kms.wrap_key(key=cek, kek_id=key_id, signer=signer)
    """

    def __init__(
        self,
        base_url: str,
        authenticator: Authenticator,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Base URL under which key URLs are minted
            authenticator: Request authentication strategy
            timeout: Request timeout in seconds
            http_client: Optional pre-configured client (not closed by us)
        """
        self.base_url = base_url.rstrip("/")
        self.authenticator = authenticator
        self.timeout = timeout
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> "KmsService":
        """Create a client whose authentication strategy comes from settings."""
        settings = settings or get_settings()
        return cls(
            base_url=settings.base_url,
            authenticator=create_authenticator(settings),
            timeout=settings.timeout,
            http_client=http_client,
        )

    async def generate_key(self, plugin: str, type: str, signer: Signer) -> str:
        """
        Generate a new key on the KMS service.

        Args:
            plugin: KMS plugin that will hold the key
            type: Key type (e.g. ``AesKeyWrappingKey2019``)
            signer: Controller of the new key

        Returns:
            The ID of the new key
        """
        _assert(plugin, "plugin", str)
        _assert(type, "type", str)
        _assert(signer, "signer", "signer")
        key_id = f"{self.base_url}/{plugin}/{uuid.uuid4()}"

        result = await self._post_operation(
            url=key_id,
            operation={
                "type": "GenerateKeyOperation",
                "invocationTarget": {"id": key_id, "type": type, "controller": signer.id},
            },
            signer=signer,
        )
        return self._result(result, "id", str)

    async def wrap_key(self, key: bytes, kek_id: str, signer: Signer) -> str:
        """
        Wrap a key with a key encryption key (KEK).

        Returns:
            The base64url-encoded wrapped key
        """
        _assert(key, "key", bytes)
        _assert(kek_id, "kek_id", str)
        _assert(signer, "signer", "signer")

        result = await self._post_operation(
            url=kek_id,
            operation={
                "type": "WrapKeyOperation",
                "invocationTarget": kek_id,
                "unwrappedKey": to_base64url(key),
            },
            signer=signer,
        )
        return self._result(result, "wrappedKey", str)

    async def unwrap_key(self, wrapped_key: str, kek_id: str, signer: Signer) -> bytes:
        """
        Unwrap a key with a key encryption key (KEK).

        Returns:
            The key bytes
        """
        _assert(wrapped_key, "wrapped_key", str)
        _assert(kek_id, "kek_id", str)
        _assert(signer, "signer", "signer")

        result = await self._post_operation(
            url=kek_id,
            operation={
                "type": "UnwrapKeyOperation",
                "invocationTarget": kek_id,
                "wrappedKey": wrapped_key,
            },
            signer=signer,
        )
        unwrapped_key = self._result(result, "unwrappedKey", str)
        try:
            return from_base64url(unwrapped_key)
        except ValueError as e:
            raise RemoteOperationFailed('Malformed "unwrappedKey" in response.') from e

    async def sign(self, key_id: str, data: bytes, signer: Signer) -> str:
        """
        Sign data with a remote key.

        The data is sent to the server; hash it first if it is secret.
        `signer` authorizes the request, it does not sign `data`.

        Returns:
            The base64url-encoded signature
        """
        _assert(key_id, "key_id", str)
        _assert(data, "data", bytes)
        _assert(signer, "signer", "signer")

        result = await self._post_operation(
            url=key_id,
            operation={
                "type": "SignOperation",
                "invocationTarget": key_id,
                "verifyData": to_base64url(data),
            },
            signer=signer,
        )
        return self._result(result, "signatureValue", str)

    async def verify(self, key_id: str, data: bytes, signature: str, signer: Signer) -> bool:
        """
        Verify a signature with a remote key.

        Returns:
            True if verified, False if not
        """
        _assert(key_id, "key_id", str)
        _assert(data, "data", bytes)
        _assert(signature, "signature", str)
        _assert(signer, "signer", "signer")

        result = await self._post_operation(
            url=key_id,
            operation={
                "type": "VerifyOperation",
                "invocationTarget": key_id,
                "verifyData": to_base64url(data),
                "signatureValue": signature,
            },
            signer=signer,
        )
        return self._result(result, "verified", bool)

    async def _post_operation(self, url: str, operation: dict[str, Any], signer: Signer) -> dict[str, Any]:
        """
        Authorize and send an operation.

        Args:
            url: The invoked key's URL
            operation: The operation to run
            signer: Signer authorizing the invocation

        Returns:
            Response JSON
        """
        request = self.authenticator.authorize(operation, target=url, signer=signer)
        logger.debug(
            "Posting %s",
            operation["type"],
            extra={"extra_fields": {"operation": operation["type"], "key_id": url}},
        )
        response = await self._client.post(
            request.url,
            content=request.body,
            headers=request.headers,
            timeout=self.timeout,
        )
        return self._handle_response(response, url)

    def _handle_response(self, response: httpx.Response, key_id: str) -> dict[str, Any]:
        """Handle API response and raise appropriate exceptions."""
        if 200 <= response.status_code < 300:
            try:
                data = response.json()
            except ValueError as e:
                raise RemoteOperationFailed("KMS response is not JSON", response.status_code) from e
            if not isinstance(data, dict):
                raise RemoteOperationFailed("KMS response is not a JSON object", response.status_code)
            return data

        # Parse error detail
        try:
            body = response.json()
            detail = body.get("message") or body.get("detail") or "Unknown error"
        except Exception:
            detail = response.text or "Unknown error"

        status = response.status_code
        logger.warning(
            "KMS operation failed (%s)",
            status,
            extra={"extra_fields": {"status_code": status, "key_id": key_id}},
        )

        if status == 401:
            raise AuthenticationError(f"Invocation not authenticated: {detail}", status_code=status)
        elif status == 403:
            raise AuthorizationError(f"Not authorized: {detail}", status_code=status)
        elif status == 404:
            raise KeyNotFoundError(f"Key not found ({key_id}): {detail}", status_code=status)
        elif status == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                f"Rate limit exceeded: {detail}",
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        elif status >= 500:
            raise ServerError(f"Server error ({status}): {detail}", status_code=status)
        else:
            raise RemoteOperationFailed(f"Request failed ({status}): {detail}", status_code=status)

    @staticmethod
    def _result(data: dict[str, Any], name: str, expected: type) -> Any:
        value = data.get(name)
        if not isinstance(value, expected):
            raise RemoteOperationFailed(f'KMS response is missing "{name}".')
        return value

    async def close(self):
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
