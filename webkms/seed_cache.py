"""
Local seed cache.

Seeds are kept in a single JSON mapping of ``account_id -> base64url(seed)``
stored under one fixed key. Caching is an optimization only: every
operation reports failure through its return value (False / None) and never
raises. A corrupt mapping reads as empty.

Writers do not coordinate. Concurrent set/remove for the same account race
and the last write wins.
"""

import json
import logging
from typing import Optional

from webkms.encoding import from_base64url, to_base64url
from webkms.storage import KeyValueStore

logger = logging.getLogger(__name__)

SEED_CACHE_KEY = "webkms-seed-cache"


class SeedCache:
    """
    Best-effort persistent map of account id to seed.

    Example:
        cache = SeedCache(MemoryStore())
        await cache.set("acct-1", seed)
        seed = await cache.get("acct-1")
        await cache.remove("acct-1")

    A cache constructed without a store has no persistence substrate:
    ``set``/``remove`` return False and ``get`` returns None.
    """

    def __init__(self, store: KeyValueStore | None = None, storage_key: str = SEED_CACHE_KEY):
        self.store = store
        self.storage_key = storage_key

    @property
    def available(self) -> bool:
        """True if a persistence substrate is attached."""
        return self.store is not None

    async def set(self, account_id: str, seed: bytes) -> bool:
        """Cache `seed` for `account_id`. Returns True if it was persisted."""
        if not self.available:
            return False

        cache = await self._get_cache()
        try:
            cache[account_id] = to_base64url(seed)
        except (TypeError, AttributeError):
            logger.debug("Refusing to cache non-bytes seed for %s", account_id)
            return False
        return await self._update_cache(cache)

    async def get(self, account_id: str) -> Optional[bytes]:
        """Return the cached seed for `account_id`, or None."""
        if not self.available:
            return None

        cache = await self._get_cache()
        try:
            encoded_seed = cache.get(account_id)
        except TypeError:
            logger.debug("Ignoring unhashable account id %r", account_id)
            return None
        if not encoded_seed or not isinstance(encoded_seed, str):
            return None
        try:
            return from_base64url(encoded_seed)
        except ValueError:
            logger.debug("Ignoring corrupt cached seed for %s", account_id)
            return None

    async def remove(self, account_id: str) -> bool:
        """Drop the cached seed for `account_id`. Returns True if persisted."""
        if not self.available:
            return False

        cache = await self._get_cache()
        try:
            cache.pop(account_id, None)
        except TypeError:
            logger.debug("Ignoring unhashable account id %r", account_id)
            return False
        return await self._update_cache(cache)

    async def _update_cache(self, cache: dict[str, str]) -> bool:
        try:
            await self.store.set(self.storage_key, json.dumps(cache))
            return True
        except Exception as e:
            logger.debug("Seed cache write failed: %s", type(e).__name__)
        return False

    async def _get_cache(self) -> dict[str, str]:
        try:
            raw = await self.store.get(self.storage_key)
            cache = json.loads(raw) if raw else {}
        except Exception as e:
            logger.debug("Seed cache read failed: %s", type(e).__name__)
            return {}
        if not isinstance(cache, dict):
            return {}
        return cache
