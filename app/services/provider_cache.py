"""
Provider cache keyed by (tenant, environment).

Guarantees at most one provider construction per key, including when
several requests race on first use.
"""

import logging
import threading
from typing import Callable

from app.storage.base import StorageProvider

logger = logging.getLogger(__name__)

CacheKey = tuple[str, str]


def cache_label(tenant_id: str, environment: str) -> str:
    """Human-readable key, "{tenantId}-{environment}"."""
    return f"{tenant_id}-{environment}"


class ProviderCache:
    """
    Thread-safe mapping of (tenant id, environment) to a storage provider.

    Keys are tuples rather than joined strings so that e.g. tenant "a-b" in
    environment "c" never collides with tenant "a" in environment "b-c".
    """

    def __init__(self) -> None:
        self._providers: dict[CacheKey, StorageProvider] = {}
        self._lock = threading.Lock()
        self._key_locks: dict[CacheKey, threading.Lock] = {}

    def get(self, tenant_id: str, environment: str) -> StorageProvider | None:
        return self._providers.get((tenant_id, environment))

    def get_or_create(
        self,
        tenant_id: str,
        environment: str,
        factory: Callable[[], StorageProvider],
    ) -> StorageProvider:
        """
        Return the cached provider, building it with ``factory`` on first use.

        Construction runs under a per-key lock so other keys are not blocked.
        A failed construction caches nothing.
        """
        key = (tenant_id, environment)

        provider = self._providers.get(key)
        if provider is not None:
            return provider

        with self._lock:
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            provider = self._providers.get(key)
            if provider is None:
                logger.info(f"Creating storage provider for {cache_label(tenant_id, environment)}")
                provider = factory()
                with self._lock:
                    self._providers[key] = provider

        return provider

    def __contains__(self, key: object) -> bool:
        return key in self._providers

    def __len__(self) -> int:
        return len(self._providers)
