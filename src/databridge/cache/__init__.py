"""Cache records and the stores that persist them.

This package provides :class:`CacheRecord`, the envelope written for every
successful producer call, and the :class:`CacheStore` protocol with its two
implementations: :class:`JsonFileStore` (one JSON file per stream, the
default) and :class:`DiskCacheStore` (backed by :mod:`diskcache`).

The stores are consumed by :class:`~databridge.bridge.Databridge`, whose
:class:`~databridge.models.BridgeConfig` names the cache directory and the
default TTL.
"""

from databridge.cache.record import CacheRecord
from databridge.cache.store import (
    CacheStore,
    DiskCacheStore,
    JsonFileStore,
    cache_file_name,
)

__all__ = [
    "CacheRecord",
    "CacheStore",
    "DiskCacheStore",
    "JsonFileStore",
    "cache_file_name",
]
