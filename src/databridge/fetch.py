"""Request and response objects for a single fetch through the bridge.

:class:`FetchRequest` records what was asked for (source, producer path,
options, arguments, and when). :class:`FetchResponse` carries the payload
plus provenance metadata:

* ``stream_name`` -- the stream the payload belongs to;
* ``cache_read`` -- a :class:`~databridge.models.CacheMeta` when the payload
  was served from the cache;
* ``cache_write`` -- a :class:`~databridge.models.CacheMeta` when a fresh
  payload was written to the cache.

``cache_read`` and ``cache_write`` are never both present.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from databridge.models import CacheMeta, FetchOptions

if TYPE_CHECKING:
    from databridge.bridge import Databridge
    from databridge.datasource import Datasource

META_STREAM_NAME = "stream_name"
META_CACHE_READ = "cache_read"
META_CACHE_WRITE = "cache_write"

_UNSET = object()


class FetchRequest:
    """Everything the bridge knows about one fetch call."""

    def __init__(
        self,
        bridge: Databridge,
        source: Datasource,
        source_path: Sequence[str],
        options: FetchOptions,
        args: Sequence[Any],
        timestamp: datetime,
    ) -> None:
        self._bridge = bridge
        self._source = source
        self._source_path = tuple(source_path)
        self._options = options
        self._args = tuple(args)
        self._timestamp = timestamp

    def __repr__(self) -> str:
        return f"<FetchRequest {'.'.join(self._source_path)} args={list(self._args)!r}>"

    @property
    def bridge(self) -> Databridge:
        return self._bridge

    @property
    def source(self) -> Datasource:
        return self._source

    @property
    def source_path(self) -> tuple[str, ...]:
        return self._source_path

    @property
    def source_name(self) -> str:
        return self._source_path[0]

    @property
    def fetcher_path(self) -> tuple[str, ...]:
        return self._source_path[1:]

    @property
    def options(self) -> FetchOptions:
        return self._options

    @property
    def args(self) -> tuple[Any, ...]:
        return self._args

    @property
    def timestamp(self) -> datetime:
        """When the request was made."""
        return self._timestamp


class FetchResponse:
    """The payload of a fetch and where it came from."""

    def __init__(
        self,
        request: FetchRequest,
        data: Any = None,
        meta: Optional[dict[str, Any]] = None,
    ) -> None:
        self._request = request
        self._data = data
        self._meta: dict[str, Any] = dict(meta or {})

    def __repr__(self) -> str:
        origin = "cache" if self.from_cache else "producer"
        return f"<FetchResponse {'.'.join(self._request.source_path)} from {origin}>"

    @property
    def request(self) -> FetchRequest:
        return self._request

    @property
    def data(self) -> Any:
        return self._data

    def meta(self, key: str, value: Any = _UNSET) -> Any:
        """Read metadata *key*, or set it to *value* and return the value."""
        if not isinstance(key, str):
            raise TypeError(f"Metadata keys must be strings, got {key!r}")
        if value is not _UNSET:
            self._meta[key] = value
            return value
        return self._meta.get(key)

    def all_meta(self) -> dict[str, Any]:
        """Return a shallow copy of all metadata."""
        return dict(self._meta)

    @property
    def stream_name(self) -> Optional[str]:
        return self._meta.get(META_STREAM_NAME)

    @property
    def cache_read(self) -> Optional[CacheMeta]:
        return self._meta.get(META_CACHE_READ)

    @property
    def cache_write(self) -> Optional[CacheMeta]:
        return self._meta.get(META_CACHE_WRITE)

    @property
    def from_cache(self) -> bool:
        return self.cache_read is not None
