"""Key-value stores that hold serialised cache records.

The bridge only needs three operations from a store, described by the
:class:`CacheStore` protocol: derive a location for a ``(source path,
stream)`` pair, read the JSON value at a location, and write one. Two
implementations ship with the package:

* :class:`JsonFileStore` -- the default. One pretty-printed JSON file per
  stream, named ``<source>.<fetcher path...>.<stream>.json`` inside the
  cache directory, written atomically.
* :class:`DiskCacheStore` -- the same JSON envelopes kept in a
  :class:`diskcache.Cache`, keyed by the same file-name-shaped string.

Stores are synchronous and perform no locking.
"""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

import diskcache

from databridge.exceptions import CacheReadError, CacheWriteError


def cache_file_name(source_path: Sequence[str], stream_name: str) -> str:
    """Return ``'<a>.<b>.<stream>.json'`` for source path ``(a, b)``."""
    return ".".join(source_path) + "." + stream_name + ".json"


@runtime_checkable
class CacheStore(Protocol):
    """Storage backend used by :class:`~databridge.bridge.Databridge`."""

    def location_for(self, source_path: Sequence[str], stream_name: str) -> str:
        """Return the opaque location of the record for a source path and stream."""
        ...

    def read_json(self, location: str) -> Any:
        """Return the decoded value at *location*, or ``None`` if nothing is stored.

        Raises:
            CacheReadError: If something is stored but cannot be decoded.
        """
        ...

    def write_json(self, location: str, value: Any) -> None:
        """Store *value* as JSON at *location*.

        Raises:
            CacheWriteError: If the value cannot be encoded or stored.
        """
        ...

    def iter_locations(self) -> Iterator[str]:
        """Yield every location currently holding a record."""
        ...


def _replace_file(location: str, text: str) -> None:
    """Swap *text* in as the content of the cache file at *location*.

    The text goes to a hidden sibling temp file first and is then renamed
    over the target with ``os.replace``, so readers see either the old
    record or the new one. The temp file never outlives a failed write.

    Raises:
        CacheWriteError: If the temp file cannot be written or renamed.
    """
    target = Path(location)
    try:
        fd, tmp_name = tempfile.mkstemp(
            dir=target.parent, prefix=f".{target.name}.", suffix=".tmp"
        )
    except OSError as exc:
        raise CacheWriteError(f"Cannot write cache file {location}: {exc}") from exc
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, target)
    except OSError as exc:
        Path(tmp_name).unlink(missing_ok=True)
        raise CacheWriteError(f"Cannot write cache file {location}: {exc}") from exc
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _encode(value: Any, location: str, indent: Optional[int] = None) -> str:
    try:
        return json.dumps(value, indent=indent)
    except (TypeError, ValueError, RecursionError) as exc:
        raise CacheWriteError(f"Cannot serialise cache record for {location}: {exc}") from exc


def _decode(text: str, location: str) -> Any:
    try:
        return json.loads(text)
    except (ValueError, RecursionError) as exc:
        raise CacheReadError(f"Cache file {location} is not valid JSON: {exc}") from exc


class JsonFileStore:
    """One JSON file per stream inside *cache_dir*.

    Args:
        cache_dir: Existing directory that holds the cache files.

    Example::

        store = JsonFileStore("/tmp/cache")
        loc = store.location_for(("weather", "daily"), "main")
        # -> "/tmp/cache/weather.daily.main.json"
    """

    def __init__(self, cache_dir: str | Path) -> None:
        self._cache_dir = Path(cache_dir)

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    def location_for(self, source_path: Sequence[str], stream_name: str) -> str:
        return str(self._cache_dir / cache_file_name(source_path, stream_name))

    def read_json(self, location: str) -> Any:
        path = Path(location)
        if not path.is_file():
            return None
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise CacheReadError(f"Cannot read cache file {location}: {exc}") from exc
        return _decode(text, location)

    def write_json(self, location: str, value: Any) -> None:
        _replace_file(location, _encode(value, location, indent=2) + "\n")

    def iter_locations(self) -> Iterator[str]:
        if not self._cache_dir.is_dir():
            return
        for path in sorted(self._cache_dir.glob("*.json")):
            if path.is_file():
                yield str(path)


class DiskCacheStore:
    """JSON envelopes kept in a :class:`diskcache.Cache` directory.

    Locations are the bare file names :class:`JsonFileStore` would use, so
    records look the same whichever store produced them.

    Args:
        directory: Directory for the underlying diskcache database.
    """

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)
        self._cache = diskcache.Cache(str(self._directory))

    def location_for(self, source_path: Sequence[str], stream_name: str) -> str:
        return cache_file_name(source_path, stream_name)

    def read_json(self, location: str) -> Any:
        raw = self._cache.get(location)
        if raw is None:
            return None
        if not isinstance(raw, str):
            raise CacheReadError(f"Cache entry {location} does not hold JSON text")
        return _decode(raw, location)

    def write_json(self, location: str, value: Any) -> None:
        text = _encode(value, location)
        try:
            self._cache.set(location, text)
        except OSError as exc:
            raise CacheWriteError(f"Cannot write cache entry {location}: {exc}") from exc

    def iter_locations(self) -> Iterator[str]:
        yield from sorted(self._cache.iterkeys())

    def close(self) -> None:
        """Close the underlying :class:`diskcache.Cache` and release resources."""
        self._cache.close()
