"""The data bridge -- registered datasources behind a cache-or-fetch interface.

:class:`Databridge` owns a registry of named
:class:`~databridge.datasource.Datasource` objects and serves fetch requests
against them. Each fetch goes through the same sequence:

1. resolve the datasource and the producer at the requested path;
2. pick the stream name (explicit ``stream_name`` option, the producer's
   own generator, or :func:`~databridge.keys.generate_stream_name`);
3. unless caching is disabled or ``bypass_cache`` is set, serve the cached
   record if it is within the TTL;
4. otherwise invoke the producer and, if caching is enabled, write the
   result back to the cache.

Cache read and write failures never fail a fetch. They are logged and handed
to the bridge's cache-error handler; a broken cache file behaves like a
miss, a failed write still returns the freshly produced data.

Example::

    bridge = Databridge(cache_dir="/tmp/cache", default_cache_ttl=10)
    bridge.register("weather", Datasource({"daily": load_daily}))

    response = await bridge.fetch(["weather", "daily"], {}, ["Dublin"])
    data = await bridge.weather.daily("Dublin")  # shortcut, same fetch
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from datetime import datetime
from typing import Any, Callable, Optional, Union

from databridge.cache.record import CacheRecord, utc_now
from databridge.cache.store import CacheStore, JsonFileStore
from databridge.datasource import Datasource, Leaf, ProducerNode
from databridge.exceptions import (
    CacheError,
    CacheReadError,
    CacheWriteError,
    ConfigurationError,
    DatabridgeError,
    DataFetchError,
    InvalidNameError,
    NameCollisionError,
    ProducerInvocationError,
    UnknownSourceError,
    UnsupportedKeyValueError,
)
from databridge.fetch import (
    META_CACHE_READ,
    META_CACHE_WRITE,
    META_STREAM_NAME,
    FetchRequest,
    FetchResponse,
)
from databridge.keys import generate_stream_name, get_stream_key_generator
from databridge.models import BridgeConfig, CacheMeta, FetchOptions, build_options
from databridge.names import validate_name

logger = logging.getLogger(__name__)

CacheErrorHandler = Callable[[CacheError], None]
Clock = Callable[[], datetime]
FetchPath = Union[str, Sequence[str]]


class ShortcutNamespace:
    """Attribute access to fetch shortcuts, mirroring a producer tree.

    Leaves are coroutine functions; ``await ns.stats.max("Dublin")`` is the
    same as ``await bridge.fetch_payload([..., "stats", "max"], None,
    ["Dublin"])``.
    """

    def __init__(self) -> None:
        self._entries: dict[str, Any] = {}

    def __getattr__(self, name: str) -> Any:
        try:
            return self.__dict__["_entries"][name]
        except KeyError:
            raise AttributeError(f"No shortcut named {name!r}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._entries))

    def __dir__(self) -> list[str]:
        return sorted(set(super().__dir__()) | set(self._entries))

    def _add(self, name: str, entry: Any) -> None:
        self._entries[name] = entry


def _build_shortcut(bridge: Databridge, path: tuple[str, ...], node: ProducerNode) -> Any:
    if isinstance(node, Leaf):

        async def shortcut(*args: Any, **fetch_options: Any) -> Any:
            return await bridge.fetch_payload(path, fetch_options or None, args)

        shortcut.__name__ = path[-1]
        shortcut.__qualname__ = ".".join(path)
        shortcut.__doc__ = f"Fetch the payload of {'.'.join(path)} through the bridge."
        return shortcut

    namespace = ShortcutNamespace()
    for name, child in node.children.items():
        namespace._add(name, _build_shortcut(bridge, path + (name,), child))
    return namespace


class Databridge:
    """A registry of datasources with a JSON cache in front of them.

    Args:
        config: A :class:`~databridge.models.BridgeConfig` or a mapping of
            its fields. Defaults apply for anything left out.
        store: Cache store to use. Defaults to a
            :class:`~databridge.cache.store.JsonFileStore` over
            ``config.cache_dir``.
        clock: Zero-argument callable returning the current aware
            datetime. Used for request timestamps, record timestamps and
            TTL checks.
        cache_error_handler: Called with every swallowed
            :class:`~databridge.exceptions.CacheError`, after it is logged.
        **options: Config fields given as keyword arguments; they take
            precedence over *config*.

    Raises:
        ConfigurationError: If the options are invalid, e.g. the cache
            directory does not exist or the TTL is not a positive integer.
    """

    def __init__(
        self,
        config: Union[BridgeConfig, Mapping[str, Any], None] = None,
        *,
        store: Optional[CacheStore] = None,
        clock: Optional[Clock] = None,
        cache_error_handler: Optional[CacheErrorHandler] = None,
        **options: Any,
    ) -> None:
        if options:
            if isinstance(config, BridgeConfig):
                config = config.model_dump()
            config = {**(config or {}), **options}

        self._config: BridgeConfig = build_options(BridgeConfig, config, "bridge options")
        self._store: CacheStore = store if store is not None else JsonFileStore(self._config.cache_dir)
        self._clock: Clock = clock or utc_now
        self._cache_error_handler = cache_error_handler
        self._datasources: dict[str, Datasource] = {}
        self._shortcuts = ShortcutNamespace()

    def __repr__(self) -> str:
        return (
            f"<Databridge cache_dir={str(self._config.cache_dir)!r} "
            f"sources={self.source_names()!r}>"
        )

    def __getattr__(self, name: str) -> Any:
        # Only reached for names that are not real attributes, so
        # registered sources can never shadow bridge methods.
        shortcuts = self.__dict__.get("_shortcuts")
        if shortcuts is not None and name in shortcuts:
            return getattr(shortcuts, name)
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def config(self) -> BridgeConfig:
        return self._config

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def shortcuts(self) -> ShortcutNamespace:
        """Fetch shortcuts for every registered datasource."""
        return self._shortcuts

    def option(self, name: str) -> Any:
        """Return the value of bridge option *name*, or ``None`` if there is no such option."""
        if name not in BridgeConfig.model_fields:
            return None
        return getattr(self._config, name)

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register_datasource(self, name: str, datasource: Datasource) -> Databridge:
        """Register *datasource* under *name* and build its shortcuts.

        Returns:
            The bridge itself, so registrations can be chained.

        Raises:
            InvalidNameError: If *name* is not a valid Name.
            NameCollisionError: If *name* is taken or is a bridge attribute.
            ConfigurationError: If *datasource* is not a
                :class:`~databridge.datasource.Datasource`.
        """
        validate_name(name, "datasource name")
        if not isinstance(datasource, Datasource):
            raise ConfigurationError(
                f"Cannot register {datasource!r} as {name!r}: not a Datasource"
            )
        if name in RESERVED_NAMES:
            raise NameCollisionError(
                f"Datasource name {name!r} clashes with a Databridge attribute"
            )
        if name in self._datasources:
            raise NameCollisionError(f"A datasource named {name!r} is already registered")

        self._datasources[name] = datasource
        self._shortcuts._add(name, _build_shortcut(self, (name,), datasource.tree))
        logger.debug("Registered datasource '%s' %r", name, datasource)
        return self

    register = register_datasource

    def datasource(self, name: str) -> Optional[Datasource]:
        """Return the datasource registered as *name*, or ``None``."""
        return self._datasources.get(name)

    source = datasource

    def source_names(self) -> list[str]:
        """Return the names of all registered datasources, sorted."""
        return sorted(self._datasources)

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def fetch(
        self,
        path: FetchPath,
        options: Union[FetchOptions, Mapping[str, Any], None] = None,
        args: Sequence[Any] = (),
    ) -> FetchResponse:
        """Fetch the payload at *path*, from the cache when possible.

        Args:
            path: Datasource name, or a sequence of the datasource name
                followed by the producer path within it.
            options: :class:`~databridge.models.FetchOptions` or a mapping
                with ``stream_name`` and/or ``bypass_cache``.
            args: Positional arguments for the producer.

        Returns:
            A :class:`~databridge.fetch.FetchResponse` carrying the payload
            and ``stream_name`` / ``cache_read`` / ``cache_write`` metadata.

        Raises:
            UnknownSourceError: If no datasource is registered under the
                first path element.
            NotFoundError: If the rest of the path does not address a
                producer.
            UnsupportedKeyValueError: If no stream name can be derived.
            InvalidNameError: If the stream name is not a valid Name.
            DataFetchError: If the producer raises.
        """
        source_path = (path,) if isinstance(path, str) else tuple(path)
        if not source_path:
            raise InvalidNameError("Fetch path must contain at least a datasource name")
        source_name, fetcher_path = source_path[0], source_path[1:]
        source = self._datasources.get(source_name) if isinstance(source_name, str) else None
        if source is None:
            raise UnknownSourceError(f"No datasource named {source_name!r} is registered")

        fetch_options: FetchOptions = build_options(FetchOptions, options, "fetch options")
        args = tuple(args)
        producer = source.resolve_producer(fetcher_path)
        stream_name = self._stream_name(producer, args, fetch_options)
        request = FetchRequest(self, source, source_path, fetch_options, args, self._clock())
        location = self._store.location_for(source_path, stream_name)
        label = f"{'.'.join(source_path)}[{stream_name}]"

        if source.enable_caching and not fetch_options.bypass_cache:
            record = self._read_record(location)
            if record is not None:
                ttl = source.cache_ttl or self._config.default_cache_ttl
                if record.is_within_ttl(ttl, request.timestamp):
                    logger.debug("Cache hit for %s at %s", label, location)
                    return FetchResponse(
                        request,
                        record.data,
                        {
                            META_STREAM_NAME: stream_name,
                            META_CACHE_READ: CacheMeta(
                                location=location, timestamp=record.timestamp
                            ),
                        },
                    )
                logger.debug("Stale cache record for %s (TTL %d minutes)", label, ttl)
            else:
                logger.debug("Cache miss for %s", label)

        try:
            data = await source.invoke(args, fetcher_path)
        except ProducerInvocationError as exc:
            raise DataFetchError(f"Failed to fetch {label}: {exc}") from exc

        meta: dict[str, Any] = {META_STREAM_NAME: stream_name}
        if source.enable_caching:
            written = self._write_record(source_path, stream_name, location, data)
            if written is not None:
                meta[META_CACHE_WRITE] = CacheMeta(location=location, timestamp=written.timestamp)
        return FetchResponse(request, data, meta)

    fetch_response = fetch

    async def fetch_payload(
        self,
        path: FetchPath,
        options: Union[FetchOptions, Mapping[str, Any], None] = None,
        args: Sequence[Any] = (),
    ) -> Any:
        """Like :meth:`fetch`, but return only the payload."""
        response = await self.fetch(path, options, args)
        return response.data

    fetch_data = fetch_payload

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _stream_name(
        self,
        producer: Callable[..., Any],
        args: tuple[Any, ...],
        options: FetchOptions,
    ) -> str:
        if options.stream_name is not None:
            return validate_name(options.stream_name, "stream name")
        generator = get_stream_key_generator(producer) or generate_stream_name
        try:
            name = generator(list(args), options)
        except DatabridgeError:
            raise
        except Exception as exc:
            raise UnsupportedKeyValueError(f"Stream key generator failed: {exc}") from exc
        return validate_name(name, "stream name")

    def _read_record(self, location: str) -> Optional[CacheRecord]:
        try:
            raw = self._store.read_json(location)
            if raw is None:
                return None
            return CacheRecord.from_persistable(raw, location=location)
        except CacheReadError as exc:
            self._report_cache_error(exc)
            return None

    def _write_record(
        self,
        source_path: tuple[str, ...],
        stream_name: str,
        location: str,
        data: Any,
    ) -> Optional[CacheRecord]:
        record = CacheRecord(
            source_path=source_path,
            stream_name=stream_name,
            timestamp=self._clock(),
            data=data,
            location=location,
        )
        try:
            self._store.write_json(location, record.to_persistable())
        except CacheWriteError as exc:
            self._report_cache_error(exc)
            return None
        logger.debug("Cached %s at %s", ".".join(source_path), location)
        return record

    def _report_cache_error(self, error: CacheError) -> None:
        logger.warning("Cache problem ignored: %s", error)
        if self._cache_error_handler is not None:
            self._cache_error_handler(error)


RESERVED_NAMES = frozenset(name for name in dir(Databridge) if not name.startswith("_"))
"""Public attribute names of :class:`Databridge` that datasources may not use."""
