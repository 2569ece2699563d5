"""Datasources -- named producer functions plus their caching policy.

A datasource wraps either a single producer callable or a namespace tree of
producers::

    Datasource(fetch_rates)                       # single producer
    Datasource({"daily": daily, "stats": {"max": max_temp, "min": min_temp}})

Internally the definition is compiled once into a tree of
:class:`Leaf` / :class:`Namespace` nodes, and producer paths are resolved by
walking that tree. Producers may be plain functions or coroutine functions;
:meth:`Datasource.invoke` awaits whatever needs awaiting.
"""

from __future__ import annotations

import inspect
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Optional, Union

from databridge.exceptions import (
    ConfigurationError,
    NotFoundError,
    ProducerInvocationError,
)
from databridge.models import DatasourceOptions, build_options
from databridge.names import is_valid_name


@dataclass(frozen=True)
class Leaf:
    """A single producer callable."""

    func: Callable[..., Any]


@dataclass(frozen=True)
class Namespace:
    """A read-only mapping of Names to child nodes."""

    children: Mapping[str, "ProducerNode"]


ProducerNode = Union[Leaf, Namespace]


def build_producer_tree(definition: Any, _path: tuple[str, ...] = ()) -> ProducerNode:
    """Compile a producer definition into a :data:`ProducerNode` tree.

    Raises:
        ConfigurationError: If a key is not a valid Name or a value is
            neither a callable nor a mapping.
    """
    where = ".".join(_path) or "<root>"
    if isinstance(definition, Mapping):
        children: dict[str, ProducerNode] = {}
        for key, value in definition.items():
            if not is_valid_name(key):
                raise ConfigurationError(
                    f"Invalid data fetcher: key {key!r} under {where} is not a valid name"
                )
            children[key] = build_producer_tree(value, _path + (key,))
        return Namespace(MappingProxyType(children))
    if callable(definition):
        return Leaf(definition)
    raise ConfigurationError(
        f"Invalid data fetcher at {where}: expected a callable or a mapping, "
        f"got {type(definition).__name__}"
    )


def _as_path(path: Union[str, Sequence[str], None]) -> tuple[str, ...]:
    if path is None:
        return ()
    if isinstance(path, str):
        return (path,)
    return tuple(path)


class Datasource:
    """A producer definition together with its caching options.

    Args:
        data_fetcher: A producer callable or a (nested) mapping of Names to
            producer callables. Defaults to an empty namespace.
        options: A :class:`~databridge.models.DatasourceOptions` instance or
            a mapping of option values.
        **option_values: Option values given as keyword arguments; they
            take precedence over *options*.

    Raises:
        ConfigurationError: If the definition or the options are invalid.

    Example::

        source = Datasource(load_rates, enable_caching=True, cache_ttl=5)
    """

    def __init__(
        self,
        data_fetcher: Any = None,
        options: Union[DatasourceOptions, Mapping[str, Any], None] = None,
        **option_values: Any,
    ) -> None:
        if data_fetcher is None:
            data_fetcher = {}
        if option_values:
            if isinstance(options, DatasourceOptions):
                options = options.model_dump()
            options = {**(options or {}), **option_values}

        self._tree = build_producer_tree(data_fetcher)
        self._data_fetcher = data_fetcher
        self._options: DatasourceOptions = build_options(
            DatasourceOptions, options, "datasource options"
        )

    def __repr__(self) -> str:
        shape = "single" if self.has_single_producer() else "namespace"
        return (
            f"<Datasource {shape} enable_caching={self.enable_caching} "
            f"cache_ttl={self.cache_ttl}>"
        )

    # ------------------------------------------------------------------
    # Options
    # ------------------------------------------------------------------

    @property
    def options(self) -> DatasourceOptions:
        return self._options

    @property
    def enable_caching(self) -> bool:
        return self._options.enable_caching

    @property
    def cache_ttl(self) -> Optional[int]:
        return self._options.cache_ttl

    def option(self, name: str) -> Any:
        """Return the value of option *name*, or ``None`` if there is no such option."""
        if name not in DatasourceOptions.model_fields:
            return None
        return getattr(self._options, name)

    # ------------------------------------------------------------------
    # Producer lookup
    # ------------------------------------------------------------------

    @property
    def tree(self) -> ProducerNode:
        """The compiled producer tree."""
        return self._tree

    def has_single_producer(self) -> bool:
        """Return ``True`` if the definition is one bare callable."""
        return isinstance(self._tree, Leaf)

    def _walk(self, path: tuple[str, ...]) -> tuple[ProducerNode, Any]:
        node: ProducerNode = self._tree
        definition = self._data_fetcher
        for depth, segment in enumerate(path):
            walked = ".".join(path[: depth + 1])
            if not is_valid_name(segment):
                raise NotFoundError(f"Invalid producer path segment {segment!r} in {walked}")
            if isinstance(node, Leaf):
                raise NotFoundError(
                    f"Producer path {'.'.join(path)} continues past a producer at "
                    f"{'.'.join(path[:depth]) or '<root>'}"
                )
            if segment not in node.children:
                raise NotFoundError(f"No producer found at {walked}")
            node = node.children[segment]
            definition = definition[segment]
        return node, definition

    def producer(self, path: Union[str, Sequence[str], None] = ()) -> ProducerNode:
        """Return the node at *path* (the whole tree for an empty path).

        Raises:
            NotFoundError: If the path does not exist, contains an invalid
                segment, or addresses past a leaf.
        """
        node, _ = self._walk(_as_path(path))
        return node

    def data_fetcher(self, *path: Any) -> Any:
        """Return the caller's own definition object (callable or mapping) at *path*.

        The path may be given as separate arguments or as a single list::

            source.data_fetcher("stats", "max")
            source.data_fetcher(["stats", "max"])
        """
        if len(path) == 1 and isinstance(path[0], (list, tuple)):
            path = tuple(path[0])
        _, definition = self._walk(_as_path(path))
        return definition

    def resolve_producer(self, path: Union[str, Sequence[str], None] = ()) -> Callable[..., Any]:
        """Return the producer callable at *path*.

        Raises:
            NotFoundError: If *path* does not address a single producer.
        """
        path = _as_path(path)
        node = self.producer(path)
        if not isinstance(node, Leaf):
            raise NotFoundError(
                f"Producer path {'.'.join(path) or '<root>'} addresses a namespace, "
                "not a producer"
            )
        return node.func

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    async def invoke(
        self,
        args: Sequence[Any] = (),
        path: Union[str, Sequence[str], None] = (),
    ) -> Any:
        """Call the producer at *path* with *args* and return its result.

        Awaitable results are awaited, so sync and async producers look the
        same to the caller.

        Raises:
            NotFoundError: If *path* does not address a single producer.
            ProducerInvocationError: If the producer raises.
        """
        func = self.resolve_producer(path)
        label = ".".join(_as_path(path)) or getattr(func, "__name__", "producer")
        try:
            result = func(*args)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            raise ProducerInvocationError(f"Producer {label} failed: {exc}") from exc
        return result
