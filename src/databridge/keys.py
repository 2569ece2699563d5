"""Stream key generation -- mapping producer arguments to cache stream names.

A producer may be called with any arguments, but each distinct argument list
needs its own cache file. The default generator turns the argument list into
a deterministic :mod:`~databridge.names` Name:

==========================  ==========================================
Arguments                   Stream name
==========================  ==========================================
``()``                      ``main``
``(None,)``                 ``undef``
``(True,)``                 ``true`` / ``false``
``(1980,)``                 ``n_1980`` (``n_<md5>`` when not a Name)
``("",)``                   ``emptyStr``
``("ok",)``                 ``s_ok`` (``s_<md5>`` when not a Name)
``({...},)`` / ``([...],)`` ``o_<md5 of the JSON encoding>``
two or more values          ``p<N>_<md5 of the JSON encoded list>``
==========================  ==========================================

Digests are lowercase hex MD5 over the UTF-8 text; they only need to be
stable, not secret. JSON encoding uses :func:`json.dumps` defaults, so dict
key order matters and anything :mod:`json` rejects (functions, sets,
circular structures, arbitrary objects) raises
:class:`~databridge.exceptions.UnsupportedKeyValueError`.

Producers that take arguments the default cannot key can carry their own
generator, attached with :func:`stream_key_generator`.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Sequence
from typing import Any, Callable, Optional

from databridge.exceptions import UnsupportedKeyValueError
from databridge.names import is_valid_name

MAIN_STREAM = "main"
UNDEFINED_STREAM = "undef"
EMPTY_STRING_STREAM = "emptyStr"

GENERATOR_ATTRIBUTE = "__stream_key_generator__"

StreamKeyGenerator = Callable[[Sequence[Any], Any], str]


def digest(text: str) -> str:
    """Return the lowercase hex MD5 digest of *text*."""
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def _to_json(value: Any) -> str:
    try:
        return json.dumps(value)
    except (TypeError, ValueError, RecursionError) as exc:
        raise UnsupportedKeyValueError(
            f"Cannot derive a stream name from {value!r}: not JSON serialisable ({exc}). "
            "Pass an explicit stream_name or attach a custom stream key generator."
        ) from exc


def _prefixed(prefix: str, text: str) -> str:
    candidate = prefix + text
    if is_valid_name(candidate):
        return candidate
    return prefix + digest(text)


def scalar_to_name(value: Any) -> str:
    """Convert a single producer argument into a stream name.

    Raises:
        UnsupportedKeyValueError: If *value* is callable or cannot be
            encoded as JSON.
    """
    if value is None:
        return UNDEFINED_STREAM
    # bool before int: True is an int too
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return _prefixed("n_", str(value))
    if isinstance(value, str):
        if value == "":
            return EMPTY_STRING_STREAM
        return _prefixed("s_", value)
    if callable(value):
        raise UnsupportedKeyValueError(
            f"Cannot derive a stream name from callable {value!r}. "
            "Pass an explicit stream_name or attach a custom stream key generator."
        )
    return "o_" + digest(_to_json(value))


def generate_stream_name(args: Sequence[Any], fetch_options: Any = None) -> str:
    """Default stream key generator.

    Args:
        args: The positional arguments the producer will be called with.
        fetch_options: The fetch options of the call. Unused by the
            default algorithm, accepted so that the signature matches
            custom generators.

    Returns:
        A valid Name identifying the cache stream for *args*.

    Raises:
        UnsupportedKeyValueError: If *args* cannot be keyed.
    """
    args = list(args)
    if not args:
        return MAIN_STREAM
    if len(args) == 1:
        return scalar_to_name(args[0])
    return f"p{len(args)}_{digest(_to_json(args))}"


def stream_key_generator(generator: StreamKeyGenerator) -> Callable[[Callable], Callable]:
    """Decorator attaching a custom stream key generator to a producer.

    Example::

        def by_city(args, options):
            return "city_" + args[0].lower()

        @stream_key_generator(by_city)
        def weather(city):
            ...
    """

    def decorator(producer: Callable) -> Callable:
        return attach_stream_key_generator(producer, generator)

    return decorator


def attach_stream_key_generator(producer: Callable, generator: StreamKeyGenerator) -> Callable:
    """Attach *generator* to *producer* and return the producer."""
    if not callable(generator):
        raise TypeError(f"Stream key generator must be callable, got {generator!r}")
    setattr(producer, GENERATOR_ATTRIBUTE, generator)
    return producer


def get_stream_key_generator(producer: Callable) -> Optional[StreamKeyGenerator]:
    """Return the custom generator attached to *producer*, if any."""
    return getattr(producer, GENERATOR_ATTRIBUTE, None)
