"""Exception hierarchy for databridge.

All exceptions inherit from :class:`DatabridgeError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`databridge.exit_codes`.
The ``databridge`` commands catch ``DatabridgeError`` and exit with its code.

Library callers see two families. Fatal errors (configuration, naming,
unknown sources, unkeyable arguments, producer failures) are raised from the
call that triggered them. Cache store errors (:class:`CacheReadError`,
:class:`CacheWriteError`) are never raised out of a fetch: the bridge hands
them to its cache-error handler and carries on.

Subclass hierarchy::

    DatabridgeError                 (exit 1)
    +-- ConfigurationError          (exit 3)
    |   +-- InvalidNameError        (exit 2)
    +-- NameCollisionError          (exit 2)
    +-- UnknownSourceError          (exit 4)
    +-- NotFoundError               (exit 4)
    +-- UnsupportedKeyValueError    (exit 2)
    +-- ProducerInvocationError     (exit 5)
    +-- DataFetchError              (exit 5)
    +-- CacheError                  (exit 6)
        +-- CacheReadError          (exit 6)
        +-- CacheWriteError         (exit 6)
"""

from databridge.exit_codes import (
    EXIT_CACHE_ERROR,
    EXIT_CONFIG_ERROR,
    EXIT_FETCH_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
)


class DatabridgeError(Exception):
    """Base exception for all databridge errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`databridge.exit_codes`.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigurationError(DatabridgeError):
    """Raised when a bridge, datasource or config file carries invalid options."""

    exit_code = EXIT_CONFIG_ERROR


class InvalidNameError(ConfigurationError):
    """Raised when an identifier does not satisfy the Name grammar."""

    exit_code = EXIT_INVALID_USAGE


class NameCollisionError(DatabridgeError):
    """Raised when a datasource name is already taken or is reserved by the bridge."""

    exit_code = EXIT_INVALID_USAGE


class UnknownSourceError(DatabridgeError):
    """Raised when a fetch names a datasource that was never registered."""

    exit_code = EXIT_NOT_FOUND


class NotFoundError(DatabridgeError):
    """Raised when a producer path does not resolve within a datasource."""

    exit_code = EXIT_NOT_FOUND


class UnsupportedKeyValueError(DatabridgeError):
    """Raised when call arguments cannot be turned into a stream name.

    Pass an explicit ``stream_name`` fetch option or attach a custom
    generator to the producer to fetch with such arguments.
    """

    exit_code = EXIT_INVALID_USAGE


class ProducerInvocationError(DatabridgeError):
    """Raised when a producer function raises while being invoked."""

    exit_code = EXIT_FETCH_ERROR


class DataFetchError(DatabridgeError):
    """Raised by the bridge when the producer behind a fetch fails."""

    exit_code = EXIT_FETCH_ERROR


class CacheError(DatabridgeError):
    """Base class for cache store failures."""

    exit_code = EXIT_CACHE_ERROR


class CacheReadError(CacheError):
    """Raised when a cache file exists but cannot be read or parsed."""


class CacheWriteError(CacheError):
    """Raised when a freshly produced payload cannot be persisted."""
