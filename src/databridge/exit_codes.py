"""Numeric process exit codes for the ``databridge`` command line.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~databridge.exceptions.DatabridgeError` subclass.
Shell wrappers can inspect the exit code to tell a misconfigured cache
directory apart from a missing cache record without parsing stderr.

Example::

    $ databridge cache show weather.daily --stream main
    $ echo $?
    4   # EXIT_NOT_FOUND -- no record for that stream
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or an invalid name."""

EXIT_CONFIG_ERROR = 3
"""The bridge or a datasource was configured with invalid options."""

EXIT_NOT_FOUND = 4
"""A datasource, producer path or cache record does not exist."""

EXIT_FETCH_ERROR = 5
"""A producer raised while its data was being fetched."""

EXIT_CACHE_ERROR = 6
"""The cache store could not be read or written."""
