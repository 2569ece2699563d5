"""Sub-commands of the ``databridge`` command line.

* :mod:`~databridge.commands.cache` -- list and show cached records.
"""
