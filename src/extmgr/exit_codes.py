"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~extmgr.exceptions.ExtmgrError` subclass. Shell
wrappers can inspect the exit code to tell a corrupt settings file apart from
a failing package command without parsing stderr.

Example::

    $ extmgr disable npm:demo extensions/main.ts
    $ echo $?
    3   # EXIT_INVALID_SETTINGS -- settings.json could not be parsed
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_INVALID_SETTINGS = 3
"""A settings document is unparsable or has the wrong shape."""

EXIT_COMMAND_FAILED = 4
"""The external package-management command exited non-zero or timed out."""

EXIT_PARTIAL_FAILURE = 5
"""A multi-scope removal succeeded for some scopes and failed for others."""

EXIT_CANCELLED = 130
"""The operation was cancelled by the user."""
