"""Exception hierarchy for extmgr.

All exceptions inherit from :class:`ExtmgrError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`extmgr.exit_codes`.
The top-level error handler in :func:`extmgr.app.main` catches
``ExtmgrError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    ExtmgrError (exit 1)
    +-- InvalidUsageError       (exit 2)
    +-- InvalidSettingsError    (exit 3)
    +-- ExternalCommandError    (exit 4)
    +-- DownloadError           (exit 4)
    +-- ConfigError             (exit 1)
    +-- VisibilityTimeoutError  (soft, never raised by the coordinator)

Two conditions are deliberately *not* exceptions: a manifest token that
escapes the package root is dropped during discovery, and a glob the matcher rejects
is reported as :attr:`~extmgr.paths.MatchResult.INVALID`.
"""

from __future__ import annotations

from typing import Optional, Sequence

from extmgr.exit_codes import (
    EXIT_COMMAND_FAILED,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_SETTINGS,
    EXIT_INVALID_USAGE,
)


class ExtmgrError(Exception):
    """Base exception for all extmgr errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(ExtmgrError):
    """Raised for invalid CLI arguments or missing required parameters."""

    exit_code = EXIT_INVALID_USAGE


class InvalidSettingsError(ExtmgrError):
    """Raised by a strict settings read when the document is unparsable or not an object.

    Mutating paths read strictly so that a broken file is reported instead of
    being overwritten with an empty document.

    Args:
        path: The settings file that failed to load.
        reason: The parse or shape error.
    """

    exit_code = EXIT_INVALID_SETTINGS

    def __init__(self, path: object, reason: str) -> None:
        super().__init__(f"Invalid settings in {path}: {reason}")
        self.path = path
        self.reason = reason


class ExternalCommandError(ExtmgrError):
    """Raised when the package-management tool exits non-zero or times out.

    The captured output is kept on the exception so callers can show it
    verbatim. The mutating command is never retried automatically.

    Args:
        action: Short label of the attempted operation (``"Install"``, ...).
        argv: The argument vector that was executed.
        code: Process exit code (synthetic for timeouts and missing binaries).
        stdout: Captured standard output.
        stderr: Captured standard error.
    """

    exit_code = EXIT_COMMAND_FAILED

    def __init__(
        self,
        action: str,
        argv: Sequence[str],
        code: int,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        detail = stderr.strip() or stdout.strip() or f"exit {code}"
        super().__init__(f"{action} failed: {detail}")
        self.action = action
        self.argv = list(argv)
        self.code = code
        self.stdout = stdout
        self.stderr = stderr


class ConfigError(ExtmgrError):
    """Raised for configuration problems (invalid config JSON, unknown keys)."""

    exit_code = EXIT_GENERIC_FAILURE


class VisibilityTimeoutError(ExtmgrError):
    """Polling exhausted its attempt budget without observing the expected state.

    This is a soft condition: the coordinator attaches an instance to the
    operation outcome and logs it as a warning instead of raising it.

    Args:
        message: Description of what was being waited for.
        attempts: Number of polling attempts that were made.
    """

    def __init__(self, message: str, attempts: Optional[int] = None) -> None:
        super().__init__(message)
        self.attempts = attempts


class DownloadError(ExtmgrError):
    """Raised when a single-file extension cannot be downloaded or saved."""

    exit_code = EXIT_COMMAND_FAILED
