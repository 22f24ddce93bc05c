"""Typer application and CLI entry point for extmgr.

This module wires together the top-level Typer application and registers the
built-in commands: extension commands (``list``, ``enable``, ``disable``,
``state``, ``configure``), package commands (``packages``, ``install``,
``update``, ``remove``, ``outdated``), ``history``, and the ``config`` group.

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers and invokes the Typer app. Unhandled exceptions are written to a crash log under
the data directory.

See Also:
    :mod:`extmgr.config`: Configuration resolution.
    :mod:`extmgr.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from extmgr import __version__
from extmgr.exit_codes import EXIT_CANCELLED, EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="extmgr",
    help="Enable, disable, and manage coding-agent package extensions.",
    no_args_is_help=True,
    add_completion=True,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"extmgr {__version__}")
        raise typer.Exit()


# ------------------------------------------------------------------ #
# Commands
# ------------------------------------------------------------------ #

from extmgr.commands.config import config_app  # noqa: E402
from extmgr.commands.extensions import (  # noqa: E402
    configure_command,
    disable_command,
    enable_command,
    list_command,
    state_command,
)
from extmgr.commands.history import history_command  # noqa: E402
from extmgr.commands.packages import (  # noqa: E402
    install_command,
    outdated_command,
    packages_command,
    remove_command,
    update_command,
)

app.command("list")(list_command)
app.command("enable")(enable_command)
app.command("disable")(disable_command)
app.command("state")(state_command)
app.command("configure")(configure_command)
app.command("packages")(packages_command)
app.command("install")(install_command)
app.command("update")(update_command)
app.command("remove")(remove_command)
app.command("outdated")(outdated_command)
app.command("history")(history_command)
app.add_typer(config_app, name="config", help="Configuration management.")


def _configure_logging(verbose: bool, quiet: bool, no_color: bool) -> None:
    """Route the ``extmgr`` library loggers to stderr.

    Warnings are shown by default, everything with ``--verbose``, and only
    errors with ``--quiet``.
    """
    logger = logging.getLogger("extmgr")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING

    handler = RichHandler(
        console=Console(stderr=True, no_color=no_color),
        show_time=False,
        show_path=verbose,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    tool: Optional[str] = typer.Option(
        None, "--tool", help="Package-management command to run (default: pi)."
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Plain text output."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Skip confirmations."
    ),
    no_input: bool = typer.Option(
        False, "--no-input", help="Disable interactive prompts."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~extmgr.output.OutputManager` and the
    ``extmgr`` logger from CLI flags, and stores shared options (``tool``,
    ``force``, ``no_input``) in the Typer context so that sub-commands can
    read them via ``ctx.obj``.

    Args:
        ctx: Typer invocation context.
        version: If ``True``, print the version string and exit.
        tool: Package-management command override (highest precedence).
        json_output: Force JSON output format.
        plain_output: Force plain-text output format.
        no_color: Disable all colour and Rich markup.
        quiet: Suppress non-essential diagnostic output.
        verbose: Enable debug-level diagnostic output.
        force: Skip interactive confirmations.
        no_input: Disable all interactive prompts.
    """
    from extmgr.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    output = OutputManager(
        format=fmt,
        no_color=no_color,
        quiet=quiet,
        verbose=verbose,
    )
    set_output(output)
    _configure_logging(verbose, quiet, no_color)

    ctx.ensure_object(dict)
    ctx.obj["tool"] = tool
    ctx.obj["force"] = force
    ctx.obj["no_input"] = no_input
    ctx.obj["verbose"] = verbose


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_CANCELLED)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path.

    Args:
        exc: The unhandled exception to log.

    Returns:
        Absolute path to the written crash log file.
    """
    from extmgr.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``extmgr`` console script.

    Performs the following sequence:

    1. Install signal handlers for clean Ctrl-C behaviour.
    2. Invoke the Typer application.

    Unhandled :class:`~extmgr.exceptions.ExtmgrError` instances
    cause a clean exit with the error's ``exit_code``. All other exceptions
    produce a crash log and a generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_CANCELLED)
    except Exception as exc:
        from extmgr.exceptions import ExtmgrError
        from extmgr.output import error

        if isinstance(exc, ExtmgrError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
