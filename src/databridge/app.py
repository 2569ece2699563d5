"""Typer application and console-script entry point for databridge.

The ``databridge`` command inspects a bridge's JSON cache without running any
producers:

* ``databridge cache list`` -- every cached record with its age and whether
  it is still within the TTL;
* ``databridge cache show`` -- the payload (or whole envelope) of one record;
* ``databridge key`` -- the stream name the default generator derives from a
  JSON array of producer arguments.

The cache directory and TTL come from ``--cache-dir`` / ``--ttl``, the
``DATABRIDGE_*`` environment variables or ``./databridge.json``; see
:func:`databridge.config.resolve_bridge_config`.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Optional

import typer

from databridge import __version__
from databridge.commands.cache import cache_app
from databridge.exceptions import DatabridgeError
from databridge.exit_codes import EXIT_INVALID_USAGE


app = typer.Typer(
    name="databridge",
    help="Inspect the JSON cache of a databridge.",
    no_args_is_help=True,
    add_completion=True,
    rich_markup_mode="rich",
)

app.add_typer(cache_app, name="cache", help="List and show cached records.")


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"databridge {__version__}")
        raise typer.Exit()


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
    cache_dir: Optional[str] = typer.Option(
        None, "--cache-dir", "-d", help="Cache directory (overrides env and databridge.json)."
    ),
    ttl: Optional[int] = typer.Option(
        None, "--ttl", help="TTL in minutes used to judge freshness."
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Log cache activity at debug level."
    ),
) -> None:
    """Install the output manager and stash shared options in ``ctx.obj``."""
    from databridge.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet))

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            stream=sys.stderr,
            format="%(levelname)s %(name)s: %(message)s",
        )

    ctx.ensure_object(dict)
    ctx.obj["cache_dir"] = cache_dir
    ctx.obj["ttl"] = ttl


@app.command("key")
def key_command(
    args_json: str = typer.Argument(
        "[]", help="JSON array of the arguments the producer is called with."
    ),
) -> None:
    """Print the stream name derived for a list of producer arguments.

    Example::

        databridge key '[1980]'        # n_1980
        databridge key '[1, "x"]'      # p2_<md5>
    """
    from databridge.keys import generate_stream_name
    from databridge.output import error, print_data

    try:
        args = json.loads(args_json)
    except ValueError as exc:
        error(f"Arguments must be a JSON array: {exc}")
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None
    if not isinstance(args, list):
        error("Arguments must be a JSON array")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    try:
        print_data(generate_stream_name(args))
    except DatabridgeError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def main() -> None:
    """Console-script entry point."""
    app()


if __name__ == "__main__":
    main()
