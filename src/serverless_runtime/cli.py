"""Runtime bootstrap CLI.

Reads the platform environment, resolves the handler and runs the
invocation loop until a fatal failure. This is the only place that decides
the process exit status.

Usage:
    serverless-runtime                                  # Everything from env
    serverless-runtime --handler app.handler            # Override _HANDLER
    serverless-runtime --register-module app.handlers   # Import handler registrations
    serverless-runtime --max-invocations 1              # Process one event and exit
"""

from __future__ import annotations

import asyncio
import importlib
import logging
import os
import sys

import click

from .config import ENV_HANDLER, ENV_RUNTIME_API, ENV_TASK_ROOT, RuntimeConfig
from .errors import ConfigurationError
from .runtime import LambdaRuntime

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def _configure_logging(level: str) -> None:
    """Log to stderr; stdout belongs to the user's code."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@click.command()
@click.option("--handler", help="Handler specifier <module>.<function> (overrides _HANDLER)")
@click.option(
    "--task-root",
    type=click.Path(file_okay=False),
    help="Directory containing the function code (overrides LAMBDA_TASK_ROOT)",
)
@click.option("--runtime-api", help="Control-plane address host:port (overrides AWS_LAMBDA_RUNTIME_API)")
@click.option(
    "--register-module",
    "register_modules",
    multiple=True,
    help="Module to import before start-up so it can register handlers",
)
@click.option(
    "--max-invocations",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after this many invocations (default: run forever)",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
)
def main(
    handler: str | None,
    task_root: str | None,
    runtime_api: str | None,
    register_modules: tuple[str, ...],
    max_invocations: int | None,
    log_level: str,
) -> None:
    """Custom runtime for a serverless function."""
    _configure_logging(log_level)

    environ = dict(os.environ)
    if handler:
        environ[ENV_HANDLER] = handler
    if runtime_api:
        environ[ENV_RUNTIME_API] = runtime_api
    if task_root:
        environ[ENV_TASK_ROOT] = task_root

    try:
        config = RuntimeConfig.from_env(environ)
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if register_modules and str(config.task_root) not in sys.path:
        sys.path.insert(0, str(config.task_root))
    for module_name in register_modules:
        try:
            importlib.import_module(module_name)
        except Exception as e:
            click.echo(f"Error: failed to import {module_name}: {e}", err=True)
            sys.exit(1)

    runtime = LambdaRuntime(config)
    status = asyncio.run(runtime.run(max_invocations=max_invocations))
    if status.exit_code:
        click.echo(f"Runtime terminated: {status.value}", err=True)
    sys.exit(status.exit_code)


if __name__ == "__main__":
    main()
