"""
SimpleScrum CLI

Click-based command-line interface for SimpleScrum.
Every command opens a local session, applies its change through the engine
and waits for persistence before exiting.
"""

import asyncio
import dataclasses
import json
import sys
from datetime import date
from typing import Any, Callable, Optional, TypeVar

import click

from simplescrum.errors import ConfigError, SimpleScrumError, ValidationError
from simplescrum.logging import (
    EXIT_CONFIG_ERROR,
    EXIT_RUNTIME_ERROR,
    EXIT_VALIDATION_ERROR,
    get_logger,
    init_cli_logging,
    json_logging_from_env,
)

logger = get_logger(__name__)

T = TypeVar("T")


def get_service_context():
    """Create a ServiceContext for CLI operations."""
    from simplescrum.config import load_config
    from simplescrum.services.base import ServiceContext

    config = load_config()
    return ServiceContext(config=config)


def exit_code_for(exc: SimpleScrumError) -> int:
    if isinstance(exc, ValidationError):
        return EXIT_VALIDATION_ERROR
    if isinstance(exc, ConfigError):
        return EXIT_CONFIG_ERROR
    return EXIT_RUNTIME_ERROR


async def _run_local(action: Callable[[Any], T]) -> T:
    from simplescrum.db.records import open_backend
    from simplescrum.services.engine import ScrumEngine

    context = get_service_context()
    engine = ScrumEngine(context, open_backend(context.config))
    await engine.start_local()
    result = action(engine)
    await engine.flush()
    return result


def run_engine(action: Callable[[Any], T]) -> T:
    """
    Run ``action(engine)`` against the local owner's data and persist the result.

    SimpleScrum errors are reported on stderr and mapped to exit codes.
    """
    try:
        return asyncio.run(_run_local(action))
    except SimpleScrumError as e:
        logger.debug("cli_command_failed", extra={"category": e.category, "error": str(e)})
        click.echo(f"✗ Error: {e}", err=True)
        sys.exit(exit_code_for(e))


def _json_default(value: Any) -> Any:
    if isinstance(value, date):
        return value.isoformat()
    if dataclasses.is_dataclass(value):
        return dataclasses.asdict(value)
    return str(value)


def wants_json(ctx: Optional[click.Context]) -> bool:
    return bool(ctx and ctx.obj and ctx.obj.get("JSON"))


def echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, default=_json_default))


# =============================================================================
# Main CLI Group
# =============================================================================

@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
def cli(ctx, verbose, json_output):
    """SimpleScrum - lightweight agile project tracking."""
    ctx.ensure_object(dict)
    ctx.obj["VERBOSE"] = verbose
    ctx.obj["JSON"] = json_output

    if verbose:
        init_cli_logging(level="DEBUG", json_output=json_logging_from_env())


from simplescrum.cli.backlog import backlog  # noqa: E402
from simplescrum.cli.projects import project  # noqa: E402
from simplescrum.cli.sprints import sprint, task  # noqa: E402

cli.add_command(project)
cli.add_command(backlog)
cli.add_command(sprint)
cli.add_command(task)


@cli.command()
def version():
    """Show version information."""
    from simplescrum import __version__

    click.echo(f"SimpleScrum v{__version__}")


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address")
@click.option("--port", default=8000, type=int, show_default=True, help="Bind port")
@click.option("--reload", is_flag=True, help="Enable auto-reload (dev only)")
def serve(host, port, reload):
    """Run the HTTP API server."""
    import uvicorn

    from simplescrum.logging import setup_logging

    setup_logging(json_output=json_logging_from_env())
    logger.info("api_server_starting", extra={"host": host, "port": port})
    uvicorn.run(
        "simplescrum.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_config=None,
    )


# =============================================================================
# Entry Point
# =============================================================================

def main():
    """CLI entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
