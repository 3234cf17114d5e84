"""Click-based CLI entrypoint for git-sandbox.

Commands:
    serve   run the HTTP adapter
    tools   list available tools
    call    run one tool in-process and print its JSON result
"""

from __future__ import annotations

import json
import sys
from typing import Any, Optional

import click

from git_sandbox import __version__
from git_sandbox.config import ServerConfig, load_config
from git_sandbox.errors import ConfigurationError, RejectedRequestError
from git_sandbox.logging_config import setup_logging
from git_sandbox.tools import ToolContext, registry


def _load(config_path: Optional[str], **overrides: Any) -> ServerConfig:
    try:
        return load_config(config_path).with_overrides(**overrides)
    except ConfigurationError as exc:
        raise click.ClickException(str(exc)) from exc


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="YAML configuration file (default: $GIT_SANDBOX_CONFIG).",
)


# ---------------------------------------------------------------------------
# Main CLI Group
# ---------------------------------------------------------------------------


@click.group(invoke_without_command=True)
@click.version_option(__version__, prog_name="git-sandbox")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """git-sandbox - sandboxed git operations for remote agents."""
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@config_option
@click.option("--host", default=None, help="Bind address (overrides config).")
@click.option("--port", type=int, default=None, help="TCP port (overrides config).")
def serve(config_path: Optional[str], host: Optional[str], port: Optional[int]) -> None:
    """Run the HTTP server."""
    from git_sandbox.server import create_app, run_server

    config = _load(config_path, host=host, port=port)
    setup_logging(config.log_level, config.log_format)
    app = create_app(ToolContext.from_config(config))
    run_server(app, config.host, config.port)


@cli.command("tools")
def list_tools() -> None:
    """List available tools."""
    width = max(len(name) for name in registry.names())
    for entry in registry.describe():
        click.echo(f"{entry['name']:<{width}}  {entry['description']}")


@cli.command()
@config_option
@click.argument("tool")
@click.option("--params", "params_json", default="{}", help="Tool parameters as a JSON object.")
@click.pass_context
def call(ctx: click.Context, config_path: Optional[str], tool: str, params_json: str) -> None:
    """Run TOOL once and print the JSON result.

    Exits 0 on success and 1 on any failure or rejection.
    """
    try:
        params = json.loads(params_json)
    except json.JSONDecodeError as exc:
        raise click.BadParameter(f"not valid JSON: {exc}", param_hint="--params")

    config = _load(config_path)
    setup_logging(config.log_level, config.log_format)
    context = ToolContext.from_config(config)

    try:
        result = registry.call(tool, params, context)
    except RejectedRequestError as exc:
        _echo_json({"success": False, "error": exc.record.to_dict()})
        ctx.exit(1)

    _echo_json(result.to_dict())
    ctx.exit(0 if result.success else 1)


# ---------------------------------------------------------------------------
# Entry Point
# ---------------------------------------------------------------------------


def main() -> None:
    """Entry point for the CLI.

    Uses ``standalone_mode=False`` so exit codes are managed here.  Usage
    errors (bad flags, missing required args) are normalised to exit code 1.
    """
    try:
        result = cli(standalone_mode=False)
    except click.ClickException as exc:
        click.echo(f"Error: {exc.format_message()}", err=True)
        sys.exit(1)
    except click.Abort:
        click.echo("Aborted!", err=True)
        sys.exit(1)
    if isinstance(result, int):
        sys.exit(result)


if __name__ == "__main__":
    main()
