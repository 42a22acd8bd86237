"""CLI entry point for the relay server.

Usage:
    mm-relay [OPTIONS]          # run the server in the foreground
    mm-relay config             # print the effective configuration
    mm-relay config-path        # print the config file location
"""

from __future__ import annotations

import click
import yaml

from mattermost_relay import conventions


@click.group("mm-relay", invoke_without_command=True)
@click.option("--host", default=None, help="Bind host (default from relay.yaml)")
@click.option("--port", default=None, type=int, help="Bind port")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
@click.option(
    "--dev",
    is_flag=True,
    help="Dev mode: in-memory Mattermost with demo users (alice/bob/carol)",
)
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Override the configured log level",
)
@click.pass_context
def serve(
    ctx: click.Context,
    host: str | None,
    port: int | None,
    reload: bool,
    dev: bool,
    log_level: str | None,
) -> None:
    """Mattermost relay server.

    Run without a subcommand to serve in the foreground.
    """
    ctx.ensure_object(dict)
    if ctx.invoked_subcommand is None:
        _run_foreground(host, port, reload, dev, log_level)


@serve.command("config")
def show_config() -> None:
    """Print the effective configuration as YAML."""
    from mattermost_relay.config import load_config

    cfg = load_config()
    click.echo(yaml.dump(cfg.model_dump(), default_flow_style=False, sort_keys=False))


@serve.command("config-path")
def show_config_path() -> None:
    """Print the location of relay.yaml."""
    from mattermost_relay.config import config_path

    click.echo(str(config_path()))


def _run_foreground(
    host: str | None,
    port: int | None,
    reload: bool,
    dev: bool,
    log_level: str | None,
) -> None:
    """Run the server in the foreground."""
    import logging

    import uvicorn

    from mattermost_relay.config import load_config
    from mattermost_relay.server.app import create_server
    from mattermost_relay.server.services import init_services
    from mattermost_relay.server.startup import (
        load_env_file,
        log_startup_info,
        setup_logging,
    )

    # .env first so MM_RELAY_* overrides reach load_config()
    loaded_env = load_env_file()
    cfg = load_config()
    if log_level:
        cfg.logging.level = log_level.upper()

    setup_logging(level=cfg.logging.level, json_file=cfg.logging.json_file)
    logger = logging.getLogger("mattermost_relay.server")
    if loaded_env:
        logger.info(
            "Loaded %d var(s) from .env: %s", len(loaded_env), ", ".join(loaded_env)
        )

    host = host or cfg.server.host or conventions.SERVER_DEFAULT_HOST
    port = port or cfg.server.port or conventions.SERVER_DEFAULT_PORT

    services = init_services(config=cfg, dev_mode=dev)
    server = create_server(dev_mode=dev)

    if dev and services.fake_server is not None:
        names = ", ".join(
            a.user.username for a in services.fake_server.accounts.values()
        )
        click.echo(f"--- Dev mode: in-memory Mattermost with users {names} ---")

    log_startup_info(
        host=host,
        port=port,
        dev_mode=dev,
        upstream=cfg.mattermost.default_server_url,
        logger=logger,
    )

    click.echo(f"Starting Mattermost Relay on {host}:{port}")
    click.echo(f"  URL:       http://{host}:{port}")
    click.echo(f"  API docs:  http://{host}:{port}{conventions.API_PREFIX}/docs")

    uvicorn.run(
        server.app,
        host=host,
        port=port,
        reload=reload,
        log_level=cfg.logging.level.lower(),
    )
