"""The ``config`` command group: inspect and edit the pypi-cli config file."""

import json
from typing import Optional

import click

from ..core.config import INTERNAL_KEYS, TOKEN_URL, VALID_KEYS, mask_api_token, user_config_path
from ..core.errors import ConfigError
from .base import AliasedGroup, AppContext, pass_app


def _shown(key: str, value) -> str:
    if key == "apiToken" and value:
        return mask_api_token(str(value))
    return str(value)


@click.group(name="config", cls=AliasedGroup)
def config() -> None:
    """Manage PyPI CLI configuration."""


@config.command(name="init")
@pass_app
def init(app: AppContext) -> None:
    """Initialize configuration with interactive setup."""
    out = app.output
    out.info("PyPI CLI Configuration Setup")
    out.print()
    out.print("PyPI API Token (optional, press Enter to skip):")
    out.print(f"Get your token from: {TOKEN_URL}")
    out.print()

    api_token = click.prompt("API Token", default="", show_default=False, hide_input=True).strip()
    try:
        path = app.config.init(api_token or None)
    except ConfigError as e:
        app.fail(f"Failed to initialize configuration: {e.message}")

    out.print()
    out.success(f"Configuration saved to {path}")
    if not api_token:
        out.print()
        out.info("You can set your API token later with:")
        out.print("  pypi config set apiToken <your-token>")
        out.print("Or set the PYPI_API_TOKEN environment variable")


@config.command(name="get")
@click.argument("key", required=False)
@pass_app
def get(app: AppContext, key: Optional[str]) -> None:
    """Show the current configuration, or a single KEY."""
    out = app.output
    if key:
        if key not in VALID_KEYS and key not in INTERNAL_KEYS:
            app.fail(f"Invalid configuration key: {key}", f"Valid keys: {', '.join(VALID_KEYS)}")
        value = app.config.get(key)
        if value is None:
            app.fail(f"{key} is not set")
        out.print(_shown(key, value))
        return

    out.success(f"Configuration from {app.config.path or user_config_path()}")
    out.print()
    shown = app.config.display()
    if not shown:
        out.info('No configuration found. Run "pypi config init" to create one.')
        return
    for name, value in shown.items():
        out.print(f"{name}: {json.dumps(value)}")


@config.command(name="set")
@click.argument("key")
@click.argument("value")
@pass_app
def set_value(app: AppContext, key: str, value: str) -> None:
    """Set a configuration value.

    Valid keys are apiToken, repository, outputFormat, colorOutput, timeout
    and retries.
    """
    try:
        app.config.set(key, value)
    except ConfigError as e:
        app.fail(e.message, f"Valid keys: {', '.join(VALID_KEYS)}")

    try:
        app.config.save()
    except ConfigError as e:
        app.fail(f"Failed to update configuration: {e.message}")

    app.output.success(f"Configuration updated: {key} = {_shown(key, app.config.get(key))}")
