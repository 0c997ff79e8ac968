"""The ``token`` command group: manage the API token saved in the user config.

Tokens are created and revoked on pypi.org; these commands show the steps,
optionally open the right page, and keep the local config in sync.
"""

import os

import click

from ..core.config import TOKEN_URL, mask_api_token, user_config_path
from ..core.errors import ConfigError
from ..utils.validators import validate_token
from .base import AliasedGroup, AppContext, pass_app

ACCOUNT_URL = "https://pypi.org/manage/account/"
RULE = "═" * 39


def _open_page(app: AppContext, url: str, message: str) -> None:
    if click.launch(url) == 0:
        app.output.info(message)
    else:
        app.output.error("Failed to open browser. Please visit:")
        app.output.print(f"[bold]{url}[/bold]", markup=True)


@click.group(name="token", cls=AliasedGroup)
def token() -> None:
    """Manage PyPI API tokens."""


@token.command(name="create")
@click.option("--open", "open_browser", is_flag=True, help="Open the PyPI token creation page in a browser.")
@click.option("--name", default=None, help="Optional name for the token.")
@pass_app
def create(app: AppContext, open_browser: bool, name: str) -> None:
    """Show how to create a token on PyPI and save it to the config."""
    out = app.output
    out.print()
    out.print("[bold]Create PyPI API Token[/bold]", markup=True)
    out.print(RULE)
    out.print()
    out.info("To create an API token:")
    out.print()
    out.print(f"1. Go to {TOKEN_URL}")
    out.print('2. Enter a token name (e.g., "pypi-cli")')
    out.print("3. Select scope (entire account or specific project)")
    out.print('4. Click "Create token"')
    out.print("5. Copy the token (starts with pypi-)")
    out.print()

    if open_browser:
        _open_page(app, TOKEN_URL, "Opening browser to PyPI token creation page...")
        out.print()

    if not click.confirm("Would you like to save your token to config?", default=False):
        out.info("Token not saved. You can set it later with:")
        out.print("[bold]  pypi config set apiToken <your-token>[/bold]", markup=True)
        return

    value = click.prompt("Paste your token here (hidden)", default="", show_default=False, hide_input=True).strip()
    if not value:
        out.error("No token provided.")
        return
    if not validate_token(value):
        out.warning('Token should start with "pypi-". The token may be invalid.')

    try:
        app.config.set("apiToken", value)
        if name:
            app.config.set("tokenName", name)
        path = app.config.save()
    except ConfigError as e:
        app.fail(f"Error: {e.message}")

    out.success(f"Token saved to {path}")
    if name:
        out.info(f"Token name: {name}")
    out.info("You can now use pypi commands that require authentication.")


@token.command(name="list")
@pass_app
def list_tokens(app: AppContext) -> None:
    """List the token saved in the config."""
    out = app.output
    saved = app.config.file_config.get("apiToken")

    out.print()
    out.print("[bold]Saved PyPI Tokens[/bold]", markup=True)
    out.print(RULE)
    out.print()

    if not saved:
        out.info("No tokens saved in configuration.")
        out.print()
        out.info("To save a token, run:")
        out.print("[bold]  pypi token create[/bold]", markup=True)
        return

    out.success("Active Token")
    out.print(f"  Name:  {app.config.file_config.get('tokenName') or 'Default Token'}")
    out.print(f"  Token: {mask_api_token(saved)}")
    out.print()
    out.print(f"Location: {app.config.path or user_config_path()}")

    env_token = os.getenv("PYPI_API_TOKEN")
    if env_token:
        out.print()
        out.warning("Environment variable PYPI_API_TOKEN is set")
        out.info("This will override the saved token.")
        out.print(f"   Token: {mask_api_token(env_token)}")


@token.command(name="revoke")
@click.argument("token_name", required=False)
@click.option("--open", "open_browser", is_flag=True, help="Open the PyPI account page in a browser.")
@click.option("--force", is_flag=True, help="Skip the confirmation prompt.")
@pass_app
def revoke(app: AppContext, token_name: str, open_browser: bool, force: bool) -> None:
    """Show how to revoke a token on PyPI and remove it from the config."""
    out = app.output
    saved = app.config.file_config.get("apiToken")

    if not saved and not force:
        out.info("No token saved in configuration.")
        out.print()
        out.info("If you have a token on PyPI, you can revoke it at:")
        out.print(f"[bold]  {ACCOUNT_URL}[/bold]", markup=True)
        return

    name = token_name or app.config.file_config.get("tokenName")
    out.print()
    out.print("[bold]Revoke PyPI API Token[/bold]", markup=True)
    out.print(RULE)
    out.print()
    out.info("To revoke your API token:")
    out.print()
    out.print(f"1. Go to {ACCOUNT_URL}")
    out.print('2. Scroll to "API tokens" section')
    out.print(f'3. Find the token named "{name}"' if name else "3. Find your token in the list")
    out.print('4. Click "Remove" or "Revoke"')
    out.print("5. Confirm the revocation")
    out.print()
    out.warning("This action cannot be undone.")
    out.print()

    if open_browser:
        _open_page(app, ACCOUNT_URL, "Opening browser to PyPI account management...")
        out.print()

    if not saved:
        out.info("No token to remove from config.")
        return

    if not force and not click.confirm("Remove token from local config?", default=False):
        out.info("Token kept in local config.")
        out.info("Remember to revoke it on PyPI to disable it completely.")
        return

    try:
        app.config.unset("apiToken")
        app.config.unset("tokenName")
        path = app.config.save()
    except ConfigError as e:
        app.fail(f"Error: {e.message}")

    out.success(f"Token removed from {path}")
    out.info("Make sure to also revoke the token on PyPI to disable it completely.")
