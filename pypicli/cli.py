"""Defines the command-line interface for pypi-cli.

This module uses the `click` library to build the root ``pypi`` command. It
sets up logging, loads the configuration once, and hands the resulting
`AppContext` to every subcommand: searching and inspecting packages,
download statistics, publishing, token and config management, and security
checks.
"""
import io
import logging
import sys
from typing import Optional

import click

from . import __version__
from .commands import config, info, publish, search, security, stats, token
from .commands.base import AliasedGroup, AppContext
from .core.config import OUTPUT_FORMATS, Config
from .utils.output import OutputContext
from .utils.pypi import PyPIClient

logger = logging.getLogger(__name__)


@click.group(cls=AliasedGroup, context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, package_name="pypi-cli")
@click.option("--api-token", default=None, help="PyPI API token (overrides config and PYPI_API_TOKEN).")
@click.option("--output", "output_format", type=click.Choice(OUTPUT_FORMATS), default=None, help="Output format.")
@click.option("--verbose", is_flag=True, help="Enable verbose output.")
@click.option("--debug", is_flag=True, help="Enable debug logging.")
@click.option("--no-color", is_flag=True, help="Disable colored output.")
@click.pass_context
def main(ctx: click.Context, api_token: Optional[str], output_format: Optional[str], verbose: bool, debug: bool, no_color: bool) -> None:
    """A command-line client for the Python Package Index.

    Search and inspect packages, follow download statistics, audit releases
    for known vulnerabilities, and validate and publish your own
    distributions.
    """
    if sys.platform == "win32" and isinstance(sys.stdout, io.TextIOWrapper):
        sys.stdout.reconfigure(encoding="utf-8")
    log_level = logging.DEBUG if debug else logging.INFO if verbose else logging.WARNING
    logging.basicConfig(level=log_level, format="%(asctime)s - %(levelname)s - %(message)s")
    logger.debug("Debug mode enabled.")

    config_obj = Config()
    logger.debug(f"Loaded {config_obj}")
    output = OutputContext(
        format=output_format or config_obj.get("outputFormat", "pretty"),
        color=not no_color and bool(config_obj.get("colorOutput", True)),
        verbose=verbose or debug,
    )
    client = PyPIClient(timeout=config_obj.get("timeout"), max_retries=config_obj.get("retries"))
    ctx.obj = AppContext(config=config_obj, output=output, client=client, api_token=api_token)


main.add_command(search)
main.add_command(info)
main.add_command(publish)
main.add_command(stats)
main.add_command(token)
main.add_command(config)
main.add_command(security)

main.add_alias("s", "search")
main.add_alias("i", "info")
main.add_alias("p", "publish")
main.add_alias("sec", "security")

if __name__ == "__main__":
    main()
