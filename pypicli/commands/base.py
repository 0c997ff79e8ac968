"""Shared pieces of the command layer.

`AliasedGroup` adds aliases and unique-prefix matching to click groups,
`DefaultCommandGroup` additionally falls back to a default subcommand, and
`AppContext` carries the objects the root command builds once (config,
output context and API client) down to every subcommand.
"""

import logging
import sys
from dataclasses import dataclass, field
from typing import Dict, List, NoReturn, Optional

import click

from ..core.config import Config
from ..core.errors import APIError, PyPIError
from ..utils.cache_manager import CacheManager
from ..utils.output import OutputContext
from ..utils.pypi import PyPIClient

logger = logging.getLogger(__name__)


class AliasedGroup(click.Group):
    """A click group that accepts short aliases and unique prefixes.

    The root ``pypi`` group registers ``s``, ``i``, ``p`` and ``sec`` for
    ``search``, ``info``, ``publish`` and ``security``. Names are matched
    case-insensitively, so ``pypi SEC audit`` works too, and ``pypi sta``
    reaches ``stats`` because no other command starts with it.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._aliases: Dict[str, str] = {}

    def add_alias(self, alias: str, command_name: str) -> None:
        """Registers `alias` as another name for `command_name`."""
        self._aliases[alias.lower()] = command_name.lower()

    def resolve_name(self, ctx: click.Context, cmd_name: str, allow_prefix: bool = True) -> Optional[str]:
        """Maps what the user typed to a registered subcommand name.

        Args:
            ctx: The click context.
            cmd_name: The subcommand as typed, e.g. ``sec`` or ``ver``.
            allow_prefix: Whether a unique prefix of a name counts as a match.

        Returns:
            The subcommand name, or None if nothing matches.
        """
        cmd_name = cmd_name.lower()
        if cmd_name in self.commands:
            return cmd_name
        if cmd_name in self._aliases:
            return self._aliases[cmd_name]
        if not allow_prefix:
            return None
        matches = [name for name in self.list_commands(ctx) if name.startswith(cmd_name)]
        if len(matches) > 1:
            ctx.fail(f"Ambiguous command: '{cmd_name}'. Matches: {', '.join(sorted(matches))}")
        return matches[0] if matches else None

    def get_command(self, ctx: click.Context, cmd_name: str) -> Optional[click.Command]:
        name = self.resolve_name(ctx, cmd_name)
        return super().get_command(ctx, name) if name else None

    def resolves(self, ctx: click.Context, cmd_name: str) -> bool:
        """Returns True if `cmd_name` names a subcommand exactly or by alias."""
        return self.resolve_name(ctx, cmd_name, allow_prefix=False) is not None


class DefaultCommandGroup(AliasedGroup):
    """An aliased group that runs `default_command` when no subcommand is named.

    ``pypi info requests`` runs ``pypi info show requests`` while
    ``pypi info versions requests`` still reaches the ``versions``
    subcommand. Prefix matching is not used to decide, since a package name
    may well be a prefix of a subcommand name.
    """

    def __init__(self, *args, default_command: Optional[str] = None, default_if_no_args: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self.default_command = default_command
        self.default_if_no_args = default_if_no_args

    def parse_args(self, ctx: click.Context, args: List[str]) -> List[str]:
        if self.default_command:
            if not args:
                if self.default_if_no_args:
                    args = [self.default_command]
            elif args[0] not in ctx.help_option_names and not self.resolves(ctx, args[0]):
                args = [self.default_command] + list(args)
        return super().parse_args(ctx, args)


@dataclass
class AppContext:
    """Objects shared by every command of one invocation.

    Attributes:
        config (Config): The loaded configuration.
        output (OutputContext): Where and how to print.
        client (PyPIClient): The registry API client.
        api_token (Optional[str]): The ``--api-token`` value, if given.
        cache (CacheManager): Memoizes statistics lookups for this process.
    """

    config: Config
    output: OutputContext
    client: PyPIClient
    api_token: Optional[str] = None
    cache: CacheManager = field(default_factory=CacheManager)

    def get_api_token(self, override: Optional[str] = None) -> Optional[str]:
        """Resolves the token: command option, then ``--api-token``, then env and config."""
        return self.config.get_api_token(override or self.api_token)

    def fail(self, message: str, *hints: str) -> NoReturn:
        """Prints an error with optional hint lines and exits with status 1."""
        self.output.error(message)
        for hint in hints:
            self.output.print(hint)
        sys.exit(1)

    def fail_api(self, action: str, err: PyPIError, not_found: Optional[str] = None) -> NoReturn:
        """Reports a failed API call the same way in every command.

        Args:
            action (str): What was being attempted, e.g. "Failed to get versions".
            err (PyPIError): The error raised by the client.
            not_found (Optional[str]): An extra line printed on HTTP 404.
        """
        logger.debug(f"{action}: {err!r}")
        hints = []
        if not_found and isinstance(err, APIError) and err.status_code == 404:
            hints.append("")
            hints.append(not_found)
        self.fail(f"{action}: {err.message}", *hints)


pass_app = click.make_pass_decorator(AppContext)


def positive_int(ctx: click.Context, param: click.Parameter, value: Optional[int]) -> Optional[int]:
    """A click callback rejecting zero and negative numbers."""
    if value is not None and value < 1:
        raise click.BadParameter("must be a positive number")
    return value
