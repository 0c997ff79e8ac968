"""Terminal output for pypi-cli.

Every command writes through an `OutputContext`, created once by the root
command from the ``--output``, ``--no-color`` and ``--verbose`` options and the
configuration. It knows the selected format (``pretty``, ``table`` or
``json``) and whether colour is allowed, so nothing else has to.
"""

import json
import sys
from typing import Any, Dict, Iterable, List, Optional, Sequence

import click
from halo import Halo
from rich.console import Console, Group, RenderableType
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from ..core.config import OUTPUT_FORMATS
from .pypi import get_package_info

RULE_WIDTH = 50


class OutputContext:
    """Formats and prints command output.

    Attributes:
        format (str): One of ``pretty``, ``table`` or ``json``.
        color (bool): Whether ANSI colours may be used.
        verbose (bool): Whether `debug` messages are shown.
        console (Console): Console for regular output (stdout).
        err_console (Console): Console for errors and warnings (stderr).
    """

    def __init__(self, format: str = "pretty", color: bool = True, verbose: bool = False) -> None:
        self.format = format if format in OUTPUT_FORMATS else "pretty"
        self.color = color
        self.verbose = verbose
        color_system = "auto" if color else None
        self.console = Console(color_system=color_system, no_color=not color, highlight=False, soft_wrap=True, emoji=False)
        self.err_console = Console(
            stderr=True, color_system=color_system, no_color=not color, highlight=False, soft_wrap=True, emoji=False
        )

    @property
    def is_json(self) -> bool:
        return self.format == "json"

    # Status messages

    def success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {escape(message)}")

    def error(self, message: str) -> None:
        self.err_console.print(f"[red]✗[/red] {escape(message)}")

    def warning(self, message: str) -> None:
        self.err_console.print(f"[yellow]⚠[/yellow] {escape(message)}")

    def info(self, message: str) -> None:
        self.console.print(f"[blue]ℹ[/blue] {escape(message)}")

    def debug(self, message: str) -> None:
        """Prints a dimmed message, only in verbose mode."""
        if self.verbose:
            self.console.print(f"[dim]→ {escape(message)}[/dim]")

    def header(self, title: str) -> None:
        """Prints a section title underlined to its own width."""
        self.console.print()
        self.console.print(f"[bold cyan]{escape(title)}[/bold cyan]")
        self.console.print(f"[bold cyan]{'─' * len(title)}[/bold cyan]")

    def print(self, renderable: Any = "", markup: bool = False) -> None:
        """Prints text or a rich renderable. Strings are printed literally unless `markup` is set."""
        self.console.print(renderable, markup=markup)

    def json(self, data: Any) -> None:
        """Prints data as indented JSON, with no styling applied."""
        click.echo(json.dumps(data, indent=2, default=str))

    def spinner(self, text: str) -> Halo:
        """Returns a spinner for a long running step.

        The spinner is disabled in JSON mode, without colour and when stdout
        is not a terminal, so it never mixes with machine readable output.
        """
        enabled = not self.is_json and self.color and sys.stdout.isatty()
        return Halo(text=text, spinner="dots", enabled=enabled)

    # Generic formatting

    def table(self, headers: Sequence[str], rows: Iterable[Sequence[Any]], title: Optional[str] = None) -> Table:
        """Builds a rich table with cyan headers."""
        table = Table(title=title, header_style="bold cyan" if self.color else "bold")
        for header in headers:
            table.add_column(header)
        for row in rows:
            table.add_row(*[escape(str(cell)) for cell in row])
        return table

    def format_output(self, data: Any) -> RenderableType:
        """Renders data in the selected format.

        JSON gives indented JSON text, ``table`` gives a table for a list of
        dictionaries (or a single "Value" column for a list of scalars), and
        ``pretty`` gives aligned ``key: value`` lines.
        """
        if self.is_json:
            return Text(json.dumps(data, indent=2, default=str))
        if self.format == "table":
            return self._format_table(data)
        return self._format_pretty(data)

    def _format_table(self, data: Any) -> RenderableType:
        if not isinstance(data, list) or not data:
            return Text("No data to display")
        first = data[0]
        if not isinstance(first, dict):
            return self.table(["Value"], [[item] for item in data])
        keys = list(first.keys())
        rows = [[item.get(key) if item.get(key) is not None else "" for key in keys] for item in data]
        return self.table(keys, rows)

    def _format_pretty(self, data: Any) -> RenderableType:
        if isinstance(data, list):
            parts = []
            for index, item in enumerate(data):
                text = Text(f"[{index}] ", style="dim")
                text.append_text(self._format_pretty_object(item) if isinstance(item, dict) else Text(str(item)))
                parts.append(text)
            return Group(*parts)
        if isinstance(data, dict):
            return self._format_pretty_object(data)
        return Text(str(data))

    def _format_pretty_object(self, obj: Dict[str, Any]) -> Text:
        if not obj:
            return Text("{}")
        width = max(len(key) for key in obj)
        text = Text()
        for i, (key, value) in enumerate(obj.items()):
            if i:
                text.append("\n")
            text.append(key.ljust(width), style="cyan")
            text.append(": ")
            text.append_text(_format_value(value))
        return text

    # Package renderers

    def format_package_info(self, data: Dict[str, Any]) -> RenderableType:
        """Renders the ``info`` block of a PyPI JSON document."""
        info = get_package_info(data)
        lines: List[RenderableType] = [
            Text(f"{info.get('name')} {info.get('version')}", style="bold cyan"),
            Text("─" * RULE_WIDTH, style="dim"),
        ]

        def field(label: str, value: str, style: str = "") -> None:
            line = Text()
            line.append(f"{label}: ", style="bold")
            line.append(str(value), style=style)
            lines.append(line)

        if info.get("summary"):
            field("Summary", info["summary"])
        if info.get("author"):
            email = f" <{info['author_email']}>" if info.get("author_email") else ""
            field("Author", f"{info['author']}{email}")
        if info.get("license"):
            field("License", _first_line(info["license"]))
        if info.get("home_page"):
            field("Homepage", info["home_page"], "underline")
        if info.get("requires_python"):
            field("Python", info["requires_python"])

        requires = info.get("requires_dist") or []
        if requires:
            lines.append(Text(""))
            lines.append(Text("Dependencies:", style="bold"))
            lines.append(self.format_dependencies(requires[:10]))
            if len(requires) > 10:
                lines.append(Text(f"  ... and {len(requires) - 10} more", style="dim"))

        project_urls = info.get("project_urls") or {}
        if project_urls:
            lines.append(Text(""))
            lines.append(Text("Project URLs:", style="bold"))
            for key, url in project_urls.items():
                line = Text(f"  {key}: ")
                line.append(str(url), style="underline")
                lines.append(line)

        classifiers = info.get("classifiers") or []
        if classifiers:
            lines.append(Text(""))
            lines.append(Text("Classifiers:", style="bold"))
            lines.extend(Text(f"  {c}", style="dim") for c in classifiers[:5])
            if len(classifiers) > 5:
                lines.append(Text(f"  ... and {len(classifiers) - 5} more", style="dim"))

        return Group(*lines)

    def format_search_results(self, results: List[Dict[str, Any]]) -> RenderableType:
        if not results:
            return Text.from_markup("[blue]ℹ[/blue] No packages found")
        blocks = []
        for i, result in enumerate(results):
            text = Text(str(result.get("name")), style="bold cyan")
            text.append(f" v{result.get('version')}", style="dim")
            if result.get("summary"):
                text.append(f"\n  {result['summary']}")
            if result.get("author"):
                text.append(f"\n  by {result['author']}", style="dim")
            if i < len(results) - 1:
                text.append("\n")
            blocks.append(text)
        return Group(*blocks)

    def format_dependencies(self, deps: List[str]) -> RenderableType:
        if not deps:
            return Text("No dependencies", style="dim")
        return Group(*[Text(f"  • {dep}") for dep in deps])


def _format_value(value: Any) -> Text:
    if value is None:
        return Text("null", style="dim")
    if isinstance(value, bool):
        return Text("true", style="green") if value else Text("false", style="red")
    if isinstance(value, (int, float)):
        return Text(str(value), style="yellow")
    if isinstance(value, list):
        text = Text("[")
        for i, item in enumerate(value):
            if i:
                text.append(", ")
            text.append_text(_format_value(item))
        text.append("]")
        return text
    if isinstance(value, dict):
        return Text(json.dumps(value, indent=2, default=str))
    return Text(str(value))


def _first_line(text: str) -> str:
    """Long license texts are shortened to their first line."""
    first = text.strip().splitlines()[0] if text.strip() else ""
    return first if len(first) <= 80 else first[:77] + "..."
