"""The ``search`` command."""

import click

from ..core.errors import PyPIError
from .base import AppContext, pass_app, positive_int


@click.command(name="search")
@click.argument("query")
@click.option("-l", "--limit", type=int, default=20, show_default=True, callback=positive_int, help="Maximum number of results to display.")
@click.option("--json", "json_output", is_flag=True, help="Output results as JSON.")
@pass_app
def search(app: AppContext, query: str, limit: int, json_output: bool) -> None:
    """Search PyPI for packages.

    PyPI has no public search API, so QUERY is looked up as an exact
    package name.
    """
    out = app.output
    try:
        with out.spinner(f"Searching for '{query}'..."):
            result = app.client.search_packages(query, limit)
    except PyPIError as e:
        app.fail(f"Search failed: {e.message}")

    packages = result.data
    if json_output or out.is_json:
        out.json(packages)
        return
    if out.format == "table":
        rows = [{"name": p.get("name"), "version": p.get("version"), "summary": p.get("summary") or ""} for p in packages]
        out.print(out.format_output(rows))
    else:
        out.print(out.format_search_results(packages))

    if packages:
        out.print(f"\nFound {len(packages)} package{'' if len(packages) == 1 else 's'}")
    else:
        out.print("\nTip: Try a different search query or check the package name spelling")
