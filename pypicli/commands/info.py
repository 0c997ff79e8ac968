"""The ``info`` command group: package details, versions, release files and dependencies."""

import re
from typing import Any, Dict, List, Optional

import click
from packaging.requirements import InvalidRequirement, Requirement
from rich.markup import escape

from ..core.errors import PyPIError
from ..core.validator import format_bytes
from ..utils.pypi import sort_versions
from .base import AppContext, DefaultCommandGroup, pass_app, positive_int


def _not_found(package: str, version: Optional[str] = None) -> str:
    suffix = f" version {version}" if version else ""
    return f'Package "{package}"{suffix} not found on PyPI'


def parse_dependency(dep: str) -> Dict[str, str]:
    """Splits a ``requires_dist`` entry into its parts.

    ``requests[socks] (>=2.0) ; python_version >= "3.7"`` gives the name
    ``requests``, the requirement ``>=2.0``, the extras ``socks`` and the
    marker ``python_version >= "3.7"``. Missing parts are empty strings.
    """
    try:
        req = Requirement(dep)
    except InvalidRequirement:
        return _parse_dependency_loosely(dep)
    return {
        "raw": dep,
        "name": req.name,
        "requirement": str(req.specifier) if req.specifier else (req.url or ""),
        "extras": ",".join(sorted(req.extras)),
        "marker": str(req.marker) if req.marker else "",
    }


def _parse_dependency_loosely(dep: str) -> Dict[str, str]:
    # For legacy entries packaging rejects, e.g. "foo (1.0)" without an operator.
    rest, _, marker = dep.partition(";")
    requirement = ""
    paren = re.search(r"\(([^)]+)\)", rest)
    if paren:
        requirement = paren.group(1).strip()
        rest = rest.replace(paren.group(0), "")
    extras = ""
    bracket = re.search(r"\[([^\]]+)\]", rest)
    if bracket:
        extras = bracket.group(1).strip()
        rest = rest.replace(bracket.group(0), "")
    op = re.search(r"([<>=!~]+.*)$", rest)
    if op and not requirement:
        requirement = op.group(1).strip()
        rest = rest[: op.start()]
    return {"raw": dep, "name": rest.strip(), "requirement": requirement, "extras": extras, "marker": marker.strip()}


def _release_summary(files: List[Dict[str, Any]]) -> Dict[str, Any]:
    first = files[0] if files else {}
    upload_time = first.get("upload_time") or ""
    return {
        "released": upload_time.split("T")[0] or None,
        "python": first.get("requires_python") or None,
        "yanked": any(f.get("yanked") for f in files),
    }


@click.group(name="info", cls=DefaultCommandGroup, default_command="show")
def info() -> None:
    """Get detailed package information.

    Runs ``info show`` when the first argument is not a subcommand, so
    ``pypi info requests`` and ``pypi info show requests`` are the same.
    """


@info.command(name="show")
@click.argument("package")
@click.argument("version", required=False)
@click.option("--json", "json_output", is_flag=True, help="Output as JSON.")
@pass_app
def show(app: AppContext, package: str, version: Optional[str], json_output: bool) -> None:
    """Show metadata for PACKAGE (latest version unless VERSION is given)."""
    out = app.output
    try:
        with out.spinner(f"Fetching {package}..."):
            result = app.client.get_package(package, version)
    except PyPIError as e:
        app.fail_api("Failed to get package info", e, _not_found(package, version) + '\nTip: Use "pypi search" to find packages')

    if json_output or out.is_json:
        out.json(result.data.get("info", {}))
        return
    out.print(out.format_package_info(result.data))


@info.command(name="versions")
@click.argument("package")
@click.option("-l", "--limit", type=int, callback=positive_int, help="Maximum number of versions to display.")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON.")
@pass_app
def versions(app: AppContext, package: str, limit: Optional[int], json_output: bool) -> None:
    """List every released version of PACKAGE, newest first."""
    out = app.output
    try:
        result = app.client.get_package(package)
    except PyPIError as e:
        app.fail_api("Failed to get versions", e, _not_found(package))

    latest = result.data.get("info", {}).get("version")
    releases = result.data.get("releases") or {}
    all_versions = sort_versions(releases.keys(), reverse=True)
    shown = all_versions[:limit] if limit else all_versions

    if json_output or out.is_json:
        out.json([
            dict(version=v, **_release_summary(releases.get(v) or []), is_latest=v == latest)
            for v in shown
        ])
        return

    table = out.table(["Version", "Released", "Python", "Yanked"], [])
    for v in shown:
        summary = _release_summary(releases.get(v) or [])
        label = f"[bold green]{escape(v)}[/bold green]" if v == latest else escape(v)
        table.add_row(
            label,
            summary["released"] or "N/A",
            escape(summary["python"] or "any"),
            "[red]Yes[/red]" if summary["yanked"] else "",
        )
    out.print(table)

    if len(all_versions) > len(shown):
        out.print(f"\nShowing {len(shown)} of {len(all_versions)} versions")
        out.print("Use --limit to show more versions")
    else:
        out.print(f"\nTotal versions: {len(all_versions)}")


@info.command(name="releases")
@click.argument("package")
@click.argument("version", required=False)
@click.option("--json", "json_output", is_flag=True, help="Output as JSON.")
@pass_app
def releases(app: AppContext, package: str, version: Optional[str], json_output: bool) -> None:
    """Show the release files of PACKAGE (latest version unless VERSION is given)."""
    out = app.output
    try:
        result = app.client.get_package(package, version)
    except PyPIError as e:
        app.fail_api("Failed to get releases", e, _not_found(package, version))

    target = version or result.data.get("info", {}).get("version")
    files = result.data.get("urls") or []
    if not files:
        out.warning(f"No release files found for {package} {target}")
        return

    if json_output or out.is_json:
        out.json([
            {
                "filename": f.get("filename"),
                "size": f.get("size"),
                "type": f.get("packagetype"),
                "upload_date": (f.get("upload_time") or "").split("T")[0],
                "python_version": f.get("python_version"),
                "requires_python": f.get("requires_python") or None,
                "url": f.get("url"),
                "yanked": bool(f.get("yanked")),
                "yanked_reason": f.get("yanked_reason"),
            }
            for f in files
        ])
        return

    out.header(f"Release files for {package} {target}")
    table = out.table(["Filename", "Size", "Type", "Upload Date", "Python"], [])
    for f in files:
        filename = escape(f.get("filename") or "")
        if f.get("yanked"):
            filename = f"[red]{filename} \\[YANKED][/red]"
            if f.get("yanked_reason"):
                filename += f"[dim] - {escape(f['yanked_reason'])}[/dim]"
        python_version = f.get("python_version")
        table.add_row(
            filename,
            format_bytes(f.get("size") or 0),
            escape(f.get("packagetype") or ""),
            (f.get("upload_time") or "").split("T")[0],
            "src" if python_version == "source" else escape(python_version or ""),
        )
    out.print(table)
    out.print(f"\nTotal files: {len(files)}")
    if files[0].get("requires_python"):
        out.print(f"Python required: {files[0]['requires_python']}")


@info.command(name="deps")
@click.argument("package")
@click.argument("version", required=False)
@click.option("--tree", is_flag=True, help="Display dependencies as a tree.")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON.")
@pass_app
def deps(app: AppContext, package: str, version: Optional[str], tree: bool, json_output: bool) -> None:
    """Show the dependencies declared by PACKAGE."""
    out = app.output
    try:
        result = app.client.get_package(package, version)
    except PyPIError as e:
        app.fail_api("Failed to get dependencies", e, _not_found(package, version))

    target = version or result.data.get("info", {}).get("version")
    requires = result.data.get("info", {}).get("requires_dist") or []
    parsed = [parse_dependency(dep) for dep in requires]

    if json_output or out.is_json:
        out.json(parsed)
        return
    if not parsed:
        out.print(f"\n{package} {target} has no dependencies")
        return

    out.header(f"Dependencies for {package} {target}")
    for index, dep in enumerate(parsed):
        is_last = index == len(parsed) - 1
        if tree:
            prefix = "└── " if is_last else "├── "
            marker_prefix = "    " if is_last else "│   "
            marker_label = "when: "
        else:
            prefix = "  • "
            marker_prefix = "    "
            marker_label = "→ "
        line = f"{prefix}[bold]{escape(dep['name'])}[/bold]"
        if dep["requirement"]:
            line += f"[dim] {escape(dep['requirement'])}[/dim]"
        if dep["extras"]:
            line += f"[yellow] \\[{escape(dep['extras'])}][/yellow]"
        out.print(line, markup=True)
        if dep["marker"]:
            out.print(f"{marker_prefix}[bright_black]{marker_label}{escape(dep['marker'])}[/bright_black]", markup=True)

    out.print(f"\nTotal dependencies: {len(parsed)}")
    conditional = sum(1 for dep in parsed if dep["marker"])
    if conditional:
        out.print(f"Conditional dependencies: {conditional}")
