"""The ``stats`` command group: download statistics from pypistats.org.

Responses are memoized in the invocation's `CacheManager` for an hour unless
``--no-cache`` is given.
"""

import calendar
import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple

import click
from rich.markup import escape

from ..core.errors import PyPIError
from ..utils.cache_manager import ONE_HOUR
from ..utils.chart import (
    calculate_percentage_change,
    format_date_short,
    format_number,
    parse_percentage,
    render_line_chart,
    render_progress_bar,
)
from .base import AppContext, DefaultCommandGroup, pass_app, positive_int

logger = logging.getLogger(__name__)

PERIODS = ("recent", "last-day", "last-week", "last-month")

CATEGORIES: Dict[str, List[str]] = {
    "web": ["django", "flask", "fastapi", "tornado", "pyramid"],
    "data": ["numpy", "pandas", "scipy", "matplotlib", "scikit-learn"],
    "ml": ["tensorflow", "torch", "keras", "transformers", "opencv-python"],
    "devops": ["ansible", "fabric", "paramiko", "docker", "kubernetes"],
    "testing": ["pytest", "unittest2", "nose2", "tox", "coverage"],
    "http": ["requests", "httpx", "aiohttp", "urllib3", "certifi"],
    "cli": ["click", "typer", "argparse", "rich", "colorama"],
    "async": ["asyncio", "trio", "anyio", "gevent", "eventlet"],
    "utils": ["python-dateutil", "pytz", "six", "setuptools", "wheel"],
}
POPULAR_PACKAGES = [name for names in CATEGORIES.values() for name in names]

NOT_FOUND_TIP = "Tip: Check package name spelling"


def daily_downloads(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Keeps the ``without_mirrors`` rows of an ``overall`` response, oldest first."""
    points = [
        {"date": row["date"], "downloads": row.get("downloads") or 0}
        for row in rows
        if row.get("category") == "without_mirrors" and row.get("date")
    ]
    return sorted(points, key=lambda point: point["date"])


def aggregate_shares(rows: List[Dict[str, Any]], top: int = 5) -> List[Tuple[str, float]]:
    """Sums downloads per category and returns the `top` shares in percent."""
    totals: Dict[str, int] = {}
    for row in rows:
        totals[row["category"]] = totals.get(row["category"], 0) + (row.get("downloads") or 0)
    grand_total = sum(totals.values())
    if not grand_total:
        return []
    ranked = sorted(((c, d) for c, d in totals.items() if d > 0), key=lambda item: item[1], reverse=True)
    return [(category, downloads / grand_total * 100) for category, downloads in ranked[:top]]


def period_start(period: str, today: Optional[date] = None) -> date:
    """Returns the first day included in `period`."""
    today = today or date.today()
    if period == "last-day":
        return today - timedelta(days=1)
    if period == "last-week":
        return today - timedelta(days=7)
    if period == "last-month":
        year, month = (today.year, today.month - 1) if today.month > 1 else (today.year - 1, 12)
        day = min(today.day, calendar.monthrange(year, month)[1])
        return date(year, month, day)
    return today - timedelta(days=30)


def _growth_style(change: str) -> str:
    if change.startswith("+"):
        return "green"
    if change.startswith("-"):
        return "red"
    return "yellow"


def _print_shares(app: AppContext, title: str, shares: List[Tuple[str, float]], prefix: str = "") -> None:
    app.output.header(title)
    for category, percentage in shares:
        label = escape(f"{prefix}{category}".ljust(13))
        bar = render_progress_bar(percentage, 20)
        filled = bar.rstrip("░")
        app.output.print(
            f"  {label} {percentage:>3.0f}%  [cyan]{filled}[/cyan][dim]{bar[len(filled):]}[/dim]", markup=True
        )


@click.group(name="stats", cls=DefaultCommandGroup, default_command="overview")
def stats() -> None:
    """Show download statistics from pypistats.org.

    Runs ``stats overview`` when the first argument is not a subcommand, so
    ``pypi stats requests`` shows the overview for requests.
    """


@stats.command(name="overview")
@click.argument("package")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON.")
@click.option("--no-cache", is_flag=True, help="Skip cache and fetch fresh data.")
@pass_app
def overview(app: AppContext, package: str, json_output: bool, no_cache: bool) -> None:
    """Show 30-day totals and Python version and OS breakdowns for PACKAGE."""
    out = app.output
    cache_key = f"stats:{package}"
    cached = None if no_cache else app.cache.get(cache_key)

    if cached is None:
        try:
            with out.spinner(f"Fetching statistics for {package}..."):
                overall = app.client.get_overall_stats(package).data.get("data", [])
                python = app.client.get_python_major_stats(package).data.get("data", [])
                system = app.client.get_system_stats(package).data.get("data", [])
        except PyPIError as e:
            app.fail_api("Failed to get statistics", e, f'Package "{package}" not found\n{NOT_FOUND_TIP}')
        cached = {"recent": daily_downloads(overall)[-30:], "python": python, "system": system}
        app.cache.set(cache_key, cached, ONE_HOUR)
    else:
        logger.debug(f"Using cached statistics for {package}")

    recent = cached["recent"]
    total = sum(point["downloads"] for point in recent)
    daily_average = round(total / len(recent)) if recent else 0
    peak = max(recent, key=lambda point: point["downloads"]) if recent else None

    if json_output or out.is_json:
        out.json({
            "package": package,
            "totalDownloads": total,
            "dailyAverage": daily_average,
            "peakDay": peak,
            "pythonVersions": cached["python"],
            "systems": cached["system"],
        })
        return

    out.print(f"[bold cyan]Download Statistics: {escape(package)}[/bold cyan]", markup=True)
    out.print(f"[dim]{'═' * 50}[/dim]", markup=True)
    out.print()
    out.print(f"[bold]Total Downloads (last 30 days):[/bold] [yellow]{total:,}[/yellow]", markup=True)
    out.print(f"[bold]Daily Average:[/bold] [yellow]{daily_average:,}[/yellow]", markup=True)
    if peak:
        out.print(f"[bold]Peak Day:[/bold] [yellow]{peak['date']} ({peak['downloads']:,})[/yellow]", markup=True)
    out.print()

    python_shares = aggregate_shares(cached["python"])
    if python_shares:
        _print_shares(app, "Python Versions", python_shares, prefix="Python ")
        out.print()
    system_shares = aggregate_shares(cached["system"])
    if system_shares:
        _print_shares(app, "Systems", system_shares)


@stats.command(name="downloads")
@click.argument("package")
@click.option("-p", "--period", type=click.Choice(PERIODS), default="recent", show_default=True, help="Time period.")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON.")
@click.option("--no-cache", is_flag=True, help="Skip cache and fetch fresh data.")
@pass_app
def downloads(app: AppContext, package: str, period: str, json_output: bool, no_cache: bool) -> None:
    """Show daily downloads of PACKAGE over a period, with a trend chart."""
    out = app.output
    cache_key = f"downloads:{package}:{period}"
    data = None if no_cache else app.cache.get(cache_key)

    if data is None:
        try:
            with out.spinner(f"Fetching downloads for {package}..."):
                rows = app.client.get_overall_stats(package).data.get("data", [])
        except PyPIError as e:
            app.fail_api("Failed to get download stats", e, f'Package "{package}" not found\n{NOT_FOUND_TIP}')
        start = period_start(period).isoformat()
        data = [point for point in daily_downloads(rows) if point["date"] >= start]
        app.cache.set(cache_key, data, ONE_HOUR)

    if not data:
        out.warning("No download data available for this package")
        return

    if json_output or out.is_json:
        out.json({"package": package, "period": period, "data": data})
        return

    period_label = period.replace("-", " ").title()
    out.print(f"[bold cyan]Download Trends: {escape(package)} ({period_label})[/bold cyan]", markup=True)
    out.print(f"[dim]{'═' * 50}[/dim]", markup=True)
    out.print()
    out.print(f"[bold]Total Downloads:[/bold] [yellow]{sum(p['downloads'] for p in data):,}[/yellow]", markup=True)
    out.print()

    shown = data[-15:]
    table = out.table(["Date", "Downloads", "Change"], [])
    for index, point in enumerate(shown):
        change = calculate_percentage_change(point["downloads"], shown[index - 1]["downloads"]) if index else "-"
        style = _growth_style(change) if index else "dim"
        table.add_row(format_date_short(point["date"]), f"{point['downloads']:,}", f"[{style}]{change}[/{style}]")
    out.print(table)
    out.print()

    if len(data) > 1:
        out.print("[bold]Trend Chart:[/bold]", markup=True)
        out.print()
        chart_points = [(format_date_short(p["date"])[:6], p["downloads"]) for p in data[-20:]]
        out.print(render_line_chart(chart_points, 8))
        out.print()

        growth = calculate_percentage_change(data[-1]["downloads"], data[-2]["downloads"])
        style = _growth_style(growth)
        out.print(f"[bold]Latest Trend:[/bold] [{style}]{growth}[/{style}] vs previous period", markup=True)


def fetch_trending(app: AppContext, category: Optional[str] = None) -> List[Dict[str, Any]]:
    """Ranks popular packages by their latest day-over-day download growth.

    Packages whose statistics cannot be fetched are left out.
    """
    names = CATEGORIES.get(category.lower(), POPULAR_PACKAGES) if category else POPULAR_PACKAGES
    entries = []
    for name in names:
        try:
            rows = app.client.get_overall_stats(name).data.get("data", [])
        except PyPIError as e:
            logger.debug(f"Skipping {name}: {e.message}")
            continue
        points = daily_downloads(rows)
        if len(points) < 2:
            continue
        latest, previous = points[-1], points[-2]
        entries.append({
            "name": name,
            "downloads": latest["downloads"],
            "growth": calculate_percentage_change(latest["downloads"], previous["downloads"]),
        })

    entries.sort(key=lambda entry: parse_percentage(entry["growth"]), reverse=True)
    return [dict(rank=index + 1, **entry) for index, entry in enumerate(entries)]


@stats.command(name="trending")
@click.option("-l", "--limit", type=int, default=10, show_default=True, callback=positive_int, help="Number of packages to show.")
@click.option("-c", "--category", type=click.Choice(sorted(CATEGORIES), case_sensitive=False), help="Only rank packages of one category.")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON.")
@click.option("--no-cache", is_flag=True, help="Skip cache and fetch fresh data.")
@pass_app
def trending(app: AppContext, limit: int, category: Optional[str], json_output: bool, no_cache: bool) -> None:
    """Show popular packages with the highest download growth."""
    out = app.output
    cache_key = f"trending:{category or 'all'}"
    packages = None if no_cache else app.cache.get(cache_key)

    if packages is None:
        with out.spinner("Fetching trending packages..."):
            packages = fetch_trending(app, category)
        app.cache.set(cache_key, packages, ONE_HOUR)

    if not packages:
        out.warning("No trending packages found")
        return

    shown = packages[:limit]
    if json_output or out.is_json:
        out.json({"trending": shown})
        return

    out.print("[bold cyan]Trending Python Packages[/bold cyan]", markup=True)
    out.print(f"[dim]{'═' * 70}[/dim]", markup=True)
    out.print()
    table = out.table(["#", "Package", "Downloads", "Growth"], [])
    for entry in shown:
        style = _growth_style(entry["growth"])
        table.add_row(str(entry["rank"]), entry["name"], format_number(entry["downloads"]), f"[{style}]{entry['growth']}[/{style}]")
    out.print(table)
    out.print()
    out.print("[dim]Note: Growth is calculated vs previous period[/dim]", markup=True)
    out.print("[dim]Data refreshed hourly from pypistats.org[/dim]", markup=True)
