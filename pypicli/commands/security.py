"""The ``security`` command group: vulnerability audits and hash verification."""

import hashlib
import logging
from typing import Any, Dict, List, Optional

import click
from rich.markup import escape

from ..core.errors import PyPIError
from ..utils.pypi import sort_versions
from .base import AliasedGroup, AppContext, pass_app

logger = logging.getLogger(__name__)

SEVERITY_LEVELS = {"low": 1, "medium": 2, "moderate": 2, "high": 3, "critical": 4}
SEVERITY_STYLES = {"critical": "bold red", "high": "red", "medium": "yellow", "moderate": "yellow", "low": "green"}
ALGORITHMS = ("sha256", "md5")


def severity_level(severity: str) -> int:
    """Ranks a severity label; unknown labels rank 0."""
    return SEVERITY_LEVELS.get(severity.lower(), 0)


def vulnerability_severity(vuln: Dict[str, Any]) -> str:
    """Returns the severity of an OSV record.

    The database-specific label wins. Otherwise the CVSS v3 score is bucketed
    (9.0 and up is Critical, 7.0 High, 4.0 Medium, anything lower Low).
    """
    label = (vuln.get("database_specific") or {}).get("severity")
    if label:
        return label
    for entry in vuln.get("severity") or []:
        if entry.get("type") != "CVSS_V3":
            continue
        try:
            score = float(entry.get("score"))
        except (TypeError, ValueError):
            # OSV usually ships the CVSS vector string rather than a number
            logger.debug(f"Unscored CVSS entry for {vuln.get('id')}: {entry.get('score')}")
            return "Unknown"
        if score >= 9.0:
            return "Critical"
        if score >= 7.0:
            return "High"
        if score >= 4.0:
            return "Medium"
        return "Low"
    return "Unknown"


def fixed_version(vuln: Dict[str, Any]) -> Optional[str]:
    """Returns the first ``fixed`` event found in the affected ranges."""
    for affected in vuln.get("affected") or []:
        for version_range in affected.get("ranges") or []:
            for event in version_range.get("events") or []:
                if event.get("fixed"):
                    return event["fixed"]
    return None


def advisory_url(vuln_id: str) -> str:
    if vuln_id.startswith("CVE-"):
        return f"https://nvd.nist.gov/vuln/detail/{vuln_id}"
    if vuln_id.startswith("GHSA-"):
        return f"https://github.com/advisories/{vuln_id}"
    return f"https://osv.dev/vulnerability/{vuln_id}"


def filter_by_severity(vulns: List[Dict[str, Any]], minimum: Optional[str]) -> List[Dict[str, Any]]:
    if not minimum:
        return vulns
    threshold = severity_level(minimum)
    return [vuln for vuln in vulns if severity_level(vulnerability_severity(vuln)) >= threshold]


def compute_digest(content: bytes, algorithm: str = "sha256") -> str:
    return hashlib.new(algorithm, content).hexdigest()


@click.group(name="security", cls=AliasedGroup)
def security() -> None:
    """Security and vulnerability checks."""


@security.command(name="audit")
@click.argument("package")
@click.argument("version", required=False)
@click.option(
    "--severity",
    type=click.Choice(["low", "medium", "high", "critical"], case_sensitive=False),
    help="Only show vulnerabilities at or above this severity.",
)
@click.option("--json", "json_output", is_flag=True, help="Output as JSON.")
@pass_app
def audit(app: AppContext, package: str, version: Optional[str], severity: Optional[str], json_output: bool) -> None:
    """Check PACKAGE for known vulnerabilities using the OSV database."""
    out = app.output
    as_json = json_output or out.is_json

    try:
        with out.spinner(f"Querying OSV for {package}..."):
            vulns = app.client.get_vulnerabilities(package, version).data
    except PyPIError as e:
        app.fail(f"Error: Failed to query OSV API: {e.message}")

    vulns = filter_by_severity(vulns, severity)
    if as_json:
        out.json(vulns)
        return

    out.header(f"Security Audit: {package}")
    out.info(f"Checking version: {version}" if version else "Checking all versions")
    out.print()

    if not vulns:
        if severity:
            out.success(f"No vulnerabilities with severity >= {severity} found.")
        else:
            out.success("No known vulnerabilities found.")
        return

    noun = "vulnerability" if len(vulns) == 1 else "vulnerabilities"
    out.warning(f"Found {len(vulns)} {noun}:")
    out.print()

    fixes = []
    for vuln in vulns:
        label = vulnerability_severity(vuln)
        style = SEVERITY_STYLES.get(label.lower(), "dim")
        vuln_id = vuln.get("id", "unknown")
        out.print(f"[{style}]{escape(label)}[/{style}] [bold]{escape(vuln_id)}[/bold]", markup=True)
        if vuln.get("summary"):
            out.print(f"    [dim]{escape(vuln['summary'])}[/dim]", markup=True)
        fix = fixed_version(vuln)
        if fix:
            fixes.append(fix)
            out.print(f"    [blue]Fixed in: {escape(fix)}[/blue]", markup=True)
        out.print(f"    [dim]{advisory_url(vuln_id)}[/dim]", markup=True)
        out.print()

    if fixes:
        latest_fix = sort_versions(set(fixes))[-1]
        out.print(f"[bold]Recommendation:[/bold] [blue]Upgrade to {escape(package)}>={escape(latest_fix)}[/blue]", markup=True)


@security.command(name="verify")
@click.argument("package")
@click.argument("version", required=False)
@click.option("--algorithm", type=click.Choice(ALGORITHMS), default="sha256", show_default=True, help="Hash algorithm.")
@pass_app
def verify(app: AppContext, package: str, version: Optional[str], algorithm: str) -> None:
    """Download the release files of PACKAGE and check their published hashes.

    VERSION defaults to the latest release. Exits with status 1 if any file
    is missing a hash, cannot be downloaded, or does not match.
    """
    out = app.output
    out.header(f"Verifying: {package}")

    try:
        data = app.client.get_package(package, version).data
    except PyPIError as e:
        app.fail_api("Failed to fetch package info", e, f'Package "{package}" not found')

    target = version or (data.get("info") or {}).get("version")
    if not target:
        app.fail("Error: Could not determine package version")
    files = data.get("urls") or []
    out.info(f"Version: {target}")
    if not files:
        app.fail(f"Error: No release files found for version {target}")
    out.info(f"Found {len(files)} file(s) to verify")
    out.print()

    verified = 0
    for release_file in files:
        filename = release_file.get("filename", "unknown")
        out.print(f"[bold]Checking {escape(filename)}...[/bold]", markup=True)
        expected = (release_file.get("digests") or {}).get(algorithm)
        if not expected:
            out.print(f"  [red]✗ No {algorithm} hash available[/red]", markup=True)
            continue
        out.print(f"  [dim]Expected {algorithm.upper()}: {expected[:16]}...[/dim]", markup=True)

        out.debug(f"Download URL: {release_file['url']}")
        try:
            with out.spinner(f"Downloading {filename}..."):
                content = app.client.download_file(release_file["url"])
        except PyPIError as e:
            out.print(f"  [red]✗ Failed to verify: {escape(e.message)}[/red]", markup=True)
            out.print()
            continue

        computed = compute_digest(content, algorithm)
        out.print(f"  [dim]Computed {algorithm.upper()}: {computed[:16]}...[/dim]", markup=True)
        if computed == expected:
            out.print("  [green]✓ Hash verified[/green]", markup=True)
            verified += 1
        else:
            logger.warning(f"{algorithm} mismatch for {filename}: expected {expected}, got {computed}")
            out.print("  [red]✗ Hash mismatch![/red]", markup=True)
        out.print()

    if verified == len(files):
        out.success(f"All {verified} file(s) verified successfully")
    else:
        app.fail("Verification failed for some files")
