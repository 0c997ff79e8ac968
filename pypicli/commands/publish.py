"""The ``publish`` command group: validate and upload distribution files."""

import os
import sys
from pathlib import Path
from typing import List, Optional

import click
from rich.markup import escape

from ..core.errors import AuthenticationError, ConflictError, ValidationFailedError
from ..core.metadata import extract_metadata, get_distribution_files
from ..core.upload import FileState, Publisher, Uploader, resolve_repository
from ..core.validator import format_bytes, validate_distribution
from .base import AppContext, DefaultCommandGroup, pass_app

NO_TOKEN_HINTS = (
    "Set PYPI_API_TOKEN environment variable or use --token option",
    "Or configure with: pypi config set apiToken <your-token>",
)
EXPECTED_FILES = "Expected files: .whl, .tar.gz, .egg, or .zip"


def _require_token(app: AppContext, token: Optional[str]) -> str:
    resolved = app.get_api_token(token)
    if not resolved:
        app.fail("No API token provided", *NO_TOKEN_HINTS)
    return resolved


def _print_problems(app: AppContext, errors: List[str], warnings: List[str], indent: str = "  ") -> None:
    for err in errors:
        app.output.print(f"{indent}[red]✗ {escape(err)}[/red]", markup=True)
    for warning in warnings:
        app.output.print(f"{indent}[yellow]⚠ {escape(warning)}[/yellow]", markup=True)


@click.group(name="publish", cls=DefaultCommandGroup, default_command="all", default_if_no_args=True)
def publish() -> None:
    """Validate and upload distribution files to PyPI.

    Runs ``publish all`` when the first argument is not a subcommand, so
    ``pypi publish`` uploads everything in ./dist.
    """


@publish.command(name="all")
@click.argument("path", default="./dist", type=click.Path())
@click.option("-r", "--repository", default=None, help="Repository name (pypi, testpypi) or upload URL.")
@click.option("-t", "--token", default=None, help="PyPI API token (or use PYPI_API_TOKEN env var).")
@click.option("-y", "--yes", is_flag=True, help="Skip the confirmation prompt.")
@click.option("--dry-run", is_flag=True, help="Validate and show what would be uploaded without uploading.")
@pass_app
def publish_all(app: AppContext, path: str, repository: Optional[str], token: Optional[str], yes: bool, dry_run: bool) -> None:
    """Publish every distribution in PATH (default: ./dist).

    All files are validated before anything is uploaded. Uploads run one at
    a time; a file that already exists is reported and skipped, while an
    authentication failure stops the remaining uploads.
    """
    out = app.output
    out.header("Publishing Package to PyPI")

    api_token = None if dry_run else _require_token(app, token)
    repo = resolve_repository(repository or app.config.get("repository", "pypi"))
    out.info(f"Repository: {repo.name}")
    out.debug(f"Upload URL: {repo.url}")
    out.print()

    files = get_distribution_files(path)
    if not files:
        out.error(f"No distribution files found in {path}")
        out.error(EXPECTED_FILES)
        app.fail("Build your package first with: python -m build")
    out.success(f"Found {len(files)} distribution file(s)")

    out.header("Validation")
    publisher = Publisher(Uploader(repo.url), api_token or "")
    jobs = publisher.validate_all(files)
    for job in jobs:
        if job.state is FileState.VALIDATION_FAILED:
            out.error(f"Validation failed for {job.filename}")
        elif job.validation.warnings:
            out.warning(f"Validated {job.filename} (with warnings)")
        else:
            out.success(f"Validated {job.filename}")
        _print_problems(app, job.validation.errors, job.validation.warnings)
    out.print()

    if not Publisher.ok(jobs):
        app.fail("Validation failed. Fix errors before publishing.")

    out.header("Distribution Summary")
    for job in jobs:
        out.print(f"  [cyan]•[/cyan] {escape(job.filename)} [bright_black]({format_bytes(job.size)})[/bright_black]", markup=True)
    out.print()
    out.print(f"Total files: {len(jobs)}")
    out.print(f"Total size: {format_bytes(sum(job.size for job in jobs))}")
    out.print()

    if dry_run:
        out.info("Dry run mode - no files will be uploaded")
        out.success("Validation complete. Ready to publish.")
        return

    if not yes and not click.confirm(f"Upload to {repo.name}?", default=False):
        out.info("Upload cancelled")
        return

    out.header("Uploading")
    spinner = None
    try:
        for job in publisher.upload_all(jobs):
            if job.state is FileState.UPLOADING:
                spinner = out.spinner(f"Uploading {job.filename}...")
                spinner.start()
                continue
            spinner.stop()
            spinner = None
            if job.state is FileState.UPLOADED:
                out.success(f"Uploaded {job.filename}")
            else:
                out.error(f"Failed to upload {job.filename}")
                out.print(f"  [red]Error: {escape(job.result.message or 'Unknown error')}[/red]", markup=True)
    except ValidationFailedError as e:
        app.fail(e.message)
    finally:
        if spinner is not None:
            spinner.stop()
    out.print()

    summary = publisher.summary(jobs)
    if summary.aborted:
        out.error("Authentication failed. Stopping upload.")
    if summary.success:
        out.success("Published successfully!")
        url = summary.uploaded[0].result.url
        if url:
            out.info(f"View at: {url}")
    elif summary.uploaded or summary.failed:
        skipped = f", {len(summary.skipped)} skipped" if summary.skipped else ""
        out.warning(
            f"Upload completed with errors: {len(summary.uploaded)} succeeded, {len(summary.failed)} failed{skipped}"
        )
        sys.exit(1)
    else:
        app.fail("No files were uploaded")


@publish.command(name="check")
@click.argument("path", default="./dist", type=click.Path())
@click.option("-v", "--verbose", "detailed", is_flag=True, help="Show detailed validation information.")
@pass_app
def check(app: AppContext, path: str, detailed: bool) -> None:
    """Validate distribution files before upload.

    PATH may be a single file or a directory to search (default: ./dist).
    Exits with status 1 if any file has errors.
    """
    out = app.output
    out.header("Checking Distribution Files")

    if os.path.isfile(path):
        files = [path]
    else:
        files = get_distribution_files(path)
        if not files:
            out.error(f"No distribution files found in {path}")
            app.fail(EXPECTED_FILES)
        out.info(f"Found {len(files)} distribution file(s)")
        out.print()

    total_errors = 0
    total_warnings = 0
    for file_path in files:
        out.print(f"[bold]Checking {escape(Path(file_path).name)}...[/bold]", markup=True)
        result = validate_distribution(file_path)
        metadata = extract_metadata(file_path)

        if result.valid:
            out.success("Valid distribution format")
        else:
            out.error("Invalid distribution format")

        if result.errors:
            out.print("  [red]Errors:[/red]", markup=True)
            _print_problems(app, result.errors, [], indent="    ")
        if result.warnings:
            out.print("  [yellow]Warnings:[/yellow]", markup=True)
            _print_problems(app, [], result.warnings, indent="    ")
        total_errors += len(result.errors)
        total_warnings += len(result.warnings)

        if (detailed or result.valid) and not metadata.is_empty():
            out.print("  Metadata:")
            if metadata.name:
                out.print(f"    [green]✓ Name: {escape(metadata.name)}[/green]", markup=True)
            if metadata.version:
                out.print(f"    [green]✓ Version: {escape(metadata.version)}[/green]", markup=True)
        if detailed and os.path.isfile(file_path):
            out.print(f"  Size: {format_bytes(os.path.getsize(file_path))}")
        out.print()

    out.header("Validation Summary")
    out.print(f"Files checked: {len(files)}")
    out.print(f"Errors: [red]{total_errors}[/red]", markup=True)
    out.print(f"Warnings: [yellow]{total_warnings}[/yellow]", markup=True)
    out.print()

    if total_errors:
        app.fail("Validation failed. Fix errors before uploading.")
    out.success("All checks passed. Ready to upload.")


@publish.command(name="upload")
@click.argument("file", type=click.Path())
@click.option("-r", "--repository", default=None, help="Repository name (pypi, testpypi) or upload URL.")
@click.option("-t", "--token", default=None, help="PyPI API token (or use PYPI_API_TOKEN env var).")
@pass_app
def upload(app: AppContext, file: str, repository: Optional[str], token: Optional[str]) -> None:
    """Validate and upload a single distribution FILE."""
    out = app.output
    out.header("Uploading Distribution File")

    api_token = _require_token(app, token)
    if not os.path.isfile(file):
        app.fail(f"File not found: {file}")

    repo = resolve_repository(repository or app.config.get("repository", "pypi"))
    out.info(f"File: {Path(file).name}")
    out.info(f"Repository: {repo.name}")
    out.print()

    validation = validate_distribution(file)
    if not validation.valid:
        out.error("Validation errors:")
        _print_problems(app, validation.errors, [])
        app.fail("Validation failed")
    if validation.warnings:
        out.warning("Validation passed with warnings")
        _print_problems(app, [], validation.warnings)
    else:
        out.success("Validation passed")
    out.print()

    with out.spinner(f"Uploading {Path(file).name}..."):
        result = Uploader(repo.url).upload(file, api_token)

    if not result.success:
        hints = []
        if isinstance(result.error, AuthenticationError):
            hints.append("Check that your API token is valid and has upload permissions")
        elif isinstance(result.error, ConflictError):
            hints.append("This version already exists on the repository")
            hints.append("Increment the version number and rebuild your package")
        out.error(result.message or "Unknown error")
        for hint in hints:
            out.error(hint)
        sys.exit(1)

    out.success("Package uploaded successfully!")
    if result.url:
        out.info(f"View at: {result.url}")
