"""Uploads distribution files to PyPI-compatible repositories.

`Uploader` posts one file to a repository's legacy upload endpoint and
classifies the response into an `UploadResult`. `Publisher` drives a batch:
every file is validated first, and uploads only start once the whole batch
is valid. Files move through the states of `FileState` one at a time.
"""

import base64
import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Iterator, List, Mapping, Optional, Tuple

import requests

from .. import __version__
from .errors import AuthenticationError, ConflictError, PyPIError, UploadError, ValidationFailedError
from .metadata import PackageMetadata, extract_metadata
from .validator import ValidationResult, validate_distribution

logger = logging.getLogger(__name__)

UPLOAD_TIMEOUT = 60000  # milliseconds
TOKEN_USERNAME = "__token__"


@dataclass(frozen=True)
class RepositoryConfig:
    """An upload target.

    Attributes:
        name (str): Display name of the repository.
        url (str): The legacy upload endpoint.
        web_url (str): The web root used to build project page URLs.
    """

    name: str
    url: str
    web_url: str = "https://pypi.org"


REPOSITORIES: Mapping[str, RepositoryConfig] = MappingProxyType({
    "pypi": RepositoryConfig("PyPI", "https://upload.pypi.org/legacy/", "https://pypi.org"),
    "testpypi": RepositoryConfig("TestPyPI", "https://test.pypi.org/legacy/", "https://test.pypi.org"),
})


def resolve_repository(repository: str) -> RepositoryConfig:
    """Maps a repository name or URL to a `RepositoryConfig`.

    Known names ("pypi", "testpypi") and their endpoint URLs resolve to the
    built-in entries. Any other string is used verbatim as a custom upload
    endpoint whose project pages are assumed to live on pypi.org.
    """
    repository = repository or "pypi"
    if repository in REPOSITORIES:
        return REPOSITORIES[repository]
    for known in REPOSITORIES.values():
        if known.url.rstrip("/") == repository.rstrip("/"):
            return known
    return RepositoryConfig(name=repository, url=repository)


@dataclass
class UploadResult:
    """The outcome of uploading a single file.

    `status_code` is only set when the repository sent an HTTP response.
    A failed result carries the matching error: `AuthenticationError` for a
    rejected token, `ConflictError` for a file that already exists and
    `UploadError` for everything else.
    """

    success: bool
    message: Optional[str] = None
    url: Optional[str] = None
    status_code: Optional[int] = None
    error: Optional[PyPIError] = None


def build_auth_header(token: str) -> str:
    """Returns the HTTP Basic credentials for an API token."""
    credentials = f"{TOKEN_USERNAME}:{token}".encode("utf-8")
    return "Basic " + base64.b64encode(credentials).decode("ascii")


def build_form_fields(metadata: PackageMetadata) -> List[Tuple[str, str]]:
    """Builds the non-file fields of the upload form.

    The protocol fields always come first, followed by every metadata field
    that has a value. Classifiers repeat the ``classifiers`` field.
    """
    fields = [(":action", "file_upload"), ("protocol_version", "1")]
    for name in (
        "name",
        "version",
        "summary",
        "author",
        "author_email",
        "license",
        "home_page",
        "requires_python",
        "description",
        "description_content_type",
        "keywords",
    ):
        value = getattr(metadata, name)
        if value:
            fields.append((name, value))
    for classifier in metadata.classifiers:
        fields.append(("classifiers", classifier))
    return fields


def project_url(repository: RepositoryConfig, name: str, version: Optional[str] = None) -> str:
    """Returns the web page of a project, or of one of its releases."""
    if version:
        return f"{repository.web_url}/project/{name}/{version}/"
    return f"{repository.web_url}/project/{name}/"


class Uploader:
    """Uploads distribution files to one repository.

    Attributes:
        repository (RepositoryConfig): The upload target.
        timeout (int): Upload timeout in milliseconds.
    """

    def __init__(self, repository: str = "pypi", timeout: int = UPLOAD_TIMEOUT, session: Optional[requests.Session] = None) -> None:
        self.repository = resolve_repository(repository)
        self.timeout = timeout
        self.session = session or requests.Session()

    def upload(self, file_path: str, token: str) -> UploadResult:
        """Uploads a distribution file.

        Args:
            file_path (str): Path to the ``.whl`` or ``.tar.gz`` file.
            token (str): The API token, sent as the Basic auth password.

        Returns:
            UploadResult: Success with the project URL, or failure with a
            message. A 403 means the token was rejected and a 409 means the
            file is already on the repository.
        """
        path = Path(file_path)
        if not path.is_file():
            message = f"File not found: {file_path}"
            return UploadResult(success=False, message=message, error=UploadError(message))

        metadata = extract_metadata(file_path)
        headers = {"Authorization": build_auth_header(token), "User-Agent": f"pypi-cli/{__version__}"}

        logger.info(f"Uploading {path.name} to {self.repository.url}")
        try:
            with path.open("rb") as f:
                files = [(name, (None, value)) for name, value in build_form_fields(metadata)]
                files.append(("content", (path.name, f, "application/octet-stream")))
                response = self.session.post(
                    self.repository.url,
                    headers=headers,
                    files=files,
                    timeout=self.timeout / 1000,
                )
        except requests.exceptions.Timeout:
            message = f"Upload timeout after {self.timeout // 1000} seconds"
            return UploadResult(success=False, message=message, error=UploadError(message))
        except requests.exceptions.RequestException as e:
            logger.error(f"Upload of {path.name} failed: {e}")
            message = str(e) or "Upload failed"
            return UploadResult(success=False, message=message, error=UploadError(message))
        except OSError as e:
            message = f"Could not read {file_path}: {e}"
            return UploadResult(success=False, message=message, error=UploadError(message))

        return self._classify(response, path, metadata)

    def _classify(self, response: requests.Response, path: Path, metadata: PackageMetadata) -> UploadResult:
        status = response.status_code
        if 200 <= status < 300:
            name = metadata.name or path.name.split("-")[0] or "unknown"
            return UploadResult(
                success=True,
                message="Package uploaded successfully",
                url=project_url(self.repository, name, metadata.version),
                status_code=status,
            )
        if status == 403:
            error = AuthenticationError("Authentication failed. Check your API token.")
            return UploadResult(success=False, message=error.message, status_code=status, error=error)
        if status == 409:
            error = ConflictError()
            return UploadResult(success=False, message=error.message, status_code=status, error=error)

        body = (response.text or "").strip()
        message = body or f"Upload failed with status {status}"
        return UploadResult(success=False, message=message, status_code=status, error=UploadError(message))


class FileState(enum.Enum):
    """Where a file is in the publish workflow."""

    PENDING = "pending"
    VALIDATING = "validating"
    VALIDATION_FAILED = "validation_failed"
    VALIDATED = "validated"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    UPLOAD_FAILED = "upload_failed"
    SKIPPED = "skipped"

    @property
    def terminal(self) -> bool:
        return self in (FileState.VALIDATION_FAILED, FileState.UPLOADED, FileState.UPLOAD_FAILED, FileState.SKIPPED)


@dataclass
class DistributionJob:
    """One file of a publish batch and everything learned about it so far."""

    path: str
    state: FileState = FileState.PENDING
    size: int = 0
    validation: Optional[ValidationResult] = None
    result: Optional[UploadResult] = None

    @property
    def filename(self) -> str:
        return Path(self.path).name


@dataclass
class PublishSummary:
    uploaded: List[DistributionJob] = field(default_factory=list)
    failed: List[DistributionJob] = field(default_factory=list)
    skipped: List[DistributionJob] = field(default_factory=list)
    aborted: bool = False

    @property
    def success(self) -> bool:
        return bool(self.uploaded) and not self.failed and not self.skipped


class Publisher:
    """Validates and uploads a batch of distribution files, one at a time.

    Validation covers the whole batch before anything is uploaded. During
    the upload phase a 409 (file exists) only fails that file, while a 403
    (bad token) aborts the batch, since every later upload would be
    rejected as well.
    """

    def __init__(self, uploader: Uploader, token: str) -> None:
        self.uploader = uploader
        self.token = token
        self.aborted = False

    def validate_all(self, paths: List[str]) -> List[DistributionJob]:
        """Validates every file and returns one job per path, in order."""
        jobs = []
        for path in paths:
            job = DistributionJob(path=path, state=FileState.VALIDATING)
            job.validation = validate_distribution(path)
            try:
                job.size = Path(path).stat().st_size
            except OSError:
                job.size = 0
            job.state = FileState.VALIDATED if job.validation.valid else FileState.VALIDATION_FAILED
            jobs.append(job)
        return jobs

    @staticmethod
    def ok(jobs: List[DistributionJob]) -> bool:
        """Returns True if no job failed validation."""
        return all(job.state is not FileState.VALIDATION_FAILED for job in jobs)

    def upload_all(self, jobs: List[DistributionJob]) -> Iterator[DistributionJob]:
        """Uploads validated jobs sequentially.

        Yields each job twice: once when it enters `FileState.UPLOADING` and
        once when it reaches its terminal state. After a 403 the remaining
        jobs are marked `FileState.SKIPPED` and `aborted` is set.

        Raises:
            ValidationFailedError: If any job failed validation; nothing is
                uploaded in that case.
        """
        if not self.ok(jobs):
            errors = [err for job in jobs if job.validation for err in job.validation.errors]
            raise ValidationFailedError("Validation failed. Fix errors before publishing.", errors)

        self.aborted = False
        for job in jobs:
            if self.aborted:
                job.state = FileState.SKIPPED
                continue
            job.state = FileState.UPLOADING
            yield job
            job.result = self.uploader.upload(job.path, self.token)
            job.state = FileState.UPLOADED if job.result.success else FileState.UPLOAD_FAILED
            if isinstance(job.result.error, AuthenticationError):
                logger.info(f"Upload of {job.filename} was rejected with 403, skipping the remaining files")
                self.aborted = True
            yield job

    def summary(self, jobs: List[DistributionJob]) -> PublishSummary:
        summary = PublishSummary(aborted=self.aborted)
        for job in jobs:
            if job.state is FileState.UPLOADED:
                summary.uploaded.append(job)
            elif job.state is FileState.UPLOAD_FAILED:
                summary.failed.append(job)
            elif job.state is FileState.SKIPPED:
                summary.skipped.append(job)
        return summary
