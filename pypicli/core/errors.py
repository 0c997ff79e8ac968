"""Exception types raised by pypicli.

Transport and HTTP failures are raised as one of the classes below and caught
by the command layer, which turns them into a short message and a non-zero
exit status. Local validation problems are never raised; they are returned as
data (see `pypicli.core.validator.ValidationResult`).
"""

from typing import Any, Dict, List, Optional


class PyPIError(Exception):
    """Base class for all pypicli errors.

    Attributes:
        message (str): A human readable description of the failure.
        code (Optional[str]): A stable, machine readable error code.
    """

    code: Optional[str] = None

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class APIError(PyPIError):
    """An HTTP request to a registry API failed.

    Attributes:
        status_code (Optional[int]): The HTTP status of the response, or None
            when no response was received.
        details (Optional[Dict[str, Any]]): The decoded error body, if any.
    """

    code = "API_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class PackageNotFoundError(APIError):
    """The registry answered 404 for the requested resource."""

    code = "PACKAGE_NOT_FOUND"

    def __init__(self, message: str = "Package not found", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, status_code=404, details=details)


class RateLimitError(APIError):
    """The registry answered 429. The caller decides whether to wait and retry."""

    code = "RATE_LIMITED"

    def __init__(self, retry_after: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        message = f"Rate limited. Retry after {retry_after}s" if retry_after else "Rate limited"
        super().__init__(message, status_code=429, details=details)
        self.retry_after = retry_after


class ServerError(APIError):
    """The registry kept answering with a 5xx status after all retries."""

    code = "SERVER_ERROR"


class RequestTimeoutError(APIError):
    """A request was cancelled because it exceeded the configured timeout."""

    code = "TIMEOUT"

    def __init__(self, timeout: int) -> None:
        super().__init__(f"Request timeout after {timeout}ms", status_code=None, details={"timeout": timeout})
        self.timeout = timeout


class NetworkError(APIError):
    """The request failed below HTTP (DNS, refused connection, TLS...)."""

    code = "NETWORK_ERROR"


class AuthenticationError(PyPIError):
    """The repository rejected the credentials (HTTP 403)."""

    code = "AUTH_FAILED"

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message)


class ConflictError(PyPIError):
    """The file being uploaded already exists on the repository (HTTP 409)."""

    code = "CONFLICT"

    def __init__(self, message: str = "File already exists on repository.") -> None:
        super().__init__(message)


class UploadError(PyPIError):
    """An upload failed for a reason other than authentication or conflict."""

    code = "UPLOAD_FAILED"


class ValidationFailedError(PyPIError):
    """Pre-flight validation failed for one or more distribution files.

    Attributes:
        errors (List[str]): Every validation error that was collected.
    """

    code = "VALIDATION_FAILED"

    def __init__(self, message: str, errors: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])


class ConfigError(PyPIError):
    """The configuration could not be read, changed or written."""

    code = "CONFIG_ERROR"
