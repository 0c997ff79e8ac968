"""Provides a client for the PyPI JSON, pypistats.org and OSV APIs.

This module wraps the registry HTTP APIs behind `PyPIClient`, which handles
request timeouts, retries with exponential backoff on server errors, and the
translation of HTTP failures into the typed errors of `pypicli.core.errors`.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests
from packaging.version import InvalidVersion, Version

from .. import __version__
from ..core.errors import (
    APIError,
    NetworkError,
    PackageNotFoundError,
    RateLimitError,
    RequestTimeoutError,
    ServerError,
)

# Initialize a logger for this module.
logger = logging.getLogger(__name__)

USER_AGENT = f"pypi-cli/{__version__}"
DEFAULT_JSON_API_BASE = "https://pypi.org/pypi"
DEFAULT_STATS_API_BASE = "https://pypistats.org/api"
DEFAULT_OSV_API_BASE = "https://api.osv.dev/v1"
DEFAULT_TIMEOUT = 30000  # milliseconds
DEFAULT_MAX_RETRIES = 3
MAX_BACKOFF = 4000  # milliseconds


@dataclass
class RateLimitInfo:
    """Rate limit state reported by the ``X-RateLimit-*`` response headers."""

    limit: int
    remaining: int
    reset: int


@dataclass
class ApiResponse:
    """A decoded JSON body together with any rate limit information."""

    data: Any
    rate_limit: Optional[RateLimitInfo] = None


def calculate_backoff(attempt: int) -> int:
    """Returns the delay in milliseconds before retry number `attempt + 1`.

    The delay doubles with each attempt (1s, 2s, 4s) and is capped at 4s.
    """
    return min(1000 * 2 ** attempt, MAX_BACKOFF)


def parse_rate_limit_headers(headers: Any) -> Optional[RateLimitInfo]:
    """Builds a `RateLimitInfo` when all three rate limit headers are present."""
    limit = headers.get("x-ratelimit-limit")
    remaining = headers.get("x-ratelimit-remaining")
    reset = headers.get("x-ratelimit-reset")
    if not (limit and remaining and reset):
        return None
    try:
        return RateLimitInfo(limit=int(limit), remaining=int(remaining), reset=int(reset))
    except ValueError:
        logger.debug(f"Ignoring malformed rate limit headers: {limit}, {remaining}, {reset}")
        return None


def _error_details(response: requests.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class PyPIClient:
    """Client for the PyPI JSON API, the pypistats.org API and the OSV API.

    Every request carries a fixed User-Agent and Accept header and is
    cancelled once it exceeds `timeout` milliseconds. Server errors (5xx)
    are retried with exponential backoff; every other failure is raised
    immediately.

    Attributes:
        json_api_base (str): Base URL of the PyPI JSON API.
        stats_api_base (str): Base URL of the pypistats.org API.
        osv_api_base (str): Base URL of the OSV API.
        timeout (int): Per-request timeout in milliseconds.
        max_retries (int): Maximum number of attempts for a request that
            keeps failing with a server error.
    """

    def __init__(
        self,
        json_api_base: str = DEFAULT_JSON_API_BASE,
        stats_api_base: str = DEFAULT_STATS_API_BASE,
        osv_api_base: str = DEFAULT_OSV_API_BASE,
        timeout: int = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.json_api_base = json_api_base.rstrip("/")
        self.stats_api_base = stats_api_base.rstrip("/")
        self.osv_api_base = osv_api_base.rstrip("/")
        self.timeout = timeout or DEFAULT_TIMEOUT
        self.max_retries = max(1, max_retries or DEFAULT_MAX_RETRIES)
        self.session = session or requests.Session()

    def request(self, method: str, url: str, **kwargs: Any) -> ApiResponse:
        """Sends a request and decodes the JSON response.

        Args:
            method (str): The HTTP method.
            url (str): The absolute URL to request.
            **kwargs: Extra arguments for `requests.Session.request`, such as
                `json` or additional `headers`.

        Returns:
            ApiResponse: The decoded body and any rate limit information.

        Raises:
            PackageNotFoundError: On HTTP 404.
            RateLimitError: On HTTP 429.
            ServerError: If every attempt failed with a 5xx status.
            RequestTimeoutError: If the request exceeded the timeout.
            NetworkError: If the request failed below HTTP.
            APIError: On any other non-2xx status.
        """
        headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        headers.update(kwargs.pop("headers", None) or {})
        last_error: Optional[APIError] = None

        for attempt in range(self.max_retries):
            logger.info(f"{method} {url} (attempt {attempt + 1}/{self.max_retries})")
            try:
                response = self.session.request(method, url, headers=headers, timeout=self.timeout / 1000, **kwargs)
            except requests.exceptions.Timeout as e:
                raise RequestTimeoutError(self.timeout) from e
            except requests.exceptions.RequestException as e:
                raise NetworkError(f"Network error: {e}") from e

            rate_limit = parse_rate_limit_headers(response.headers)
            status = response.status_code

            if 200 <= status < 300:
                try:
                    return ApiResponse(data=response.json(), rate_limit=rate_limit)
                except ValueError as e:
                    raise APIError(f"Invalid JSON in response from {url}", status_code=status) from e

            details = _error_details(response)
            message = details.get("message") if isinstance(details.get("message"), str) else None
            message = message or f"API request failed with status {status}"

            if status >= 500:
                last_error = ServerError(message, status_code=status, details=details)
                if attempt < self.max_retries - 1:
                    delay = calculate_backoff(attempt)
                    logger.warning(f"Server error {status} from {url}. Retrying in {delay}ms...")
                    time.sleep(delay / 1000)
                    continue
                raise last_error
            if status == 404:
                raise PackageNotFoundError("Package not found", details=details)
            if status == 429:
                raise RateLimitError(response.headers.get("retry-after"), details=details)
            raise APIError(message, status_code=status, details=details)

        # Only reachable when max_retries is exhausted without raising.
        raise last_error or APIError("Request failed after maximum retries")

    def get_package(self, name: str, version: Optional[str] = None) -> ApiResponse:
        """Fetches the JSON metadata of a package, or of one of its versions."""
        endpoint = f"{name}/{version}" if version else name
        return self.request("GET", f"{self.json_api_base}/{endpoint}/json")

    def search_packages(self, query: str, limit: int = 20) -> ApiResponse:
        """Looks a package up by its exact name.

        PyPI no longer offers a search API, so this falls back to an exact
        name lookup. A package that does not exist yields an empty list.

        Args:
            query (str): The package name to look for.
            limit (int): Maximum number of results. Defaults to 20.

        Returns:
            ApiResponse: A list of search result dictionaries as `data`.
        """
        try:
            package = self.get_package(query)
        except PackageNotFoundError:
            return ApiResponse(data=[])
        info = package.data.get("info", {})
        results = [{
            "name": info.get("name"),
            "version": info.get("version"),
            "summary": info.get("summary"),
            "author": info.get("author"),
            "keywords": info.get("keywords"),
            "home_page": info.get("home_page"),
        }]
        return ApiResponse(data=results[:limit], rate_limit=package.rate_limit)

    def get_download_stats(self, name: str, period: str = "recent") -> ApiResponse:
        """Fetches a statistics endpoint of pypistats.org (``recent``, ``overall``...)."""
        return self.request("GET", f"{self.stats_api_base}/packages/{name}/{period}")

    def get_overall_stats(self, name: str) -> ApiResponse:
        return self.get_download_stats(name, "overall")

    def get_python_major_stats(self, name: str) -> ApiResponse:
        return self.get_download_stats(name, "python_major")

    def get_system_stats(self, name: str) -> ApiResponse:
        return self.get_download_stats(name, "system")

    def package_exists(self, name: str) -> bool:
        """Returns True if the package exists on PyPI."""
        try:
            self.get_package(name)
        except PackageNotFoundError:
            return False
        return True

    def get_vulnerabilities(self, name: str, version: Optional[str] = None) -> ApiResponse:
        """Queries OSV for the known vulnerabilities of a PyPI package.

        Args:
            name (str): The package name.
            version (Optional[str]): Restrict the query to one version.

        Returns:
            ApiResponse: The list of OSV vulnerability records as `data`.
        """
        body: Dict[str, Any] = {"package": {"name": name, "ecosystem": "PyPI"}}
        if version:
            body["version"] = version
        response = self.request("POST", f"{self.osv_api_base}/query", json=body)
        data = response.data if isinstance(response.data, dict) else {}
        return ApiResponse(data=data.get("vulns") or [], rate_limit=response.rate_limit)

    def get_versions(self, name: str) -> List[str]:
        """Returns every released version, newest first."""
        package = self.get_package(name)
        return sort_versions(package.data.get("releases", {}).keys(), reverse=True)

    def get_latest_version(self, name: str) -> str:
        return self.get_package(name).data["info"]["version"]

    def download_file(self, url: str) -> bytes:
        """Downloads a release file and returns its raw content."""
        logger.info(f"Downloading {url}")
        try:
            response = self.session.get(url, headers={"User-Agent": USER_AGENT}, timeout=self.timeout / 1000)
        except requests.exceptions.Timeout as e:
            raise RequestTimeoutError(self.timeout) from e
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"Network error: {e}") from e
        if response.status_code != 200:
            raise APIError(f"Download failed with status {response.status_code}", status_code=response.status_code)
        return response.content


def sort_versions(versions: Any, reverse: bool = False) -> List[str]:
    """Sorts version strings in PEP 440 order.

    Strings that are not valid versions sort after every valid one, in
    lexicographical order.
    """
    valid = []
    invalid = []
    for v in versions:
        try:
            valid.append((Version(v), v))
        except InvalidVersion:
            invalid.append(v)
    ordered = [v for _, v in sorted(valid, key=lambda item: item[0])]
    if reverse:
        ordered.reverse()
    return ordered + sorted(invalid)


def get_package_info(metadata: Dict[str, Any]) -> Dict[str, Any]:
    """Extracts a curated set of package information from the raw metadata.

    Args:
        metadata (Dict[str, Any]): The raw metadata dictionary from the PyPI API.

    Returns:
        Dict[str, Any]: A dictionary containing key package details.
    """
    info = metadata.get("info", {})
    return {
        "name": info.get("name"),
        "version": info.get("version"),
        "summary": info.get("summary"),
        "author": info.get("author"),
        "author_email": info.get("author_email"),
        "license": info.get("license"),
        "home_page": info.get("home_page"),
        "project_urls": info.get("project_urls") or {},
        "classifiers": info.get("classifiers") or [],
        "keywords": info.get("keywords"),
        "requires_dist": info.get("requires_dist") or [],
        "requires_python": info.get("requires_python"),
    }

