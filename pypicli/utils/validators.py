"""Input validation helpers for package names, versions, emails and tokens.

Every function here is total: it returns False (or a normalized value) for
any input, including non-string input, and never raises.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, List

# Must start and end with an alphanumeric; ".", "_" and "-" allowed inside.
PACKAGE_NAME_REGEX = re.compile(r"^([A-Za-z0-9]|[A-Za-z0-9][A-Za-z0-9._-]*[A-Za-z0-9])$")

# A subset of PEP 440: at most four release segments.
VERSION_REGEX = re.compile(
    r"^([1-9][0-9]*!)?"
    r"(0|[1-9][0-9]*)(\.(0|[1-9][0-9]*)){0,3}"
    r"((a|b|rc)(0|[1-9][0-9]*))?"
    r"(\.post(0|[1-9][0-9]*))?"
    r"(\.dev(0|[1-9][0-9]*))?"
    r"(\+[a-z0-9]+(\.[a-z0-9]+)*)?$",
    re.IGNORECASE,
)

EMAIL_REGEX = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@"
    r"[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)

URL_REGEX = re.compile(
    r"^https?://(www\.)?[-a-zA-Z0-9@:%._+~#=]{1,256}"
    r"(\.[-a-zA-Z0-9()]{1,6})?"
    r"(:\d{1,5})?"
    r"(/[-a-zA-Z0-9()@:%_+.~#?&/=]*)?$"
)

DISTRIBUTION_EXTENSIONS = (".tar.gz", ".whl", ".egg", ".zip")

MAX_PACKAGE_NAME_LENGTH = 214
MAX_VERSION_LENGTH = 100
MAX_EMAIL_LENGTH = 254
MAX_EMAIL_LOCAL_LENGTH = 64
MAX_EMAIL_DOMAIN_LENGTH = 253
MAX_URL_LENGTH = 2048


def validate_package_name(name: Any) -> bool:
    """Checks a package name against the PEP 508 name grammar.

    Args:
        name: The candidate package name.

    Returns:
        bool: True if the trimmed name is 1-214 characters long, starts and
        ends with an alphanumeric and only contains alphanumerics, ".", "_"
        and "-".
    """
    if not isinstance(name, str) or not name:
        return False
    trimmed = name.strip()
    if not trimmed or len(trimmed) > MAX_PACKAGE_NAME_LENGTH:
        return False
    return PACKAGE_NAME_REGEX.match(trimmed) is not None


def validate_version(version: Any) -> bool:
    """Checks a version string against a simplified PEP 440 grammar.

    Accepts forms such as ``1.0``, ``1!2.0``, ``1.0a1``, ``1.0.post1``,
    ``1.0.dev1`` and ``1.0+local``. Versions with more than four release
    segments (``1.0.0.0.0``) are rejected.

    Args:
        version: The candidate version string.

    Returns:
        bool: True if the version is valid.
    """
    if not isinstance(version, str) or not version:
        return False
    trimmed = version.strip()
    if not trimmed or len(trimmed) > MAX_VERSION_LENGTH:
        return False
    return VERSION_REGEX.match(trimmed) is not None


def validate_email(email: Any) -> bool:
    """Checks that a string looks like a deliverable email address."""
    if not isinstance(email, str) or not email:
        return False
    trimmed = email.strip()
    if not trimmed or len(trimmed) > MAX_EMAIL_LENGTH:
        return False

    parts = trimmed.split("@")
    if len(parts) != 2:
        return False
    local, domain = parts
    if not local or len(local) > MAX_EMAIL_LOCAL_LENGTH:
        return False
    if not domain or len(domain) > MAX_EMAIL_DOMAIN_LENGTH:
        return False

    return EMAIL_REGEX.match(trimmed) is not None


@dataclass
class EmailValidationResult:
    """Partition of a list of email addresses into valid and invalid ones."""

    valid: List[str] = field(default_factory=list)
    invalid: List[Any] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.invalid


def validate_emails(emails: Iterable[Any]) -> EmailValidationResult:
    """Validates several email addresses at once.

    Valid addresses are returned trimmed; invalid ones are returned as given.
    """
    result = EmailValidationResult()
    for email in emails:
        if validate_email(email):
            result.valid.append(email.strip())
        else:
            result.invalid.append(email)
    return result


def validate_url(url: Any) -> bool:
    """Checks that a string is an http(s) URL of at most 2048 characters."""
    if not isinstance(url, str) or not url:
        return False
    trimmed = url.strip()
    if not trimmed or len(trimmed) > MAX_URL_LENGTH:
        return False
    return URL_REGEX.match(trimmed) is not None


def normalize_package_name(name: str) -> str:
    """Normalizes a package name for comparison.

    The name is lowercased and every run of "." and "_" becomes a single "-",
    so ``Some.Package`` and ``some_package`` both become ``some-package``.

    Args:
        name (str): The package name.

    Returns:
        str: The normalized name, or an empty string for non-string input.
    """
    if not isinstance(name, str):
        return ""
    return re.sub(r"[._]+", "-", name.lower())


def are_package_names_equivalent(name1: str, name2: str) -> bool:
    """Returns True if two package names normalize to the same value."""
    return normalize_package_name(name1) == normalize_package_name(name2)


def validate_distribution_path(file_path: Any) -> bool:
    """Checks that a path has a distribution file extension."""
    if not isinstance(file_path, str) or not file_path:
        return False
    return file_path.endswith(DISTRIBUTION_EXTENSIONS)


def validate_token(token: Any) -> bool:
    """Checks the format of a PyPI API token.

    This is only a sanity check: PyPI tokens start with ``pypi-`` and are
    long macaroons. Whether the token is accepted is up to the server.
    """
    if not isinstance(token, str) or not token:
        return False
    trimmed = token.strip()
    return trimmed.startswith("pypi-") and len(trimmed) > 20
