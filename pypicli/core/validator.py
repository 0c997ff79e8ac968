"""Pre-flight validation of distribution files.

Before a file is uploaded, `validate_distribution` checks that it exists, has
a known extension, fits within PyPI's size limit and carries a valid name and
version in its filename. Problems are collected into a `ValidationResult`
instead of being raised, so the caller can show the full list at once.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

from .metadata import extract_metadata
from ..utils.validators import (
    validate_distribution_path,
    validate_package_name,
    validate_version,
)

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 100 * 1024 * 1024  # PyPI's upload limit.
MIN_FILE_SIZE = 1024
SUSPICIOUS_PATTERNS = (".env", "credentials", "secret", "password", ".key")


@dataclass
class ValidationResult:
    """The errors and warnings found while checking one distribution file.

    A result is valid exactly when it holds no errors; warnings never make a
    file invalid.
    """

    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def add_error(self, message: str) -> None:
        """Records a problem that blocks the upload."""
        self.errors.append(message)

    def add_warning(self, message: str) -> None:
        """Records a problem the user should know about but may ignore."""
        self.warnings.append(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"valid": self.valid, "errors": list(self.errors), "warnings": list(self.warnings)}


def format_bytes(size: int) -> str:
    """Formats a byte count with two decimals, e.g. ``12.50 KB``."""
    if size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{value:.2f} {units[index]}"


def validate_distribution(file_path: str) -> ValidationResult:
    """Validates a distribution file before upload.

    The checks run in a fixed order and all of them run, except that a
    missing file ends validation immediately:

    1. The file exists.
    2. The extension is ``.tar.gz``, ``.whl``, ``.egg`` or ``.zip``.
    3. The size does not exceed 100 MB.
    4. Files under 1 KB are flagged as suspiciously small.
    5. The name taken from the filename is a valid package name.
    6. The version taken from the filename is PEP 440 compliant.
    7. The filename contains no spaces.
    8. The filename contains none of the suspicious patterns that suggest a
       secret was packaged by accident.

    Args:
        file_path (str): Path to the distribution file.

    Returns:
        ValidationResult: The collected errors and warnings.
    """
    result = ValidationResult()

    if not os.path.isfile(file_path):
        result.add_error(f"File not found: {file_path}")
        return result

    try:
        size = os.path.getsize(file_path)
    except OSError as e:
        result.add_error(f"Could not read {file_path}: {e}")
        return result

    if not validate_distribution_path(file_path):
        result.add_error("Invalid file extension. Expected .tar.gz, .whl, .egg, or .zip")

    if size > MAX_FILE_SIZE:
        result.add_error(f"File size ({format_bytes(size)}) exceeds PyPI limit of 100MB")
    if size < MIN_FILE_SIZE:
        result.add_warning(f"File size ({format_bytes(size)}) is very small")

    metadata = extract_metadata(file_path)

    if metadata.name:
        if not validate_package_name(metadata.name):
            result.add_error(f"Invalid package name: {metadata.name}")
    else:
        result.add_warning("Could not extract package name from file")

    if metadata.version:
        if not validate_version(metadata.version):
            result.add_error(f"Invalid version (not PEP 440 compliant): {metadata.version}")
    else:
        result.add_warning("Could not extract version from file")

    filename = Path(file_path).name
    if " " in filename:
        result.add_error("Filename contains spaces")

    lower_filename = filename.lower()
    for pattern in SUSPICIOUS_PATTERNS:
        if pattern in lower_filename:
            result.add_warning(f"Filename contains suspicious pattern: {pattern}")

    logger.info(f"Validated {file_path}: {len(result.errors)} error(s), {len(result.warnings)} warning(s)")
    return result
