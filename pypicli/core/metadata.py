"""Extracts package metadata from distribution filenames.

Only the filename is inspected; archive contents (``METADATA`` or
``PKG-INFO``) are never opened. The result is therefore a naming-convention
heuristic: every field is optional and callers must cope with an empty
`PackageMetadata`.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from ..utils.validators import DISTRIBUTION_EXTENSIONS

logger = logging.getLogger(__name__)


@dataclass
class PackageMetadata:
    """Metadata for a single distribution file.

    Every field is optional. Filename parsing only fills in `name` and
    `version`; the remaining fields are carried into the upload form when a
    caller provides them.
    """

    name: Optional[str] = None
    version: Optional[str] = None
    summary: Optional[str] = None
    author: Optional[str] = None
    author_email: Optional[str] = None
    license: Optional[str] = None
    home_page: Optional[str] = None
    requires_python: Optional[str] = None
    description: Optional[str] = None
    description_content_type: Optional[str] = None
    keywords: Optional[str] = None
    classifiers: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return self.name is None and self.version is None


def extract_metadata_from_wheel(file_path: str) -> PackageMetadata:
    """Reads the name and version out of a wheel filename.

    Wheel filenames follow
    ``{name}-{version}[-{build}]-{python}-{abi}-{platform}.whl``.

    Args:
        file_path (str): Path to the ``.whl`` file. The file need not exist.

    Returns:
        PackageMetadata: The extracted name (underscores replaced by hyphens)
        and version, or empty metadata if the filename has fewer than five
        dash-separated segments.
    """
    filename = Path(file_path).name
    if filename.endswith(".whl"):
        filename = filename[: -len(".whl")]
    parts = filename.split("-")
    if len(parts) < 5:
        return PackageMetadata()
    return PackageMetadata(name=parts[0].replace("_", "-"), version=parts[1])


def extract_metadata_from_sdist(file_path: str) -> PackageMetadata:
    """Reads the name and version out of a ``{name}-{version}.tar.gz`` filename.

    The last "-" separates the name from the version, so names that contain
    hyphens are kept whole.
    """
    filename = Path(file_path).name
    if filename.endswith(".tar.gz"):
        filename = filename[: -len(".tar.gz")]
    name, sep, version = filename.rpartition("-")
    if not sep:
        return PackageMetadata()
    return PackageMetadata(name=name.replace("_", "-"), version=version)


def extract_metadata(file_path: str) -> PackageMetadata:
    """Extracts metadata from any distribution filename.

    Wheels and source archives are parsed; every other file type yields
    empty metadata.
    """
    if not isinstance(file_path, str):
        return PackageMetadata()
    if file_path.endswith(".whl"):
        return extract_metadata_from_wheel(file_path)
    if file_path.endswith(".tar.gz"):
        return extract_metadata_from_sdist(file_path)
    return PackageMetadata()


def get_distribution_files(dir_path: str = "dist") -> List[str]:
    """Lists every distribution file below a directory.

    Args:
        dir_path (str): The directory to search recursively. Defaults to
            "dist".

    Returns:
        List[str]: Sorted paths of the ``.tar.gz``, ``.whl``, ``.egg`` and
        ``.zip`` files found, or an empty list if the directory is missing.
    """
    root = Path(dir_path)
    if not root.is_dir():
        logger.debug(f"Distribution directory not found: {dir_path}")
        return []
    return sorted(
        str(path)
        for path in root.rglob("*")
        if path.is_file() and path.name.endswith(DISTRIBUTION_EXTENSIONS)
    )
