"""pypicli: a command-line client for PyPI.

This package provides the `pypi` command, which queries package metadata,
download statistics and vulnerability data, and validates and uploads
distribution files to PyPI-compatible repositories.
"""

__version__ = "1.0.0"
__author__ = "pypi-cli contributors"
__license__ = "MIT"

__all__ = ["__version__", "__author__", "__license__"]
