"""Manages configuration for pypi-cli.

This module is responsible for loading, managing, and saving the application's
configuration settings. It aggregates settings from default values, JSON files,
and environment variables, providing a unified interface for accessing them.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ConfigError

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ("json", "table", "pretty")
VALID_KEYS = ("apiToken", "repository", "outputFormat", "colorOutput", "timeout", "retries")
# Stored alongside the settings by the token commands, but not settable by hand.
INTERNAL_KEYS = ("tokenName",)
TOKEN_URL = "https://pypi.org/manage/account/token/"


def user_config_path() -> Path:
    """Returns the user-level config file that `Config.save` writes."""
    return Path.home() / ".pypi" / "config.json"


def config_search_paths() -> List[Path]:
    """Returns the config file locations, highest priority first."""
    return [
        Path.cwd() / ".pypi.json",
        user_config_path(),
        Path.home() / ".pypi.json",
    ]


def mask_api_token(token: str) -> str:
    """Masks a token down to its first and last four characters.

    Tokens of eight characters or fewer are returned unchanged, since there is
    nothing left to hide once both ends are shown.
    """
    if len(token) <= 8:
        return token
    return f"{token[:4]}...{token[-4:]}"


def parse_value(key: str, value: str) -> Any:
    """Converts a command line string into the type stored for `key`.

    Args:
        key (str): One of `VALID_KEYS`.
        value (str): The raw value.

    Returns:
        Any: A bool for ``colorOutput``, an int for ``timeout`` and
        ``retries``, and the string itself otherwise.

    Raises:
        ConfigError: If the key is unknown or the value cannot be converted.
    """
    if key not in VALID_KEYS:
        raise ConfigError(f"Invalid configuration key: {key}")
    if key == "colorOutput":
        return value.strip().lower() in ("true", "1", "yes", "on")
    if key in ("timeout", "retries"):
        try:
            number = int(value)
        except ValueError:
            raise ConfigError(f"Invalid number: {value}")
        if number < 0:
            raise ConfigError(f"Invalid number: {value}")
        return number
    if key == "outputFormat" and value not in OUTPUT_FORMATS:
        raise ConfigError(f"Invalid output format: {value}. Expected one of: {', '.join(OUTPUT_FORMATS)}")
    return value


class Config:
    """Handles the configuration for the pypi-cli application.

    This class loads configuration from multiple sources with a defined
    precedence:
    1.  Default values (lowest precedence).
    2.  The first existing file among `./.pypi.json`, `~/.pypi/config.json`
        and `~/.pypi.json`, or a custom file given at runtime.
    3.  Environment variables (highest precedence).

    Changes made with `set` and `unset` only reach disk through `save`, which
    rewrites the user config file. Environment values are never persisted.

    Attributes:
        DEFAULT_CONFIG (Dict[str, Any]): A dictionary containing the default
            configuration values.
        path (Optional[Path]): The file the configuration was loaded from.
    """

    DEFAULT_CONFIG = {
        "repository": "https://upload.pypi.org/legacy/",
        "outputFormat": "pretty",
        "colorOutput": True,
        "timeout": 30000,  # Network request timeout in milliseconds.
        "retries": 3,
    }

    ENV_MAPPING = {
        "PYPI_API_TOKEN": "apiToken",
        "PYPI_REPOSITORY": "repository",
        "PYPI_OUTPUT_FORMAT": "outputFormat",
    }

    def __init__(self, config_path: Optional[Path] = None) -> None:
        """Initializes the configuration manager.

        Args:
            config_path (Optional[Path]): An optional path to a specific
                configuration file to load. If provided, it replaces the
                default file locations.
        """
        self.config: Dict[str, Any] = dict(self.DEFAULT_CONFIG)
        self.file_config: Dict[str, Any] = {}
        self.env_config: Dict[str, Any] = {}
        self.path: Optional[Path] = None
        self._changes: Dict[str, Any] = {}
        self._removed: List[str] = []
        self._load_config(config_path)

    def _load_config(self, config_path: Optional[Path] = None) -> None:
        if config_path:
            self.path = Path(config_path)
            self.file_config = self._load_file_config(self.path)
        else:
            for candidate in config_search_paths():
                if candidate.is_file():
                    self.path = candidate
                    self.file_config = self._load_file_config(candidate)
                    break

        self.config.update(self.file_config)
        self._load_env_config()

    def _load_file_config(self, config_path: Path) -> Dict[str, Any]:
        """Reads a JSON config file.

        A missing file yields an empty dict. A file that cannot be read or
        does not hold a JSON object is reported and ignored.

        Args:
            config_path (Path): The path to the JSON configuration file.

        Returns:
            Dict[str, Any]: The settings found in the file.
        """
        if not config_path.exists():
            return {}
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not load config from {config_path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring config file {config_path}: expected a JSON object")
            return {}
        return self._check_file_values(data, config_path)

    def _check_file_values(self, data: Dict[str, Any], config_path: Path) -> Dict[str, Any]:
        """Coerces hand-edited values to their stored types.

        Strings are converted with `parse_value`. Values of the wrong type, or
        strings that do not convert, are dropped with a warning so that the
        default applies.
        """
        checked = dict(data)
        for key in ("timeout", "retries", "colorOutput", "outputFormat"):
            if key not in checked:
                continue
            value = checked[key]
            expected = bool if key == "colorOutput" else str if key == "outputFormat" else int
            try:
                if isinstance(value, str):
                    value = parse_value(key, value)
                if expected is int and (isinstance(value, bool) or not isinstance(value, int) or value < 0):
                    raise ConfigError(f"Invalid number: {value!r}")
                if not isinstance(value, expected):
                    raise ConfigError(f"Invalid value: {value!r}")
            except ConfigError as e:
                logger.warning(f"Ignoring {key} in {config_path}: {e}")
                del checked[key]
                continue
            checked[key] = value
        return checked

    def _load_env_config(self) -> None:
        """Loads and merges configuration from environment variables."""
        for env_var, key in self.ENV_MAPPING.items():
            value = os.getenv(env_var)
            if not value:
                continue
            if key == "outputFormat" and value not in OUTPUT_FORMATS:
                logger.warning(f"Ignoring {env_var}={value}: expected one of {', '.join(OUTPUT_FORMATS)}")
                continue
            self.env_config[key] = value
            self.config[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        """Retrieves a configuration value.

        Args:
            key (str): The key (e.g., "outputFormat").
            default (Any): The value to return if the key is not set.

        Returns:
            Any: The configuration value or the default.
        """
        value = self.config.get(key)
        return default if value is None else value

    def set(self, key: str, value: Any) -> None:
        """Sets a configuration value in memory.

        String values are converted with `parse_value`, which also rejects
        unknown keys. Call `save` to persist the change.

        Args:
            key (str): The key to set.
            value (Any): The value to set.

        Raises:
            ConfigError: If the key or value is invalid.
        """
        if isinstance(value, str) and key not in INTERNAL_KEYS:
            value = parse_value(key, value)
        elif key not in VALID_KEYS and key not in INTERNAL_KEYS:
            raise ConfigError(f"Invalid configuration key: {key}")
        self.config[key] = value
        self._changes[key] = value
        if key in self._removed:
            self._removed.remove(key)

    def unset(self, key: str) -> None:
        """Removes a value so that the default (or environment) applies again."""
        self._changes.pop(key, None)
        self._removed.append(key)
        if key in self.env_config:
            self.config[key] = self.env_config[key]
        elif key in self.DEFAULT_CONFIG:
            self.config[key] = self.DEFAULT_CONFIG[key]
        else:
            self.config.pop(key, None)

    def get_api_token(self, override: Optional[str] = None) -> Optional[str]:
        """Returns the API token to use.

        Priority: the `override` (from ``--api-token``), then
        ``PYPI_API_TOKEN``, then the config file.
        """
        if override:
            return override
        if self.env_config.get("apiToken"):
            return self.env_config["apiToken"]
        if "apiToken" in self._removed:
            return self._changes.get("apiToken")
        return self._changes.get("apiToken") or self.file_config.get("apiToken")

    def _get_user_config(self) -> Dict[str, Any]:
        return self._load_file_config(user_config_path())

    def save(self) -> Path:
        """Saves the changed settings to the user config file.

        The file at `user_config_path` is read, updated with every value
        changed through `set` and `unset`, and rewritten whole. The directory
        is created with mode 0700 and the file is restricted to mode 0600.

        Returns:
            Path: The file written.

        Raises:
            ConfigError: If the configuration file cannot be written.
        """
        path = user_config_path()
        user_config = self._get_user_config()
        for key in self._removed:
            user_config.pop(key, None)
        user_config.update(self._changes)
        self._write(path, user_config)
        self.file_config = user_config
        self.path = path
        return path

    def init(self, api_token: Optional[str] = None, path: Optional[Path] = None) -> Path:
        """Writes a fresh config file holding the defaults and an optional token.

        Args:
            api_token (Optional[str]): The token to store, if any.
            path (Optional[Path]): Where to write. Defaults to the user config
                file.

        Returns:
            Path: The file written.
        """
        path = Path(path) if path else user_config_path()
        fresh: Dict[str, Any] = {}
        if api_token:
            fresh["apiToken"] = api_token
        fresh["repository"] = self.DEFAULT_CONFIG["repository"]
        fresh["outputFormat"] = self.DEFAULT_CONFIG["outputFormat"]
        fresh["colorOutput"] = self.DEFAULT_CONFIG["colorOutput"]
        self._write(path, fresh)

        self.file_config = fresh
        self.path = path
        self.config = dict(self.DEFAULT_CONFIG)
        self.config.update(fresh)
        self.config.update(self.env_config)
        return path

    def _write(self, path: Path, data: Dict[str, Any]) -> None:
        try:
            path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.chmod(path, 0o600)
        except OSError as e:
            raise ConfigError(f"Failed to save configuration to {path}: {e}")
        logger.info(f"Wrote configuration to {path}")

    def display(self) -> Dict[str, Any]:
        """Returns the file settings with the API token masked."""
        shown = dict(self.file_config)
        if shown.get("apiToken"):
            shown["apiToken"] = mask_api_token(str(shown["apiToken"]))
        return shown

    def __str__(self) -> str:
        """Returns a string representation of the configuration.

        Returns:
            str: A string showing the current configuration state, with the
            API token masked.
        """
        shown = dict(self.config)
        if shown.get("apiToken"):
            shown["apiToken"] = mask_api_token(str(shown["apiToken"]))
        return f"Config({shown})"
