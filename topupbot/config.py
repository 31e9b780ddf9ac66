"""Configuration management for the top-up delivery service.

Process settings come from environment variables (see :class:`AppConfig`),
the endpoint and catalog document from a JSON file (see
:class:`ConfigService`).
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from topupbot.donations.catalog import DonationCatalog, DonationCategory
from topupbot.rconclient import RCONManagerSettings, RetryPolicy

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.DEBUG)

_ENV_REFERENCE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ConfigLoadError(Exception):
    """Raised when the JSON configuration cannot be read or is not loaded."""


def configure_logging(app_config: AppConfig) -> None:
    """Configure logging based on the application configuration.

    :param app_config: The application configuration instance
    """
    if not app_config.logging_level:
        logging.basicConfig(level=logging.INFO, force=True)
        return

    numeric_level = getattr(logging, app_config.logging_level.upper(), None)
    if not isinstance(numeric_level, int):
        LOGGER.warning("Invalid log level: %s, using INFO", app_config.logging_level)
        numeric_level = logging.INFO
    logging.basicConfig(level=numeric_level, force=True)


@dataclass
class AppConfig:
    """Application configuration loaded from environment variables.

    **Usage:**

    Load a .env file first if needed, then create the config:

    .. code-block:: python

        from dotenv import load_dotenv
        load_dotenv('.env')
        config = AppConfig()
    """

    DEFAULT_CONFIG_PATH: str = "config/config.json"
    DEFAULT_DATABASE_PATH: str = "topupbot.db"
    DEFAULT_ENDPOINT: str = "main"

    config_path: str = field(
        default_factory=lambda: os.getenv("CONFIG_PATH", AppConfig.DEFAULT_CONFIG_PATH),
    )

    db_path: str = field(
        default_factory=lambda: os.getenv("DB_PATH", AppConfig.DEFAULT_DATABASE_PATH),
    )

    logging_level: str | None = field(
        default_factory=lambda: os.getenv("LOGGING_LEVEL"),
    )

    # Admin API configuration
    admin_api_key: str = field(
        default_factory=lambda: os.getenv("ADMIN_API_KEY", ""),
    )
    root_path: str = field(
        default_factory=lambda: os.getenv("ROOT_PATH", ""),
    )

    # RCON configuration
    rcon_connect_timeout: int = field(
        default_factory=lambda: AppConfig._getenv_int_required("RCON_CONNECT_TIMEOUT", 8),
    )
    rcon_command_timeout: int = field(
        default_factory=lambda: AppConfig._getenv_int_required("RCON_COMMAND_TIMEOUT", 10),
    )
    rcon_close_timeout: int = field(
        default_factory=lambda: AppConfig._getenv_int_required("RCON_CLOSE_TIMEOUT", 3),
    )
    rcon_max_retries: int = field(
        default_factory=lambda: AppConfig._getenv_int_required("RCON_MAX_RETRIES", 2),
    )
    rcon_retry_backoff: int = field(
        default_factory=lambda: AppConfig._getenv_int_required("RCON_RETRY_BACKOFF", 1),
    )
    default_endpoint: str = field(
        default_factory=lambda: os.getenv("DEFAULT_ENDPOINT", AppConfig.DEFAULT_ENDPOINT),
    )

    def __post_init__(self) -> None:
        """Post-initialization validation."""
        for name in ("rcon_connect_timeout", "rcon_command_timeout", "rcon_close_timeout"):
            if getattr(self, name) <= 0:
                msg = f"{name.upper()} must be a positive integer"
                raise ValueError(msg)
        if self.rcon_max_retries < 0:
            msg = "RCON_MAX_RETRIES must not be negative"
            raise ValueError(msg)
        if self.rcon_retry_backoff < 0:
            msg = "RCON_RETRY_BACKOFF must not be negative"
            raise ValueError(msg)
        if not self.admin_api_key:
            LOGGER.warning("ADMIN_API_KEY is not set, the admin API will reject every request")

    @property
    def rcon_settings(self) -> RCONManagerSettings:
        """Create the RCON manager settings from this configuration.

        :return: Configured RCONManagerSettings instance
        :rtype: RCONManagerSettings
        """
        return RCONManagerSettings(
            connect_timeout=self.rcon_connect_timeout,
            command_timeout=self.rcon_command_timeout,
            close_timeout=self.rcon_close_timeout,
            retry_policy=RetryPolicy(
                max_retries=self.rcon_max_retries,
                backoff_seconds=self.rcon_retry_backoff,
            ),
        )

    @staticmethod
    def _getenv_int_required(key: str, default: int) -> int:
        """Get an integer environment variable with a default.

        :param key: Environment variable name
        :type key: str
        :param default: Default value if not set
        :type default: int
        :return: The environment variable value as integer or default
        :rtype: int
        :raises ValueError: If value cannot be converted to int
        """
        value_str = os.getenv(key)

        if value_str is None:
            return default

        try:
            return int(value_str)
        except ValueError as e:
            msg = f"Environment variable {key} must be an integer, got: {value_str}"
            raise ValueError(msg) from e


def _expand_env(value: Any) -> Any:
    """Replace ``${VAR}`` references in every string of a JSON value.

    Unset variables are left as written.
    """
    if isinstance(value, str):
        return _ENV_REFERENCE.sub(
            lambda match: os.environ.get(match.group(1), match.group(0)),
            value,
        )
    if isinstance(value, dict):
        return {key: _expand_env(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand_env(item) for item in value]
    return value


class ConfigService:
    """Loads the JSON document holding the RCON endpoints and the catalog."""

    def __init__(self, config_path: str | Path) -> None:
        """Create an unloaded service.

        :param config_path: Path of the JSON configuration file
        """
        self._config_path = Path(config_path)
        self._config: dict[str, Any] | None = None
        self._loaded_at: datetime | None = None

    @property
    def config_path(self) -> Path:
        """Path of the JSON configuration file."""
        return self._config_path

    @property
    def loaded_at(self) -> datetime | None:
        """When the configuration was last loaded."""
        return self._loaded_at

    def load(self) -> dict[str, Any]:
        """Read and parse the configuration file.

        On failure the previously loaded configuration is kept.

        :return: The parsed configuration
        :raises ConfigLoadError: If the file is missing or not a JSON object
        """
        try:
            raw_text = self._config_path.read_text(encoding="utf-8")
        except OSError as e:
            msg = f"Cannot read configuration file {self._config_path}: {e}"
            raise ConfigLoadError(msg) from e

        try:
            config = json.loads(raw_text)
        except json.JSONDecodeError as e:
            msg = f"JSON syntax error in configuration file {self._config_path}: {e}"
            raise ConfigLoadError(msg) from e

        if not isinstance(config, dict):
            msg = f"Configuration file {self._config_path} must hold a JSON object"
            raise ConfigLoadError(msg)

        self._config = _expand_env(config)
        self._loaded_at = datetime.now(UTC)
        LOGGER.info(
            "Configuration loaded from %s, sections: %s",
            self._config_path,
            ", ".join(self._config),
        )
        return self._config

    def reload(self) -> dict[str, Any]:
        """Read the configuration file again."""
        return self.load()

    def get_config(self) -> dict[str, Any]:
        """Return the loaded configuration.

        :raises ConfigLoadError: If the configuration was never loaded
        """
        if self._config is None:
            msg = "Configuration not loaded, call load() first"
            raise ConfigLoadError(msg)
        return self._config

    def rcon_endpoints(self) -> dict[str, Any]:
        """Return the raw ``rcon_servers`` section.

        :raises ConfigLoadError: If the section is not an object
        """
        return self._section("rcon_servers")

    def donation_categories(self) -> dict[str, Any]:
        """Return the raw ``donation_categories`` section.

        :raises ConfigLoadError: If the section is not an object
        """
        return self._section("donation_categories")

    def _section(self, name: str) -> dict[str, Any]:
        section = self.get_config().get(name) or {}
        if not isinstance(section, dict):
            msg = f"{name} in {self._config_path} must be an object"
            raise ConfigLoadError(msg)
        return section

    def catalog(self) -> DonationCatalog:
        """Build the donation catalog from the loaded configuration."""
        return DonationCatalog.from_config(self.donation_categories())

    def validate(self) -> list[str]:
        """Return the problems found in the loaded configuration.

        :return: Human readable problems, empty when the configuration is valid
        """
        try:
            config = self.get_config()
        except ConfigLoadError as e:
            return [str(e)]

        errors = []

        servers = config.get("rcon_servers") or {}
        if not isinstance(servers, dict):
            errors.append("rcon_servers must be an object")
            servers = {}
        for key, server in servers.items():
            if not isinstance(server, dict):
                errors.append(f"RCON server {key} must be an object")
            elif server.get("enabled") is True and (
                not server.get("host") or not server.get("password")
            ):
                errors.append(f"RCON server {key} is missing host or password")

        try:
            catalog = self.catalog()
        except ConfigLoadError as e:
            errors.append(str(e))
            return errors

        for category in DonationCategory:
            for item in catalog.items_in(category):
                errors.extend(
                    f"{category.value} item {item.id}: {problem}"
                    for problem in catalog.validate_item(category, item)
                )

        return errors


def load_config_from_env(env_file: str | Path | None) -> AppConfig:
    """Load application configuration from environment variables.

    :param env_file: Optional .env file loaded before reading the environment
    :return: An AppConfig instance populated with environment variable values
    """
    if env_file:
        load_dotenv(dotenv_path=env_file)

    return AppConfig()
