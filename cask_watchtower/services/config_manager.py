"""
Configuration management system for Cask Watchtower.
"""

import json
import os
from dataclasses import fields
from typing import Any, Dict, Optional, Type, TypeVar

import yaml

from ..models.config import (
    BrowserConfig,
    Configuration,
    DatabaseConfig,
    DiscordConfig,
    LoggingConfig,
    ScheduleConfig,
    SourceSiteConfig,
)

T = TypeVar("T")

MISSING_ENV_PREFIX = "__MISSING_ENV_VAR_"


class ConfigurationManager:
    """Manages loading and validation of system configuration."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to the configuration file. If None, uses default paths.
        """
        self.config_path = config_path or self._find_config_file()

    def _find_config_file(self) -> str:
        """Find the configuration file in standard locations."""
        possible_paths = [
            "config/config.yaml",
            "config/config.yml",
            "config/config.json",
            "config.yaml",
            "config.yml",
            "config.json",
        ]

        for path in possible_paths:
            if os.path.exists(path):
                return path

        if os.path.exists("config/config.example.yaml"):
            raise ValueError(
                "No configuration file found. Please copy 'config/config.example.yaml' "
                "to 'config/config.yaml' and customize it for your needs."
            )

        raise ValueError(
            "No configuration file found. Please create a configuration file "
            "at one of these locations: " + ", ".join(possible_paths)
        )

    def _read_raw(self, config_path: str) -> Dict[str, Any]:
        with open(config_path, "r", encoding="utf-8") as f:
            if config_path.endswith(".json"):
                raw_config = json.load(f)
            else:
                raw_config = yaml.safe_load(f)
        return raw_config or {}

    def load_config(self, require_discord: bool = True) -> Configuration:
        """
        Load configuration from file.

        Args:
            require_discord: Whether Discord credentials must be present

        Returns:
            Configuration object with validated settings.

        Raises:
            ValueError: If configuration is invalid or file cannot be read.
            FileNotFoundError: If configuration file doesn't exist.
        """
        if not os.path.exists(self.config_path):
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        try:
            raw_config = self._expand_env_vars(self._read_raw(self.config_path))
            config = self._parse_config(raw_config)
            config.validate(require_discord=require_discord)
            return config

        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file: {e}")
        except ValueError:
            raise
        except Exception as e:
            raise ValueError(f"Error loading configuration: {e}")

    def _expand_env_vars(self, obj: Any) -> Any:
        """
        Recursively expand ${VAR_NAME} values from the environment.

        Unset variables become a __MISSING_ENV_VAR_<NAME>__ marker that the
        owning section's validate() rejects if it is actually needed.
        """
        if isinstance(obj, dict):
            return {key: self._expand_env_vars(value) for key, value in obj.items()}
        elif isinstance(obj, list):
            return [self._expand_env_vars(item) for item in obj]
        elif isinstance(obj, str):
            if obj.startswith("${") and obj.endswith("}"):
                var_name = obj[2:-1]
                env_value = os.getenv(var_name)
                if env_value is None:
                    return f"{MISSING_ENV_PREFIX}{var_name}__"
                return env_value
            return obj
        else:
            return obj

    @staticmethod
    def _build_section(cls: Type[T], data: Optional[Dict[str, Any]], section: str) -> T:
        """Build a config dataclass from a mapping, rejecting unknown keys."""
        data = data or {}
        if not isinstance(data, dict):
            raise ValueError(f"Configuration section '{section}' must be a mapping")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(
                f"Unknown keys in configuration section '{section}': {', '.join(unknown)}"
            )
        return cls(**data)

    def _parse_config(self, raw_config: Dict[str, Any]) -> Configuration:
        """Parse raw configuration dictionary into Configuration object."""
        try:
            return Configuration(
                source=self._build_section(
                    SourceSiteConfig, raw_config.get("source"), "source"
                ),
                browser=self._build_section(
                    BrowserConfig, raw_config.get("browser"), "browser"
                ),
                database=self._build_section(
                    DatabaseConfig, raw_config.get("database"), "database"
                ),
                discord=self._build_section(
                    DiscordConfig, raw_config.get("discord"), "discord"
                ),
                schedule=self._build_section(
                    ScheduleConfig, raw_config.get("schedule"), "schedule"
                ),
                logging=self._build_section(
                    LoggingConfig, raw_config.get("logging"), "logging"
                ),
                origin_lookup_path=raw_config.get("origin_lookup_path"),
            )

        except (KeyError, TypeError) as e:
            raise ValueError(f"Error parsing configuration: {e}")

    def validate_config_file(self, config_path: str) -> bool:
        """
        Validate a configuration file without loading it.

        Missing environment variables are tolerated.

        Raises:
            ValueError: If configuration is invalid with detailed error message.
        """
        if not os.path.exists(config_path):
            raise ValueError(f"Configuration file not found: {config_path}")

        try:
            raw_config = self._expand_env_vars(self._read_raw(config_path))
            config = self._parse_config(raw_config)
            config.validate(require_discord=False)
            return True

        except Exception as e:
            raise ValueError(f"Configuration validation failed: {e}")

    @staticmethod
    def get_config_template() -> Dict[str, Any]:
        """
        Get a template configuration dictionary.

        Returns:
            Dictionary with example configuration structure.
        """
        return {
            "source": {
                "base_url": "https://smws.eu",
                "max_pages": 200,
            },
            "browser": {
                "headless": True,
                "navigation_timeout": 45.0,
            },
            "database": {"path": "data/cask_watchtower.db"},
            "discord": {"bot_token": "${DISCORD_BOT_TOKEN}"},
            "schedule": {
                "live_interval_hours": 24,
                "archive_interval_hours": 48,
                "freshness_days": 3,
            },
            "logging": {"level": "INFO", "directory": "logs"},
        }
