"""
Unit tests for configuration management system.
"""

import json
import os
from unittest.mock import patch

import pytest
import yaml

from cask_watchtower.models.config import Configuration
from cask_watchtower.services.config_manager import ConfigurationManager


class TestConfigurationManager:
    """Test ConfigurationManager functionality."""

    def create_config(self, directory, config_data: dict, file_format: str = "yaml") -> str:
        """Write a configuration file into a directory."""
        path = directory / f"config.{file_format}"
        with open(path, "w", encoding="utf-8") as f:
            if file_format == "json":
                json.dump(config_data, f, indent=2)
            else:
                yaml.dump(config_data, f, default_flow_style=False)
        return str(path)

    def get_valid_config_data(self) -> dict:
        """Get valid configuration data for testing."""
        return {
            "source": {"base_url": "https://smws.eu", "max_pages": 50},
            "browser": {"headless": True, "navigation_timeout": 30},
            "database": {"path": "data/test.db"},
            "discord": {"bot_token": "test-token", "max_retries": 2},
            "schedule": {
                "live_interval_hours": 12,
                "archive_interval_hours": 72,
                "freshness_days": 5,
            },
            "logging": {"level": "DEBUG", "directory": "logs"},
        }

    def test_load_yaml(self, tmp_path):
        path = self.create_config(tmp_path, self.get_valid_config_data())

        config = ConfigurationManager(path).load_config()

        assert isinstance(config, Configuration)
        assert config.source.max_pages == 50
        assert config.browser.navigation_timeout == 30
        assert config.database.path == "data/test.db"
        assert config.discord.bot_token == "test-token"
        assert config.discord.max_retries == 2
        assert config.schedule.freshness_days == 5
        assert config.logging.level == "DEBUG"

    def test_load_json(self, tmp_path):
        path = self.create_config(tmp_path, self.get_valid_config_data(), "json")

        config = ConfigurationManager(path).load_config()

        assert config.schedule.live_interval_hours == 12

    def test_defaults_fill_missing_sections(self, tmp_path):
        path = self.create_config(tmp_path, {"discord": {"bot_token": "t"}})

        config = ConfigurationManager(path).load_config()

        assert config.source.base_url == "https://smws.eu"
        assert config.source.live_listing_path.endswith("filter-page={page}")
        assert config.schedule.freshness_days == 3
        assert config.origin_lookup_path is None

    def test_env_var_expansion(self, tmp_path, mock_env_vars):
        data = self.get_valid_config_data()
        data["discord"]["bot_token"] = "${DISCORD_BOT_TOKEN}"
        path = self.create_config(tmp_path, data)

        config = ConfigurationManager(path).load_config()

        assert config.discord.bot_token == "test_bot_token"

    def test_missing_env_var_rejected_when_discord_required(self, tmp_path):
        data = self.get_valid_config_data()
        data["discord"]["bot_token"] = "${CASK_WATCHTOWER_UNSET_TOKEN}"
        path = self.create_config(tmp_path, data)

        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("CASK_WATCHTOWER_UNSET_TOKEN", None)
            with pytest.raises(ValueError, match="Discord bot token is required"):
                ConfigurationManager(path).load_config()

            config = ConfigurationManager(path).load_config(require_discord=False)

        assert config.discord.bot_token == "__MISSING_ENV_VAR_CASK_WATCHTOWER_UNSET_TOKEN__"

    def test_unknown_key_rejected(self, tmp_path):
        data = self.get_valid_config_data()
        data["source"]["max_page"] = 10
        path = self.create_config(tmp_path, data)

        with pytest.raises(ValueError, match="Unknown keys in configuration section 'source'"):
            ConfigurationManager(path).load_config()

    def test_section_must_be_mapping(self, tmp_path):
        data = self.get_valid_config_data()
        data["schedule"] = ["daily"]
        path = self.create_config(tmp_path, data)

        with pytest.raises(ValueError, match="must be a mapping"):
            ConfigurationManager(path).load_config()

    def test_invalid_values_rejected(self, tmp_path):
        data = self.get_valid_config_data()
        data["logging"]["level"] = "LOUD"
        path = self.create_config(tmp_path, data)

        with pytest.raises(ValueError, match="Log level"):
            ConfigurationManager(path).load_config()

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("source: [unclosed", encoding="utf-8")

        with pytest.raises(ValueError, match="Invalid YAML"):
            ConfigurationManager(str(path)).load_config()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ConfigurationManager(str(tmp_path / "absent.yaml")).load_config()

    def test_find_config_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "config").mkdir()
        self.create_config(tmp_path / "config", self.get_valid_config_data())

        assert ConfigurationManager().config_path == "config/config.yaml"

    def test_find_config_file_points_at_example(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "config.example.yaml").write_text("{}", encoding="utf-8")

        with pytest.raises(ValueError, match="config.example.yaml"):
            ConfigurationManager()

    def test_validate_config_file_tolerates_missing_token(self, tmp_path):
        data = self.get_valid_config_data()
        del data["discord"]
        path = self.create_config(tmp_path, data)

        assert ConfigurationManager(path).validate_config_file(path) is True

    def test_validate_config_file_reports_errors(self, tmp_path):
        data = self.get_valid_config_data()
        data["source"]["base_url"] = "not a url"
        path = self.create_config(tmp_path, data)

        with pytest.raises(ValueError, match="Configuration validation failed"):
            ConfigurationManager(path).validate_config_file(path)

    def test_template_is_loadable(self, tmp_path, mock_env_vars):
        path = self.create_config(tmp_path, ConfigurationManager.get_config_template())

        config = ConfigurationManager(path).load_config()

        assert config.discord.bot_token == "test_bot_token"

    def test_example_config_is_valid(self):
        example = os.path.join(
            os.path.dirname(__file__), "..", "config", "config.example.yaml"
        )

        assert ConfigurationManager(example).validate_config_file(example) is True
