"""
Pytest configuration and shared fixtures.

This module provides common fixtures and configuration for all tests
in the Cask Watchtower test suite. Canned pages and fake browser
collaborators live in catalog_fixtures.
"""

import os
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from cask_watchtower.models.alert import AlertDefinition, AlertKind
from cask_watchtower.models.catalog import CatalogRecord
from cask_watchtower.models.config import (
    Configuration,
    DiscordConfig,
    SourceSiteConfig,
)
from cask_watchtower.models.delivery import DeliveryResult
from cask_watchtower.services.persistence import SQLitePersistenceGateway

from catalog_fixtures import BASE_URL, FIXED_NOW


@pytest.fixture
def source_config():
    """Source configuration with no settle delays."""
    return SourceSiteConfig(
        base_url=BASE_URL,
        listing_settle_delay=0.0,
        detail_settle_delay=0.0,
        max_pages=20,
    )


@pytest.fixture
def sample_configuration(source_config, tmp_path):
    """Create a sample Configuration for testing."""
    config = Configuration(
        source=source_config,
        discord=DiscordConfig(bot_token="test-bot-token", retry_delay=0.0),
    )
    config.database.path = str(tmp_path / "mirror.db")
    config.logging.directory = str(tmp_path / "logs")
    return config


@pytest.fixture
def gateway(tmp_path):
    """SQLite gateway on a fresh database file with a fixed clock."""
    return SQLitePersistenceGateway(str(tmp_path / "mirror.db"), clock=lambda: FIXED_NOW)


@pytest.fixture
def sample_record():
    """Create a sample CatalogRecord for testing."""
    return CatalogRecord(
        natural_code="33.123",
        display_name="Smoky bacon butty",
        source_url=f"{BASE_URL}/smoky-bacon-butty",
        origin_group_id="33",
        sequence_no="123",
        price_text="£85.00",
        strength="58.9%",
        age_years="18 years",
        cask_type="1st fill ex-bourbon barrel",
        flavour_profile="Peated",
        origin_group_name="Ardbeg",
        region_name="Islay",
    )


@pytest.fixture
def sample_alert():
    """Create a sample AlertDefinition for testing."""
    return AlertDefinition(
        owner_user_id="1001",
        scope_id="555",
        kind=AlertKind.ORIGIN,
        value="Ardbeg",
        id=1,
    )


@pytest.fixture
def mock_channel():
    """Create a mock notification channel that always delivers."""
    channel = Mock()
    channel.deliver_private_message.return_value = DeliveryResult(
        success=True, delivery_time=datetime.now(timezone.utc), error_message=None
    )
    channel.test_connection.return_value = True
    return channel


@pytest.fixture
def mock_env_vars():
    """Mock environment variables for testing."""
    env_vars = {"DISCORD_BOT_TOKEN": "test_bot_token"}

    original_values = {}
    for key, value in env_vars.items():
        original_values[key] = os.environ.get(key)
        os.environ[key] = value

    yield env_vars

    for key, original_value in original_values.items():
        if original_value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = original_value


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "slow: mark test as slow running")
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "unit: mark test as unit test")


def pytest_collection_modifyitems(config, items):
    """Add the unit marker to every test not marked integration or slow."""
    for item in items:
        if not any(
            marker.name in ["integration", "slow"] for marker in item.iter_markers()
        ):
            item.add_marker(pytest.mark.unit)
