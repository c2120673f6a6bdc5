"""
Tests for configuration handling.

Tests cover:
- Environment validation
- Database URL resolution and the override variable
- The get_config() singleton
"""

import pytest

from menu_costing.utils import config as config_module
from menu_costing.utils.config import Config, get_config, reset_config


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    monkeypatch.delenv("MENU_COSTING_DATABASE_URL", raising=False)
    monkeypatch.delenv("MENU_COSTING_ENV", raising=False)
    reset_config()
    yield
    reset_config()


def test_unknown_environment():
    with pytest.raises(ValueError, match="Unknown environment"):
        Config("staging")


def test_test_environment_is_in_memory():
    assert Config("test").database_url == "sqlite:///:memory:"


def test_override_wins(monkeypatch):
    monkeypatch.setenv("MENU_COSTING_DATABASE_URL", "sqlite:///elsewhere.db")
    assert Config("test").database_url == "sqlite:///elsewhere.db"


def test_production_path(monkeypatch, tmp_path):
    monkeypatch.setattr(config_module.Path, "home", lambda: tmp_path)
    config = Config("production")
    assert config.database_url == f"sqlite:///{tmp_path.as_posix()}/.menu_costing/menu_costing.db"
    assert (tmp_path / ".menu_costing").is_dir()
    assert config.is_production


def test_singleton_from_environment(monkeypatch):
    monkeypatch.setenv("MENU_COSTING_ENV", "test")
    first = get_config()
    assert first.environment == "test"
    assert get_config("development") is first
