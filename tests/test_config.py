"""Tests for configuration loading."""

import json

import pytest

from settingsforge.config import ForgeConfig, load_config, save_config


@pytest.fixture(autouse=True)
def clean_environment(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ForgeConfig().to_dict():
        monkeypatch.delenv(f"SETTINGSFORGE_{name.upper()}", raising=False)


def test_defaults():
    """Test the built-in configuration defaults."""
    config = load_config()

    assert config.settings_root == "./settings"
    assert config.main_override_file == "Settings.json"
    assert config.log_level == "INFO"


def test_project_folder_defaults_to_working_directory(tmp_path):
    """Test project folder defaults to working directory."""
    assert ForgeConfig().get_project_folder() == tmp_path.name
    assert ForgeConfig(project_folder="game").get_project_folder() == "game"


def test_save_and_load_round_trip(tmp_path):
    """Test save and load round trip."""
    config = ForgeConfig(settings_root="/data/settings", log_level="DEBUG", project_folder="game")
    path = tmp_path / "nested" / "config.json"

    save_config(config, str(path))

    assert load_config(str(path)) == config


def test_from_dict_ignores_unknown_keys():
    """Test from dict ignores unknown keys."""
    config = ForgeConfig.from_dict({"settings_root": "/x", "model_name": "unused"})
    assert config.settings_root == "/x"


def test_environment_overrides_file(tmp_path, monkeypatch):
    """Test environment overrides file."""
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"settings_root": "/from/file", "log_level": "WARNING"}))
    monkeypatch.setenv("SETTINGSFORGE_SETTINGS_ROOT", "/from/env")

    config = load_config(str(path))

    assert config.settings_root == "/from/env"
    assert config.log_level == "WARNING"


def test_missing_config_file_uses_defaults(tmp_path):
    """Test missing config file uses defaults."""
    assert load_config(str(tmp_path / "missing.json")) == ForgeConfig()
