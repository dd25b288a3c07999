"""Shared fixtures."""

from pathlib import Path

import pytest

from settingsforge import SettingsRegistry
from settingsforge.config import ForgeConfig


@pytest.fixture
def forge_config(tmp_path: Path) -> ForgeConfig:
    overrides = tmp_path / "overrides"
    overrides.mkdir()
    return ForgeConfig(
        settings_root=str(tmp_path / "settings"),
        override_directory=str(overrides),
        discovery_cache_file=str(tmp_path / "cache" / "discovery.json"),
        project_folder="test-project",
    )


@pytest.fixture
def override_dir(forge_config: ForgeConfig) -> Path:
    return Path(forge_config.override_directory)


@pytest.fixture
def make_registry(forge_config: ForgeConfig):
    def _make(argv=(), **kwargs) -> SettingsRegistry:
        return SettingsRegistry(forge_config, argv=list(argv), **kwargs)

    return _make

