"""Configuration of the settings resolution core."""

import json
import os
import sys
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from loguru import logger

ENV_PREFIX = "SETTINGSFORGE_"


@dataclass
class ForgeConfig:
    """Where settings live and how the core reports what it does."""
    # Root directory of persisted base instances
    settings_root: str = "./settings"

    # Override files
    override_directory: str = "."
    main_override_file: Optional[str] = "Settings.json"

    # Discovery cache
    discovery_cache_file: str = "./settings/.discovery_cache.json"

    # Environment identifier for per-user settings; current folder name if None
    project_folder: Optional[str] = None

    # Logging configuration
    log_level: str = "INFO"
    log_file: Optional[str] = None

    def get_project_folder(self) -> str:
        """Get the environment identifier keying per-user settings."""
        return self.project_folder or Path.cwd().name

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "settings_root": self.settings_root,
            "override_directory": self.override_directory,
            "main_override_file": self.main_override_file,
            "discovery_cache_file": self.discovery_cache_file,
            "project_folder": self.project_folder,
            "log_level": self.log_level,
            "log_file": self.log_file,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ForgeConfig":
        """Create config from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


def load_config(config_file: Optional[str] = None) -> ForgeConfig:
    """Load config from file and environment variables."""
    # Load environment variables
    load_dotenv()

    config = ForgeConfig()

    # Load from config file if provided
    if config_file and Path(config_file).exists():
        with open(config_file, "r", encoding="utf-8") as f:
            config = ForgeConfig.from_dict(json.load(f))

    # Environment variables win over the file
    for name in config.to_dict():
        value = os.getenv(ENV_PREFIX + name.upper())
        if value:
            setattr(config, name, value)

    return config


def save_config(config: ForgeConfig, config_file: str) -> None:
    """Save config to file."""
    config_path = Path(config_file)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w", encoding="utf-8") as f:
        json.dump(config.to_dict(), f, indent=2)


def configure_logging(config: ForgeConfig) -> None:
    """Route loguru output to stderr, and the log file if configured."""
    logger.remove()
    logger.add(sys.stderr, level=config.log_level)
    if config.log_file:
        logger.add(config.log_file, level=config.log_level, rotation="10 MB")
