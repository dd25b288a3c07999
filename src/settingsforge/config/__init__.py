"""Configuration management modules."""

from .settings import ForgeConfig, configure_logging, load_config, save_config

__all__ = ["ForgeConfig", "configure_logging", "load_config", "save_config"]
