"""Layered, live-reloadable settings singletons with cached kind discovery."""

from .errors import (
    ConfigurationError,
    DiscoveryScanError,
    OverrideParseError,
    OverridePathError,
    SettingsError,
    StorageError,
)
from .kinds import (
    Capability,
    ExecutionMode,
    SettingsKind,
    SettingsObject,
    SettingsUsage,
    SubSettings,
    editor_project_settings,
    editor_user_settings,
    runtime_project_settings,
    settings,
    settings_provider,
    transient_field,
)
from .lifecycle import LifecycleState, SettingsRegistry, get_active, get_registry, set_registry
from .reload import ExecutionContext, LoopContext, QueueContext

__version__ = "0.1.0"

__all__ = [
    "Capability",
    "ConfigurationError",
    "DiscoveryScanError",
    "ExecutionContext",
    "ExecutionMode",
    "LifecycleState",
    "LoopContext",
    "OverrideParseError",
    "OverridePathError",
    "QueueContext",
    "SettingsError",
    "SettingsKind",
    "SettingsObject",
    "SettingsRegistry",
    "SettingsUsage",
    "StorageError",
    "SubSettings",
    "editor_project_settings",
    "editor_user_settings",
    "get_active",
    "get_registry",
    "runtime_project_settings",
    "set_registry",
    "settings",
    "settings_provider",
    "transient_field",
]
