"""Settings kind declarations."""

from .base import (
    Capability,
    ExecutionMode,
    SettingsKind,
    SettingsObject,
    SettingsUsage,
    SubSettings,
    bind_owner,
    editor_project_settings,
    editor_user_settings,
    has_provider_hook,
    kind_of,
    persistent_fields,
    runtime_project_settings,
    settings,
    settings_provider,
    transient_field,
)

__all__ = [
    "Capability",
    "ExecutionMode",
    "SettingsKind",
    "SettingsObject",
    "SettingsUsage",
    "SubSettings",
    "bind_owner",
    "editor_project_settings",
    "editor_user_settings",
    "has_provider_hook",
    "kind_of",
    "persistent_fields",
    "runtime_project_settings",
    "settings",
    "settings_provider",
    "transient_field",
]
