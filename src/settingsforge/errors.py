"""Error taxonomy for settings resolution and discovery."""

from typing import Optional


class SettingsError(Exception):
    """Base class for all settingsforge errors."""


class ConfigurationError(SettingsError):
    """A settings kind is missing its declaration or cannot be constructed."""


class OverrideParseError(SettingsError):
    """An override file or argument could not be parsed."""

    def __init__(self, origin: str, message: str):
        super().__init__(f"{origin}: {message}")
        self.origin = origin


class OverridePathError(SettingsError):
    """An override targets a field path that does not exist."""

    def __init__(self, path: str, message: str = "field path not found"):
        super().__init__(f"{path}: {message}")
        self.path = path


class StorageError(SettingsError):
    """The backing store of a base instance is unreadable or unwritable."""

    def __init__(self, path, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path


class DiscoveryScanError(SettingsError):
    """A declared settings kind does not derive from SettingsObject."""

    def __init__(self, type_name: str, location: Optional[str] = None):
        super().__init__(
            f"{type_name} is declared as a settings kind but does not inherit from "
            f"SettingsObject. Remove the declaration or fix the inheritance."
        )
        self.type_name = type_name
        self.location = location
