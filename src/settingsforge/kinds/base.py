"""Settings kind declarations and base classes."""

import dataclasses
from dataclasses import dataclass, field
from enum import Enum, Flag, auto
from typing import Any, List, Optional, Tuple, Type

from ..errors import ConfigurationError

# Attribute set on a class by the declaration decorators.
KIND_ATTRIBUTE = "__settings_kind__"

# Attribute set on a function by @settings_provider.
PROVIDER_ATTRIBUTE = "__settings_provider__"

# Dataclass field metadata key marking a field as never serialized.
TRANSIENT = "settingsforge.transient"


class SettingsUsage(Enum):
    """How and when a settings kind is used."""
    EDITOR_USER = "EditorUser"
    EDITOR_PROJECT = "EditorProject"
    RUNTIME_PROJECT = "RuntimeProject"


class ExecutionMode(Enum):
    """Execution modes of the hosting process."""
    EDITING = "editing"
    RUNTIME = "runtime"


class Capability(Flag):
    """Capabilities a settings kind declares in its registration record."""
    NONE = 0
    SERIALIZABLE = auto()
    OVERRIDABLE = auto()
    LIVE_RELOADABLE = auto()


@dataclass(frozen=True)
class SettingsKind:
    """Static metadata of a settings kind."""
    cls: type
    usage: SettingsUsage
    display_name: Optional[str] = None
    filename_override: Optional[str] = None
    capabilities: Capability = Capability.SERIALIZABLE
    live_mode: ExecutionMode = ExecutionMode.RUNTIME
    override_files: Tuple[str, ...] = ()

    @property
    def type_name(self) -> str:
        return f"{self.cls.__module__}.{self.cls.__qualname__}"

    @property
    def name(self) -> str:
        return self.cls.__name__

    @property
    def filename(self) -> str:
        """The filename used to store the settings; the type's name if unset."""
        return self.filename_override or self.cls.__name__

    @property
    def display_path(self) -> str:
        prefix = "Preferences/" if self.usage is SettingsUsage.EDITOR_USER else "Project/"
        return prefix + (self.display_name or self.cls.__name__)

    def has(self, capability: Capability) -> bool:
        return bool(self.capabilities & capability)

    def matches_name(self, name: str) -> bool:
        """Check a command-line kind name against the filename or type name."""
        return name in (self.filename, self.cls.__name__)


class SubSettings:
    """Base class for a group of settings nested inside a SettingsObject."""

    _owner: Optional["SettingsObject"] = None

    def on_validate(self) -> None:
        """Called when a setting is modified through set()."""

    def set(self, field_name: str, value: Any) -> bool:
        """Set a setting and mark the owning settings object dirty."""
        if getattr(self, field_name) == value:
            return False
        setattr(self, field_name, value)
        self.on_validate()
        if self._owner is not None:
            self._owner.mark_dirty()
        return True


class SettingsObject:
    """Base class for settings kinds.

    Subclasses are dataclasses whose fields all have defaults, decorated with
    one of the declaration decorators below. Identity data (label, dirty flag,
    override origins) lives outside the dataclass fields and is never
    serialized.
    """

    _label: str = ""
    _dirty: bool = False
    _override_origins: Tuple[str, ...] = ()

    @property
    def label(self) -> str:
        return self._label

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    @property
    def override_origins(self) -> List[str]:
        """Origins of the overrides applied to this instance, in order."""
        return list(self._override_origins)

    @property
    def is_runtime_instance(self) -> bool:
        """True for a derived working copy with overrides applied."""
        return bool(self._override_origins)

    def mark_dirty(self) -> None:
        self._dirty = True

    def clear_dirty(self) -> None:
        self._dirty = False

    def on_validate(self) -> None:
        """Called when a setting is modified through set()."""

    def set(self, field_name: str, value: Any) -> bool:
        """Set a setting and mark the settings so that it will be saved."""
        if getattr(self, field_name) == value:
            return False
        setattr(self, field_name, value)
        self.on_validate()
        self.mark_dirty()
        return True


def transient_field(default: Any = None, **kwargs) -> Any:
    """A dataclass field excluded from serialization and overrides."""
    metadata = dict(kwargs.pop("metadata", {}) or {})
    metadata[TRANSIENT] = True
    if "default_factory" in kwargs:
        return field(metadata=metadata, **kwargs)
    return field(default=default, metadata=metadata, **kwargs)


def persistent_fields(obj: Any) -> List[dataclasses.Field]:
    """Dataclass fields of obj that take part in serialization and merging."""
    return [f for f in dataclasses.fields(obj) if not f.metadata.get(TRANSIENT)]


def bind_owner(settings: SettingsObject) -> None:
    """Point every nested SubSettings at the settings object that owns it."""

    def _bind(obj: Any) -> None:
        if not dataclasses.is_dataclass(obj) or isinstance(obj, type):
            return
        for f in dataclasses.fields(obj):
            value = getattr(obj, f.name)
            if isinstance(value, SubSettings):
                value._owner = settings
            _bind(value)

    _bind(settings)


def settings(
    usage: SettingsUsage,
    display_path: Optional[str] = None,
    filename: Optional[str] = None,
    capabilities: Capability = Capability.SERIALIZABLE,
    live_mode: ExecutionMode = ExecutionMode.RUNTIME,
    override_files: Tuple[str, ...] = (),
):
    """Declare a class as a settings kind."""

    def decorator(cls: type) -> type:
        kind = SettingsKind(
            cls=cls,
            usage=usage,
            display_name=display_path,
            filename_override=filename,
            capabilities=capabilities,
            live_mode=live_mode,
            override_files=tuple(override_files),
        )
        setattr(cls, KIND_ATTRIBUTE, kind)
        return cls

    return decorator


def runtime_project_settings(
    display_path: Optional[str] = None,
    filename: Optional[str] = None,
    allow_file_overrides: bool = True,
    allow_file_watchers: bool = False,
    override_files: Tuple[str, ...] = (),
):
    """Declare project settings that are available while the application runs."""
    capabilities = Capability.SERIALIZABLE
    if allow_file_overrides:
        capabilities |= Capability.OVERRIDABLE
        if allow_file_watchers:
            capabilities |= Capability.LIVE_RELOADABLE
    return settings(
        SettingsUsage.RUNTIME_PROJECT,
        display_path=display_path,
        filename=filename,
        capabilities=capabilities,
        override_files=override_files,
    )


def editor_project_settings(display_path: Optional[str] = None, filename: Optional[str] = None):
    """Declare project settings used only by tooling."""
    return settings(SettingsUsage.EDITOR_PROJECT, display_path=display_path, filename=filename)


def editor_user_settings(display_path: Optional[str] = None, filename: Optional[str] = None):
    """Declare per-user settings, stored per project folder."""
    return settings(SettingsUsage.EDITOR_USER, display_path=display_path, filename=filename)


def settings_provider(func):
    """Mark a kind's own registration hook; the kind opts out of discovery."""
    target = func.__func__ if isinstance(func, (staticmethod, classmethod)) else func
    setattr(target, PROVIDER_ATTRIBUTE, True)
    return func


def kind_of(cls: Type) -> SettingsKind:
    """Return the declared metadata of a settings kind.

    Raises:
        ConfigurationError: If the class carries no declaration.
    """
    kind = getattr(cls, KIND_ATTRIBUTE, None)
    if not isinstance(kind, SettingsKind):
        available = ", ".join(
            ["runtime_project_settings", "editor_project_settings", "editor_user_settings"]
        )
        raise ConfigurationError(
            f"Settings declaration missing for type: {getattr(cls, '__name__', cls)}. "
            f"Please use either: {available}"
        )
    if kind.cls is not cls:
        # Declarations are inherited, the identity is always the requested class.
        kind = dataclasses.replace(kind, cls=cls)
    return kind


def has_provider_hook(cls: type) -> bool:
    """True if the class defines its own @settings_provider hook."""
    for value in vars(cls).values():
        target = value.__func__ if isinstance(value, (staticmethod, classmethod)) else value
        if getattr(target, PROVIDER_ATTRIBUTE, False):
            return True
    return False
