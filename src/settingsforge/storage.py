"""Backing store for base instances and JSON serialization of settings objects."""

import dataclasses
import json
import shutil
from enum import Enum
from pathlib import Path, PurePath
from typing import Any, Dict, Optional

from loguru import logger

from .config import ForgeConfig
from .errors import StorageError
from .kinds import SettingsKind, SettingsUsage, bind_owner, persistent_fields
from .overrides import MergeEngine


def to_json_value(value: Any) -> Any:
    """Convert a settings value to plain JSON data, skipping transient fields."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_json_value(getattr(value, f.name)) for f in persistent_fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, PurePath):
        return str(value)
    if isinstance(value, dict):
        return {str(k): to_json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_json_value(v) for v in value]
    return value


def populate(target: Any, data: Dict[str, Any], origin: str = "<data>") -> int:
    """Populate target from a field tree, logging skipped fields."""
    applied, warnings = MergeEngine().apply_patch(target, data, origin=origin)
    for message in warnings:
        logger.warning(message)
    return applied


def filename_with_extension(filename: str, extension: str = ".json") -> str:
    if not filename.endswith(extension):
        filename += extension
    return filename


def save_as_file(obj: Any, filename: str) -> Path:
    """Write the full field tree of obj, minus identity fields, to a JSON file.

    Raises:
        StorageError: If the file cannot be written.
    """
    path = Path(filename_with_extension(filename))
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(to_json_value(obj), f, indent=2)
    except (OSError, TypeError, ValueError) as e:
        raise StorageError(path, f"cannot write settings: {e}") from e
    return path


def load_from_file(obj: Any, filename: str) -> bool:
    """Populate obj from a JSON file; False if the file does not exist.

    Raises:
        StorageError: If the file exists but cannot be read or parsed.
    """
    path = Path(filename_with_extension(filename))
    if not path.exists():
        return False
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise StorageError(path, f"cannot read settings: {e}") from e
    if not isinstance(data, dict):
        raise StorageError(path, "expected a JSON object")
    populate(obj, data, origin=str(path))
    return True


class SettingsStore:
    """Persists one base instance per kind under a scope-specific path.

    Base files hold an envelope with the kind's type name, so an instance can
    be found again after the kind's filename or usage changed.
    """

    def __init__(self, config: Optional[ForgeConfig] = None):
        self.config = config or ForgeConfig()
        self.root = Path(self.config.settings_root)

    def scope_directories(self) -> Dict[SettingsUsage, Path]:
        return {
            SettingsUsage.RUNTIME_PROJECT: self.root / "Resources",
            SettingsUsage.EDITOR_PROJECT: self.root / "Editor",
            SettingsUsage.EDITOR_USER: self.root / "Editor" / "User" / self.config.get_project_folder(),
        }

    def scope_directory(self, kind: SettingsKind) -> Path:
        directories = self.scope_directories()
        if kind.usage not in directories:
            raise ValueError(f"Unknown settings usage: {kind.usage}")
        return directories[kind.usage]

    def path_for(self, kind: SettingsKind) -> Path:
        return self.scope_directory(kind) / f"{kind.filename}.json"

    def load(self, kind: SettingsKind, path: Optional[Path] = None) -> Optional[Any]:
        """Load the base instance of a kind, None if nothing is stored.

        Raises:
            StorageError: If the stored file is unreadable or corrupt.
        """
        path = path or self.path_for(kind)
        if not path.exists():
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                envelope = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageError(path, f"cannot read settings: {e}") from e

        if not isinstance(envelope, dict) or not isinstance(envelope.get("fields", {}), dict):
            raise StorageError(path, "unexpected settings file layout")

        try:
            instance = kind.cls()
        except TypeError as e:
            raise StorageError(path, f"cannot create {kind.name}: {e}") from e
        populate(instance, envelope.get("fields", {}), origin=str(path))
        instance._label = kind.filename
        instance.clear_dirty()
        bind_owner(instance)
        logger.debug(f"Loaded {kind.name} from {path}")
        return instance

    def write(self, kind: SettingsKind, instance: Any) -> Path:
        """Persist a base instance.

        Raises:
            StorageError: If the file cannot be written.
        """
        path = self.path_for(kind)
        envelope = {"type": kind.type_name, "fields": to_json_value(instance)}
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".json.tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(envelope, f, indent=2)
            tmp_path.replace(path)
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(path, f"cannot write settings: {e}") from e
        instance.clear_dirty()
        logger.debug(f"Saved {kind.name} to {path}")
        return path

    def delete(self, kind: SettingsKind) -> bool:
        path = self.path_for(kind)
        if not path.exists():
            return False
        try:
            path.unlink()
        except OSError as e:
            raise StorageError(path, f"cannot delete settings: {e}") from e
        logger.info(f"Deleted {kind.name} settings at {path}")
        return True

    def locate_previous(self, kind: SettingsKind) -> Optional[Path]:
        """Find a stored instance of this kind at a different path.

        Per-user folders of other project folders are never searched; their
        settings belong to those projects.
        """
        if not self.root.exists():
            return None
        expected = self.path_for(kind).resolve()
        users_root = (self.root / "Editor" / "User").resolve()
        own_user_folder = users_root / self.config.get_project_folder()
        for candidate in sorted(self.root.rglob("*.json")):
            resolved = candidate.resolve()
            if resolved == expected:
                continue
            if resolved.is_relative_to(users_root) and not resolved.is_relative_to(own_user_folder):
                continue
            try:
                with open(candidate, "r", encoding="utf-8") as f:
                    envelope = json.load(f)
            except (OSError, ValueError):
                continue
            if isinstance(envelope, dict) and envelope.get("type") == kind.type_name:
                return candidate
        return None

    def relocate(self, kind: SettingsKind) -> Optional[Any]:
        """Move a previously stored instance to the kind's current path and load it.

        The previous file is loaded before it is moved, so a file that cannot
        be loaded stays where it is. Returns None, after a warning, if nothing
        was found, the file is unreadable or the move failed.
        """
        old_path = self.locate_previous(kind)
        if old_path is None:
            return None

        try:
            instance = self.load(kind, old_path)
        except StorageError as e:
            logger.warning(f"Previous settings for {kind.name} are unreadable and were left in place: {e}")
            return None

        path = self.path_for(kind)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(old_path), str(path))
        except OSError as e:
            logger.warning(
                f"Failed to move previous settings '{old_path}' to '{path}'. "
                f"New settings will be created. {e}"
            )
            return None

        logger.info(f"Moved {kind.name} settings from {old_path} to {path}")
        return instance
