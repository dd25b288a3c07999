"""Settings lifecycle: one base and one active instance per settings kind.

The registry loads or creates the persisted base instance of a kind on first
access, applies overrides once before handing it out, and replaces the active
instance wholesale whenever overrides are re-resolved. Access to a kind is
expected from a single owner context; only initialization is locked.
"""

import sys
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from loguru import logger

from .config import ForgeConfig, load_config
from .errors import ConfigurationError, StorageError
from .kinds import Capability, ExecutionMode, SettingsKind, bind_owner, kind_of
from .overrides import MergeEngine, OverrideSource, command_line_sources, file_sources
from .reload import ExecutionContext, LiveReloadController
from .storage import SettingsStore, load_from_file, save_as_file


class LifecycleState(Enum):
    UNRESOLVED = "unresolved"
    LOADING = "loading"
    READY = "ready"
    READY_OVERRIDDEN = "ready_overridden"


@dataclass
class SettingsRecord:
    """Lifecycle record of one settings kind."""
    kind: SettingsKind
    state: LifecycleState = LifecycleState.UNRESOLVED
    base: Any = None
    active: Any = None
    provenance: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    @property
    def is_ready(self) -> bool:
        return self.state in (LifecycleState.READY, LifecycleState.READY_OVERRIDDEN)


class SettingsRegistry:
    """Process-wide registry of settings kinds and their instances."""

    def __init__(
        self,
        config: Optional[ForgeConfig] = None,
        argv: Optional[Sequence[str]] = None,
        mode: ExecutionMode = ExecutionMode.RUNTIME,
        store: Optional[SettingsStore] = None,
        engine: Optional[MergeEngine] = None,
        observer_factory: Optional[Callable[[], Any]] = None,
    ):
        self.config = config or ForgeConfig()
        self.argv = list(sys.argv[1:] if argv is None else argv)
        self.mode = mode
        self.store = store or SettingsStore(self.config)
        self.engine = engine or MergeEngine()
        self._records: Dict[type, SettingsRecord] = {}
        self._lock = threading.Lock()
        self._controller: Optional[LiveReloadController] = None
        self._observer_factory = observer_factory

    # ==================== Instances ====================

    def get_active(self, cls: type) -> Optional[Any]:
        """Get the active instance of a kind, initializing it on first access.

        Returns None, after logging, if the kind is not declared or cannot be
        constructed.
        """
        record = self._record(cls)
        if record is None:
            return None
        if record.is_ready:
            return record.active

        with record.lock:
            if record.is_ready:
                return record.active
            return self._initialize(record)

    def get_base(self, cls: type) -> Optional[Any]:
        if self.get_active(cls) is None:
            return None
        return self._records[cls].base

    def provenance(self, cls: type) -> List[str]:
        record = self._records.get(cls)
        return list(record.provenance) if record else []

    def warnings(self, cls: type) -> List[str]:
        """Warnings of the last resolution pass of a kind."""
        record = self._records.get(cls)
        return list(record.warnings) if record else []

    def is_overridden(self, cls: type) -> bool:
        record = self._records.get(cls)
        return bool(record and record.active is not record.base)

    def state(self, cls: type) -> LifecycleState:
        record = self._records.get(cls)
        return record.state if record else LifecycleState.UNRESOLVED

    def loaded_kinds(self) -> List[type]:
        with self._lock:
            return [cls for cls, record in self._records.items() if record.is_ready]

    def _record(self, cls: type) -> Optional[SettingsRecord]:
        record = self._records.get(cls)
        if record is not None:
            return record
        try:
            kind = kind_of(cls)
        except ConfigurationError as e:
            logger.error(str(e))
            return None
        with self._lock:
            return self._records.setdefault(cls, SettingsRecord(kind=kind))

    def _initialize(self, record: SettingsRecord) -> Optional[Any]:
        kind = record.kind
        record.state = LifecycleState.LOADING

        base = self._load_or_create(kind)
        if base is None:
            record.state = LifecycleState.UNRESOLVED
            return None

        record.base = base
        record.active = base
        record.provenance = []
        record.state = LifecycleState.READY

        if self._overrides_enabled(kind):
            self._resolve(record)
            if self._controller is not None:
                self._watch(record)
        return record.active

    def _load_or_create(self, kind: SettingsKind) -> Optional[Any]:
        try:
            instance = self.store.load(kind)
        except StorageError as e:
            logger.warning(f"Cannot load {kind.name}, a new default instance will be used: {e}")
            return self._create(kind, persist=False)

        if instance is None:
            instance = self.store.relocate(kind)
        if instance is None:
            instance = self._create(kind, persist=True)
        return instance

    def _create(self, kind: SettingsKind, persist: bool) -> Optional[Any]:
        try:
            instance = kind.cls()
        except TypeError as e:
            logger.error(
                f"Cannot create {kind.name}: settings kinds need a default for every field. {e}"
            )
            return None

        instance._label = kind.filename
        bind_owner(instance)
        if persist:
            try:
                path = self.store.write(kind, instance)
                logger.info(f"Created {kind.name} settings at {path}")
            except StorageError as e:
                logger.warning(f"Created {kind.name} settings in memory only: {e}")
        return instance

    # ==================== Overrides ====================

    def _overrides_enabled(self, kind: SettingsKind) -> bool:
        return kind.has(Capability.OVERRIDABLE) and self.mode is kind.live_mode

    def override_sources(self, cls: type) -> List[OverrideSource]:
        """The ordered override sources of a kind."""
        sources, _ = self._collect_sources(kind_of(cls))
        return sources

    def _collect_sources(self, kind: SettingsKind):
        sources: List[OverrideSource] = list(
            file_sources(kind, self.config.override_directory, self.config.main_override_file)
        )
        argument_sources, warnings = command_line_sources(self.argv, kind)
        sources.extend(argument_sources)
        return sources, warnings

    def _resolve(self, record: SettingsRecord) -> None:
        kind = record.kind
        sources, warnings = self._collect_sources(kind)
        resolution = self.engine.resolve(record.base, sources, kind)

        # Single assignment: readers see the old or the new instance, never a partial one.
        record.active = resolution.instance
        record.provenance = list(resolution.provenance)
        record.warnings = warnings + resolution.warnings

        if resolution.overridden:
            record.state = LifecycleState.READY_OVERRIDDEN
            logger.info(f"Created {kind.name} runtime instance with overrides from: {', '.join(resolution.provenance)}")
        else:
            record.state = LifecycleState.READY

    def reresolve(self, cls: type) -> Optional[Any]:
        """Recompute the active instance of a kind from its base and swap it in."""
        record = self._record(cls)
        if record is None:
            return None
        if not record.is_ready:
            return self.get_active(cls)

        with record.lock:
            if self._overrides_enabled(record.kind):
                self._resolve(record)
                logger.info(f"Updated {record.kind.name} active instance")
            else:
                self._revert(record)
        return record.active

    def end_session(self, cls: Optional[type] = None) -> None:
        """Revert one kind, or every kind, to its base instance."""
        records = [self._records[cls]] if cls in self._records else []
        if cls is None:
            records = list(self._records.values())
        for record in records:
            with record.lock:
                if record.is_ready:
                    self._revert(record)

    @staticmethod
    def _revert(record: SettingsRecord) -> None:
        if record.active is not record.base:
            logger.info(f"Reverted {record.kind.name} to its base instance")
        record.active = record.base
        record.provenance = []
        record.warnings = []
        record.state = LifecycleState.READY

    # ==================== Live mode ====================

    @property
    def live_controller(self) -> Optional[LiveReloadController]:
        return self._controller

    def enter_live_mode(self, context: Optional[ExecutionContext] = None) -> None:
        """Switch to runtime mode; re-resolve loaded kinds and watch their files."""
        self.mode = ExecutionMode.RUNTIME
        if context is not None and self._controller is None:
            if self._observer_factory is not None:
                self._controller = LiveReloadController(self, context, self._observer_factory)
            else:
                self._controller = LiveReloadController(self, context)
            self._controller.start()

        for cls in self.loaded_kinds():
            record = self._records[cls]
            self.reresolve(cls)
            if self._controller is not None and self._overrides_enabled(record.kind):
                self._watch(record)

    def exit_live_mode(self) -> None:
        """Cancel every watch, then revert all kinds to their base instances."""
        if self._controller is not None:
            self._controller.stop()
            self._controller = None
        self.mode = ExecutionMode.EDITING
        self.end_session()

    def _watch(self, record: SettingsRecord) -> None:
        if not record.kind.has(Capability.LIVE_RELOADABLE):
            return
        sources, _ = self._collect_sources(record.kind)
        self._controller.watch(record.kind.cls, [s for s in sources if s.is_file])

    # ==================== Persistence ====================

    def is_dirty(self, cls: type) -> bool:
        record = self._records.get(cls)
        return bool(record and record.base is not None and record.base.is_dirty)

    def save(self, cls: type) -> None:
        """Persist the base instance of a kind.

        Raises:
            ConfigurationError: If the kind is not declared.
            StorageError: If the settings cannot be written.
        """
        kind = kind_of(cls)
        base = self.get_base(cls)
        if base is None:
            raise ConfigurationError(f"No base instance available for {kind.name}")
        self.store.write(kind, base)

    def save_dirty(self) -> List[type]:
        """Persist every base instance changed through its mutator."""
        saved = []
        for cls in self.loaded_kinds():
            if self.is_dirty(cls):
                self.save(cls)
                saved.append(cls)
        return saved

    def delete(self, cls: type) -> bool:
        """Delete the backing store of a kind and forget its instances."""
        kind = kind_of(cls)
        deleted = self.store.delete(kind)
        with self._lock:
            self._records.pop(cls, None)
        return deleted

    def save_as_file(self, cls: type, filename: Optional[str] = None):
        """Write the active instance of a serializable kind to a JSON file."""
        kind = kind_of(cls)
        if not kind.has(Capability.SERIALIZABLE):
            raise ConfigurationError(f"{kind.name} is not serializable")
        instance = self.get_active(cls)
        if instance is None:
            raise ConfigurationError(f"No instance available for {kind.name}")
        return save_as_file(instance, filename or kind.filename)

    def load_from_file(self, cls: type, filename: Optional[str] = None) -> bool:
        """Populate the active instance of a serializable kind from a JSON file."""
        kind = kind_of(cls)
        if not kind.has(Capability.SERIALIZABLE):
            raise ConfigurationError(f"{kind.name} is not serializable")
        instance = self.get_active(cls)
        if instance is None:
            raise ConfigurationError(f"No instance available for {kind.name}")
        if not load_from_file(instance, filename or kind.filename):
            return False
        bind_owner(instance)
        instance.mark_dirty()
        return True


_default_registry: Optional[SettingsRegistry] = None


def get_registry() -> SettingsRegistry:
    """Get the process-wide registry, creating it from the loaded config."""
    global _default_registry
    if _default_registry is None:
        _default_registry = SettingsRegistry(load_config())
    return _default_registry


def set_registry(registry: Optional[SettingsRegistry]) -> None:
    global _default_registry
    _default_registry = registry


def get_active(cls: type) -> Optional[Any]:
    """Get the active instance of a kind from the process-wide registry."""
    return get_registry().get_active(cls)
