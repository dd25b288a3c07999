"""Incremental discovery of settings kinds across loaded modules.

Scanning every class of every loaded module is the expensive part of
discovery, so the type names found per module are persisted keyed by the
module's file location. A module is only scanned again when it is new, when
its file changed, or when a compilation signal marked it.
"""

import json
import sys
from dataclasses import dataclass, field
from pathlib import Path, PurePath
from types import ModuleType
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from loguru import logger

from ..errors import DiscoveryScanError
from ..kinds import SettingsKind, SettingsObject, SettingsUsage, has_provider_hook, kind_of
from ..lifecycle import get_registry
from .scanner import ROOT_PACKAGE, dependent_modules, fingerprint, module_location, resolve_type, scan_module


@dataclass(frozen=True)
class SettingsDescriptor:
    """A discovered settings kind and the accessor of its active instance."""
    kind: SettingsKind
    display_path: str
    accessor: Callable[[], Any] = field(compare=False, hash=False, repr=False)

    @property
    def is_user_scope(self) -> bool:
        return self.kind.usage is SettingsUsage.EDITOR_USER

    def get_instance(self) -> Any:
        return self.accessor()


@dataclass
class CacheEntry:
    """Discovered type names of one module location."""
    location: str
    type_names: List[str] = field(default_factory=list)
    needs_scan: bool = False
    fingerprint: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "location": self.location,
            "typeNames": list(self.type_names),
            "needsScan": self.needs_scan,
            "fingerprint": self.fingerprint,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        type_names = data.get("typeNames", [])
        if not isinstance(data.get("location"), str) or not isinstance(type_names, list):
            raise ValueError("malformed cache entry")
        return cls(
            location=data["location"],
            type_names=[str(t) for t in type_names],
            needs_scan=bool(data.get("needsScan", False)),
            fingerprint=data.get("fingerprint"),
        )


@dataclass
class DiscoveryReport:
    """Outcome of the last descriptor computation."""
    errors: List[DiscoveryScanError] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    scanned: List[str] = field(default_factory=list)
    reused: List[str] = field(default_factory=list)
    full_scan: bool = False


def _path_parts(location: str) -> tuple:
    return tuple(p for p in PurePath(location.replace("\\", "/")).parts if p not in ("/", "."))


def locations_match(a: str, b: str) -> bool:
    """Suffix match of two locations, tolerant of absolute/relative differences."""
    pa, pb = _path_parts(a), _path_parts(b)
    if not pa or not pb:
        return False
    shorter, longer = (pa, pb) if len(pa) <= len(pb) else (pb, pa)
    return longer[-len(shorter):] == shorter


class DiscoveryCache:
    """Finds the settings kinds declared in the loaded modules."""

    def __init__(
        self,
        cache_file: Optional[str] = None,
        accessor_factory: Optional[Callable[[type], Callable[[], Any]]] = None,
        package: str = ROOT_PACKAGE,
    ):
        self.cache_file = Path(cache_file) if cache_file else None
        self.package = package
        self._accessor_factory = accessor_factory or self._default_accessor
        self._entries: Optional[Dict[str, CacheEntry]] = None
        self._needs_full_scan = False
        self._changed_unknown: List[str] = []
        self.last_report = DiscoveryReport()

    @staticmethod
    def _default_accessor(cls: type) -> Callable[[], Any]:
        return lambda: get_registry().get_active(cls)

    # ==================== Persistence ====================

    def _load(self) -> None:
        """Load the cache file once; any problem requests a full scan."""
        if self._entries is not None:
            return
        self._entries = {}
        self._needs_full_scan = True
        if self.cache_file is None or not self.cache_file.exists():
            return

        try:
            with open(self.cache_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            entries = [CacheEntry.from_dict(item) for item in data.get("assemblies", [])]
            changed = [str(loc) for loc in data.get("changedUnknownLocations", [])]
            needs_full_scan = bool(data.get("needsFullScan", False))
        except (OSError, ValueError, AttributeError, TypeError) as e:
            logger.warning(f"Discovery cache {self.cache_file} is unreadable, rescanning all modules: {e}")
            return

        self._entries = {entry.location: entry for entry in entries}
        self._changed_unknown = changed
        self._needs_full_scan = needs_full_scan

    def _save(self) -> None:
        if self.cache_file is None:
            return
        data = {
            "needsFullScan": self._needs_full_scan,
            "assemblies": [entry.to_dict() for entry in self._entries.values()],
            "changedUnknownLocations": list(self._changed_unknown),
        }
        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.cache_file, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            logger.warning(f"Cannot write discovery cache {self.cache_file}: {e}")

    @property
    def entries(self) -> Dict[str, CacheEntry]:
        self._load()
        return dict(self._entries)

    def invalidate(self) -> None:
        """Request a full scan on the next computation."""
        self._load()
        self._needs_full_scan = True
        self._save()

    # ==================== Signals ====================

    def notify_compiled(self, location: str) -> None:
        """A module at location was recompiled; its cached result is stale."""
        self._load()
        matched = False
        for entry in self._entries.values():
            if locations_match(entry.location, location):
                entry.needs_scan = True
                matched = True
        if not matched and location not in self._changed_unknown:
            self._changed_unknown.append(location)
        logger.debug(f"Marked {location} for rescan ({'known' if matched else 'unknown'} location)")
        self._save()

    # ==================== Discovery ====================

    def get_descriptors(self, modules: Optional[Iterable[ModuleType]] = None) -> Set[SettingsDescriptor]:
        """Compute the descriptors of every settings kind in the loaded modules."""
        self._load()
        if modules is None:
            modules = list(sys.modules.values())
        eligible = dependent_modules(modules, self.package)

        report = DiscoveryReport(full_scan=self._needs_full_scan)
        entries: Dict[str, CacheEntry] = {}
        types: List[type] = []

        for module in eligible:
            location = module_location(module)
            entry = self._entries.get(location)
            current = fingerprint(location)
            module_types = None

            if not self._must_scan(entry, location, current):
                module_types = self._resolve_cached(module, entry)
                if module_types is None:
                    logger.debug(f"Cached types of {location} no longer resolve, rescanning")

            if module_types is None:
                type_names = scan_module(module)
                entry = CacheEntry(location=location, type_names=type_names, fingerprint=current)
                module_types = [resolve_type(module, name) for name in type_names]
                report.scanned.append(location)
            else:
                report.reused.append(location)

            entries[location] = entry
            types.extend(t for t in module_types if t is not None)

        dropped = set(self._entries) - set(entries)
        if dropped:
            logger.debug(f"Pruned {len(dropped)} discovery cache entries of unloaded modules")

        self._entries = entries
        self._changed_unknown = []
        self._needs_full_scan = False
        self._save()

        descriptors = self._build_descriptors(types, report)
        self.last_report = report
        logger.info(
            f"Discovered {len(descriptors)} settings kinds in {len(eligible)} modules "
            f"({len(report.scanned)} scanned, {len(report.reused)} cached)"
        )
        return descriptors

    def _must_scan(self, entry: Optional[CacheEntry], location: str, current: Optional[str]) -> bool:
        if self._needs_full_scan or entry is None or entry.needs_scan:
            return True
        if entry.fingerprint is not None and entry.fingerprint != current:
            return True
        return any(locations_match(location, changed) for changed in self._changed_unknown)

    @staticmethod
    def _resolve_cached(module: ModuleType, entry: CacheEntry) -> Optional[List[type]]:
        resolved = []
        for name in entry.type_names:
            cls = resolve_type(module, name)
            if cls is None:
                return None
            resolved.append(cls)
        return resolved

    def _build_descriptors(self, types: List[type], report: DiscoveryReport) -> Set[SettingsDescriptor]:
        descriptors: Set[SettingsDescriptor] = set()
        for cls in types:
            type_name = f"{cls.__module__}.{cls.__qualname__}"
            if has_provider_hook(cls):
                logger.debug(f"Skipping {type_name}: it registers its own provider")
                report.skipped.append(type_name)
                continue

            if not issubclass(cls, SettingsObject):
                error = DiscoveryScanError(type_name, getattr(sys.modules.get(cls.__module__), "__file__", None))
                logger.error(str(error))
                report.errors.append(error)
                continue

            kind = kind_of(cls)
            descriptors.add(SettingsDescriptor(kind=kind, display_path=kind.display_path, accessor=self._accessor_factory(cls)))
        return descriptors
