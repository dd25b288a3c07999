"""Discovery of settings kinds in loaded modules."""

from .cache import CacheEntry, DiscoveryCache, DiscoveryReport, SettingsDescriptor, locations_match
from .scanner import dependent_modules, scan_module

__all__ = [
    "CacheEntry",
    "DiscoveryCache",
    "DiscoveryReport",
    "SettingsDescriptor",
    "dependent_modules",
    "locations_match",
    "scan_module",
]
