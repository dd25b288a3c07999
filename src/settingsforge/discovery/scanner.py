"""Module scanning for settings kind declarations."""

import inspect
import os
from pathlib import Path
from types import ModuleType
from typing import Dict, Iterable, List, Optional, Set

from ..kinds.base import KIND_ATTRIBUTE

ROOT_PACKAGE = __name__.split(".")[0]


def module_location(module: ModuleType) -> Optional[str]:
    """The file a module was loaded from, None for built-in or namespace modules."""
    location = getattr(module, "__file__", None)
    if not location:
        return None
    return str(Path(location).resolve())


def fingerprint(location: str) -> Optional[str]:
    """A content fingerprint of a module file: modification time and size."""
    try:
        stat = os.stat(location)
    except OSError:
        return None
    return f"{stat.st_mtime_ns}:{stat.st_size}"


def _in_package(module_name: str, package: str) -> bool:
    return module_name == package or module_name.startswith(package + ".")


def referenced_modules(module: ModuleType) -> Set[str]:
    """Names of the modules whose modules, classes or functions module's globals hold."""
    names: Set[str] = set()
    for value in list(vars(module).values()):
        if inspect.ismodule(value):
            names.add(value.__name__)
        elif inspect.isclass(value) or inspect.isfunction(value):
            owner = getattr(value, "__module__", None)
            if isinstance(owner, str):
                names.add(owner)
    names.discard(module.__name__)
    return names


def dependent_modules(modules: Iterable[ModuleType], package: str = ROOT_PACKAGE) -> List[ModuleType]:
    """Modules with a file location that depend, directly or transitively, on package.

    The package's own modules are never returned.
    """
    candidates: Dict[str, ModuleType] = {}
    references: Dict[str, Set[str]] = {}
    for module in modules:
        name = getattr(module, "__name__", None)
        if not isinstance(name, str) or _in_package(name, package):
            continue
        if module_location(module) is None:
            continue
        candidates[name] = module
        references[name] = referenced_modules(module)

    dependent: Set[str] = set()
    changed = True
    while changed:
        changed = False
        for name, refs in references.items():
            if name in dependent:
                continue
            if any(_in_package(ref, package) or ref in dependent for ref in refs):
                dependent.add(name)
                changed = True

    return [candidates[name] for name in sorted(dependent)]


def _declared_in(cls: type, module: ModuleType) -> Iterable[type]:
    yield cls
    for value in vars(cls).values():
        if inspect.isclass(value) and value.__module__ == module.__name__ and value.__qualname__.startswith(cls.__qualname__ + "."):
            yield from _declared_in(value, module)


def scan_module(module: ModuleType) -> List[str]:
    """Qualified names of the classes defined in module that declare a settings kind themselves."""
    type_names: List[str] = []
    for value in list(vars(module).values()):
        if not inspect.isclass(value) or value.__module__ != module.__name__:
            continue
        if "." in value.__qualname__:
            continue
        for cls in _declared_in(value, module):
            # Declarations inherited from a base kind do not declare a new kind.
            if vars(cls).get(KIND_ATTRIBUTE) is not None and cls.__qualname__ not in type_names:
                type_names.append(cls.__qualname__)
    return type_names


def resolve_type(module: ModuleType, qualname: str) -> Optional[type]:
    """Look a cached type name up in the loaded module."""
    value = module
    for part in qualname.split("."):
        value = getattr(value, part, None)
        if value is None:
            return None
    return value if inspect.isclass(value) else None
