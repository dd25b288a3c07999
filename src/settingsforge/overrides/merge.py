"""Merge engine: applies ordered override patches onto a copy of a base instance."""

import copy
import dataclasses
import json
import typing
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Any, Dict, List, Optional, Sequence, Tuple

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from ..errors import OverrideParseError, OverridePathError
from ..kinds import SettingsKind, SettingsObject, bind_owner, persistent_fields
from .sources import OverrideSource, order_sources

# Raw command-line spellings of None for Optional fields
_NONE = {"null", "none"}


@dataclass
class Resolution:
    """Result of one resolution pass."""
    instance: Any
    provenance: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def overridden(self) -> bool:
        return bool(self.provenance)


@lru_cache(maxsize=None)
def _adapter(annotation: Any) -> TypeAdapter:
    return TypeAdapter(annotation)


def _enum_type(annotation: Any) -> Optional[type]:
    if isinstance(annotation, type) and issubclass(annotation, Enum):
        return annotation
    return None


def coerce_value(value: Any, annotation: Any, raw: bool = False) -> Any:
    """Validate a value against a field annotation with pydantic.

    JSON values are validated strictly in JSON mode, so "3" never becomes an
    int. Raw command-line strings are validated in lax mode first, then as a
    JSON document, which covers lists, dicts and nested groups.

    Raises:
        pydantic.ValidationError: If the value does not fit the annotation.
    """
    if annotation is Any or annotation is object:
        return value

    enum_type = _enum_type(annotation)
    if enum_type is not None and isinstance(value, str) and value in enum_type.__members__:
        return enum_type[value]

    adapter = _adapter(annotation)
    if not raw:
        return adapter.validate_json(json.dumps(value), strict=True)

    if not isinstance(value, str):
        return adapter.validate_python(value)
    if value.strip().lower() in _NONE and type(None) in typing.get_args(annotation):
        return None
    try:
        return adapter.validate_python(value)
    except ValidationError as error:
        try:
            return adapter.validate_json(value)
        except ValidationError:
            raise error


def _reason(error: Exception) -> str:
    """One-line description of a coercion failure."""
    if isinstance(error, ValidationError):
        return "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'value'}: {err['msg']}" for err in error.errors()
        )
    return str(error)


def _merge_mapping(current: Dict[str, Any], patch: Dict[str, Any], value_type: Any, raw: bool = False) -> Dict[str, Any]:
    merged = dict(current)
    for key, value in patch.items():
        existing = merged.get(key)
        if isinstance(existing, dict) and isinstance(value, dict):
            merged[key] = _merge_mapping(existing, value, Any, raw)
        else:
            merged[key] = coerce_value(value, value_type, raw)
    return merged


class MergeEngine:
    """Resolves a base instance against an ordered list of override sources."""

    def resolve(
        self,
        base: Any,
        sources: Sequence[OverrideSource],
        kind: Optional[SettingsKind] = None,
    ) -> Resolution:
        """Apply every source's patch on top of a single copy of base.

        Returns base itself, with empty provenance, when no source applied.
        """
        kind_name = kind.name if kind is not None else type(base).__name__
        working = None
        provenance: List[str] = []
        warnings: List[str] = []

        for source in order_sources(sources):
            try:
                patch = source.read(kind)
            except OverrideParseError as e:
                message = f"Error loading overrides from {source.origin} for {kind_name}: {e}"
                logger.warning(message)
                warnings.append(message)
                continue

            if patch is None or not patch.tree:
                continue

            if working is None:
                working = self.clone(base)

            applied, patch_warnings = self.apply_patch(working, patch.tree, raw=patch.raw, origin=patch.origin)
            for message in patch_warnings:
                message = f"{kind_name}: {message}"
                logger.warning(message)
                warnings.append(message)

            if applied and source.origin not in provenance:
                provenance.append(source.origin)

        if working is None or not provenance:
            return Resolution(instance=base, warnings=warnings)

        if isinstance(working, SettingsObject):
            bind_owner(working)
            working._override_origins = tuple(provenance)
            working._label = f"{base.label or kind_name} (with overrides from: {', '.join(provenance)})"
        return Resolution(instance=working, provenance=provenance, warnings=warnings)

    @staticmethod
    def clone(base: Any) -> Any:
        working = copy.deepcopy(base)
        if isinstance(working, SettingsObject):
            working.clear_dirty()
            working._override_origins = ()
            bind_owner(working)
        return working

    def apply_patch(
        self, target: Any, tree: Dict[str, Any], raw: bool = False, origin: str = "<patch>"
    ) -> Tuple[int, List[str]]:
        """Deep partial merge of a field tree into target, in place.

        Only leaf fields present in the tree are overwritten. Problems with a
        single field are reported and that field is skipped.

        Returns:
            The number of leaf fields written and the list of warnings.
        """
        warnings: List[str] = []
        applied = self._merge_into(target, tree, raw, origin, (), warnings)
        return applied, warnings

    def _merge_into(
        self,
        obj: Any,
        tree: Dict[str, Any],
        raw: bool,
        origin: str,
        path: Tuple[str, ...],
        warnings: List[str],
    ) -> int:
        fields = {f.name: f for f in persistent_fields(obj)}
        hints = typing.get_type_hints(type(obj))
        applied = 0

        for key, value in tree.items():
            field_path = ".".join(path + (key,))
            if key not in fields:
                if raw:
                    warnings.append(f"{origin}: {OverridePathError(field_path)}")
                else:
                    logger.debug(f"Ignoring unknown field '{field_path}' from {origin}")
                continue

            current = getattr(obj, key)
            annotation = hints.get(key, Any)

            if dataclasses.is_dataclass(current) and not isinstance(current, type):
                if isinstance(value, dict):
                    applied += self._merge_into(current, value, raw, origin, path + (key,), warnings)
                elif raw:
                    try:
                        setattr(obj, key, coerce_value(value, type(current), raw=True))
                        applied += 1
                    except (TypeError, ValueError) as e:
                        warnings.append(f"{origin}: skipping '{field_path}': {_reason(e)}")
                else:
                    warnings.append(f"{origin}: skipping '{field_path}': expected an object")
                continue

            if isinstance(value, dict) and isinstance(current, dict):
                value_type = Any
                args = typing.get_args(annotation)
                if typing.get_origin(annotation) is dict and len(args) == 2:
                    value_type = args[1]
                try:
                    setattr(obj, key, _merge_mapping(current, value, value_type, raw))
                    applied += 1
                except (TypeError, ValueError) as e:
                    warnings.append(f"{origin}: skipping '{field_path}': {_reason(e)}")
                continue

            if isinstance(value, dict) and raw and current is not None:
                nested = ".".join(path + (key, next(iter(value))))
                warnings.append(f"{origin}: {OverridePathError(nested, 'field is not a group of settings')}")
                continue

            try:
                setattr(obj, key, coerce_value(value, annotation, raw=raw))
                applied += 1
            except (TypeError, ValueError) as e:
                warnings.append(f"{origin}: skipping '{field_path}': {_reason(e)}")

        return applied
