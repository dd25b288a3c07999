"""Override sources: files and command-line arguments that patch a settings kind."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from loguru import logger

from ..errors import OverrideParseError
from ..kinds import SettingsKind

FILE_RANK = 0
COMMAND_LINE_RANK = 1

ARGUMENT_PREFIXES = ("-settings", "-s:")


@dataclass
class Patch:
    """A partial field tree read from one override source."""
    origin: str
    tree: Dict[str, Any]
    raw: bool = False  # values are strings still to be coerced


class OverrideSource(ABC):
    """One origin of override values for a settings kind."""

    rank: int = FILE_RANK

    @property
    @abstractmethod
    def origin(self) -> str:
        """Identifier used for provenance and for matching file events."""

    @abstractmethod
    def read(self, kind: Optional[SettingsKind] = None) -> Optional[Patch]:
        """Read the patch of this source, None if it has nothing to apply.

        Raises:
            OverrideParseError: If the source cannot be parsed.
        """

    @property
    def is_file(self) -> bool:
        return False

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.origin!r})"


class FileOverrideSource(OverrideSource):
    """A JSON file holding a field tree, optionally nested under a selector."""

    rank = FILE_RANK

    def __init__(self, path, selector: Optional[str] = None):
        self.path = Path(path)
        self.selector = selector

    @property
    def origin(self) -> str:
        return str(self.path)

    @property
    def is_file(self) -> bool:
        return True

    @property
    def resolved_path(self) -> Path:
        return self.path.expanduser().resolve()

    def read(self, kind: Optional[SettingsKind] = None) -> Optional[Patch]:
        if not self.path.is_file():
            return None

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, UnicodeDecodeError) as e:
            raise OverrideParseError(self.origin, f"unreadable file: {e}") from e
        except json.JSONDecodeError as e:
            raise OverrideParseError(self.origin, f"invalid JSON: {e}") from e

        if self.selector:
            for key in self.selector.split("."):
                if not isinstance(document, dict) or key not in document:
                    logger.debug(f"No '{self.selector}' section in {self.origin}")
                    return None
                document = document[key]

        if not isinstance(document, dict):
            raise OverrideParseError(self.origin, "expected a JSON object")
        if not document:
            return None
        return Patch(origin=self.origin, tree=document)


@dataclass(frozen=True)
class ParsedArgument:
    """A well-formed command-line override token."""
    token: str
    kind_name: str
    field_path: Tuple[str, ...]
    value: str


def parse_argument(token: str) -> Optional[ParsedArgument]:
    """Parse one launch argument.

    Returns None for tokens that are not settings overrides.

    Raises:
        OverrideParseError: For a settings override token that is malformed.
    """
    if token.startswith("-settings"):
        head, sep, rest = token.partition(":")
        if not sep or head != "-settings":
            raise OverrideParseError(token, "missing ':' after -settings")
    elif token.startswith("-s:"):
        rest = token[len("-s:"):]
    else:
        return None

    target, sep, value = rest.partition("=")
    if not sep:
        raise OverrideParseError(token, "missing '=' before the value")

    kind_name, dot, path = target.partition(".")
    if not kind_name:
        raise OverrideParseError(token, "missing settings kind name")
    if not dot or not path:
        raise OverrideParseError(token, "empty field path")

    segments = tuple(path.split("."))
    if any(not s for s in segments):
        raise OverrideParseError(token, "empty field path segment")

    return ParsedArgument(token=token, kind_name=kind_name, field_path=segments, value=value)


class CommandLineOverrideSource(OverrideSource):
    """A single `-settings:Kind.path=value` launch argument."""

    rank = COMMAND_LINE_RANK

    def __init__(self, token: str):
        self.token = token
        self._parsed = parse_argument(token)
        if self._parsed is None:
            raise OverrideParseError(token, "not a settings override argument")

    @property
    def origin(self) -> str:
        return self.token

    @property
    def kind_name(self) -> str:
        return self._parsed.kind_name

    @property
    def field_path(self) -> Tuple[str, ...]:
        return self._parsed.field_path

    def read(self, kind: Optional[SettingsKind] = None) -> Optional[Patch]:
        if kind is not None and not kind.matches_name(self._parsed.kind_name):
            return None
        tree: Any = self._parsed.value
        for segment in reversed(self._parsed.field_path):
            tree = {segment: tree}
        return Patch(origin=self.origin, tree=tree, raw=True)


def command_line_sources(
    argv: Iterable[str], kind: Optional[SettingsKind] = None
) -> Tuple[List[CommandLineOverrideSource], List[str]]:
    """Collect the override arguments for a kind, reporting malformed tokens.

    Malformed tokens are skipped individually; the remaining arguments are
    still processed.
    """
    sources: List[CommandLineOverrideSource] = []
    warnings: List[str] = []
    for token in argv:
        try:
            parsed = parse_argument(token)
        except OverrideParseError as e:
            message = f"Skipping malformed settings argument {e}"
            logger.warning(message)
            warnings.append(message)
            continue
        if parsed is None:
            continue
        if kind is not None and not kind.matches_name(parsed.kind_name):
            continue
        sources.append(CommandLineOverrideSource(token))
    return sources, warnings


def file_sources(
    kind: SettingsKind, override_directory, main_override_file: Optional[str] = "Settings.json"
) -> List[FileOverrideSource]:
    """The file sources of a kind: main shared file, per-kind file, declared extras."""
    directory = Path(override_directory)
    sources: List[FileOverrideSource] = []
    if main_override_file:
        sources.append(FileOverrideSource(directory / main_override_file, selector=kind.filename))
    sources.append(FileOverrideSource(directory / f"{kind.filename}.json"))
    for extra in kind.override_files:
        path = Path(extra)
        sources.append(FileOverrideSource(path if path.is_absolute() else directory / path))
    return sources


def order_sources(sources: Sequence[OverrideSource]) -> List[OverrideSource]:
    """Stable sort by rank: files before command-line arguments."""
    return sorted(sources, key=lambda s: s.rank)
