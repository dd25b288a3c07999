"""Override sources and the merge engine."""

from .merge import MergeEngine, Resolution, coerce_value
from .sources import (
    COMMAND_LINE_RANK,
    FILE_RANK,
    CommandLineOverrideSource,
    FileOverrideSource,
    OverrideSource,
    Patch,
    command_line_sources,
    file_sources,
    order_sources,
    parse_argument,
)

__all__ = [
    "COMMAND_LINE_RANK",
    "FILE_RANK",
    "CommandLineOverrideSource",
    "FileOverrideSource",
    "MergeEngine",
    "OverrideSource",
    "Patch",
    "Resolution",
    "coerce_value",
    "command_line_sources",
    "file_sources",
    "order_sources",
    "parse_argument",
]
