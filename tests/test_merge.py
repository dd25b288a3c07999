"""Tests for the merge engine."""

import itertools
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Literal, Optional

import pytest
from pydantic import ValidationError

from settingsforge import SettingsObject, SubSettings, runtime_project_settings, transient_field
from settingsforge.kinds import kind_of
from settingsforge.overrides import CommandLineOverrideSource, FileOverrideSource, MergeEngine, coerce_value


class Quality(Enum):
    LOW = "low"
    HIGH = "high"


@dataclass
class Mixer(SubSettings):
    master: float = 1.0
    music: float = 0.5


@runtime_project_settings(filename="Kind")
@dataclass
class KindSettings(SettingsObject):
    A: int = 1
    B: int = 2
    C: str = "c"
    enabled: bool = False
    quality: Quality = Quality.LOW
    mixer: Mixer = field(default_factory=Mixer)
    tags: Dict[str, int] = field(default_factory=dict)
    servers: List[str] = field(default_factory=lambda: ["a"])
    seed: Optional[int] = None
    mode: Literal["fast", "slow"] = "fast"
    extra_mixer: Optional[Mixer] = None
    session_token: str = transient_field("")


def write(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


@pytest.fixture
def kind():
    return kind_of(KindSettings)


@pytest.fixture
def base():
    return KindSettings()


def test_scenario_file_then_command_line(tmp_path, kind, base):
    """Test scenario file then command line."""
    file_source = FileOverrideSource(write(tmp_path / "Kind.json", {"B": 5}))
    argument = CommandLineOverrideSource("-s:Kind.A=9")

    resolution = MergeEngine().resolve(base, [argument, file_source], kind)

    assert (resolution.instance.A, resolution.instance.B) == (9, 5)
    assert resolution.provenance == [str(tmp_path / "Kind.json"), "-s:Kind.A=9"]
    assert resolution.instance.override_origins == resolution.provenance
    assert (base.A, base.B) == (1, 2)


def test_no_overrides_returns_base_itself(tmp_path, kind, base):
    """Test no overrides returns base itself."""
    resolution = MergeEngine().resolve(base, [FileOverrideSource(tmp_path / "missing.json")], kind)

    assert resolution.instance is base
    assert resolution.provenance == []
    assert not resolution.overridden
    assert not base.is_runtime_instance


def test_overridden_instance_is_a_distinct_copy(tmp_path, kind, base):
    """Test overridden instance is a distinct copy."""
    resolution = MergeEngine().resolve(base, [CommandLineOverrideSource("-s:Kind.C=x")], kind)

    assert resolution.instance is not base
    assert resolution.instance.is_runtime_instance
    assert resolution.instance.mixer is not base.mixer


def test_disjoint_sources_commute(tmp_path, kind):
    """Test disjoint sources commute."""
    first = FileOverrideSource(write(tmp_path / "one.json", {"A": 3}))
    second = FileOverrideSource(write(tmp_path / "two.json", {"mixer": {"music": 0.1}}))
    third = FileOverrideSource(write(tmp_path / "three.json", {"quality": "high"}))

    results = [
        MergeEngine().resolve(KindSettings(), list(order), kind).instance
        for order in itertools.permutations([first, second, third])
    ]

    assert all(r == results[0] for r in results)
    assert results[0].A == 3
    assert results[0].mixer.music == 0.1
    assert results[0].quality is Quality.HIGH


def test_last_source_wins_on_overlap(tmp_path, kind, base):
    """Test last source wins on overlap."""
    first = FileOverrideSource(write(tmp_path / "one.json", {"A": 3}))
    second = FileOverrideSource(write(tmp_path / "two.json", {"A": 4}))

    assert MergeEngine().resolve(base, [first, second], kind).instance.A == 4
    assert MergeEngine().resolve(base, [second, first], kind).instance.A == 3


def test_command_line_wins_over_file_on_same_field(tmp_path, kind, base):
    """Test command line wins over file on same field."""
    file_source = FileOverrideSource(write(tmp_path / "Kind.json", {"A": 3}))
    argument = CommandLineOverrideSource("-s:Kind.A=7")

    assert MergeEngine().resolve(base, [argument, file_source], kind).instance.A == 7


def test_resolution_is_idempotent(tmp_path, kind, base):
    """Test resolution is idempotent."""
    sources = [
        FileOverrideSource(write(tmp_path / "Kind.json", {"B": 5})),
        CommandLineOverrideSource("-s:Kind.A=9"),
    ]
    engine = MergeEngine()

    first = engine.resolve(base, sources, kind)
    second = engine.resolve(base, sources, kind)

    assert first.instance == second.instance
    assert first.provenance == second.provenance


def test_at_most_one_clone_per_pass(tmp_path, kind, base, monkeypatch):
    """Test at most one clone per pass."""
    clones = []
    original = MergeEngine.clone

    def counting_clone(obj):
        clones.append(obj)
        return original(obj)

    monkeypatch.setattr(MergeEngine, "clone", staticmethod(counting_clone))
    sources = [
        FileOverrideSource(write(tmp_path / "one.json", {"A": 3})),
        FileOverrideSource(write(tmp_path / "two.json", {"B": 4})),
        CommandLineOverrideSource("-s:Kind.C=z"),
    ]

    MergeEngine().resolve(base, sources, kind)

    assert len(clones) == 1


def test_deep_partial_merge_keeps_siblings(tmp_path, kind, base):
    """Test deep partial merge keeps siblings."""
    source = FileOverrideSource(write(tmp_path / "Kind.json", {"mixer": {"music": 0.2}}))

    result = MergeEngine().resolve(base, [source], kind).instance

    assert result.mixer.music == 0.2
    assert result.mixer.master == 1.0
    assert result.A == 1


def test_dict_fields_are_merged_and_lists_replaced(tmp_path, kind):
    """Test dict fields are merged and lists replaced."""
    base = KindSettings(tags={"x": 1, "y": 2})
    source = FileOverrideSource(write(tmp_path / "Kind.json", {"tags": {"y": 5}, "servers": ["b", "c"]}))

    result = MergeEngine().resolve(base, [source], kind).instance

    assert result.tags == {"x": 1, "y": 5}
    assert result.servers == ["b", "c"]


def test_unknown_fields_are_ignored(tmp_path, kind, base):
    """Test unknown fields are ignored."""
    source = FileOverrideSource(write(tmp_path / "Kind.json", {"unknown": 1, "A": 4}))

    resolution = MergeEngine().resolve(base, [source], kind)

    assert resolution.instance.A == 4
    assert resolution.warnings == []


def test_mismatched_field_is_skipped_with_warning(tmp_path, kind, base):
    """Test mismatched field is skipped with warning."""
    source = FileOverrideSource(write(tmp_path / "Kind.json", {"A": "not a number", "B": 7, "mixer": 3}))

    resolution = MergeEngine().resolve(base, [source], kind)

    assert resolution.instance.A == 1
    assert resolution.instance.B == 7
    assert len(resolution.warnings) == 2


def test_unresolved_argument_path_is_skipped(kind, base):
    """Test unresolved argument path is skipped."""
    sources = [CommandLineOverrideSource("-s:Kind.missing=1"), CommandLineOverrideSource("-s:Kind.A.deeper=1")]

    resolution = MergeEngine().resolve(base, sources, kind)

    assert resolution.instance is base
    assert len(resolution.warnings) == 2


def test_unparsable_file_does_not_abort(tmp_path, kind, base):
    """Test unparsable file does not abort."""
    broken = tmp_path / "broken.json"
    broken.write_text("{")
    sources = [
        FileOverrideSource(write(tmp_path / "Kind.json", {"A": 4})),
        FileOverrideSource(broken),
        CommandLineOverrideSource("-s:Kind.B=8"),
    ]

    resolution = MergeEngine().resolve(base, sources, kind)

    assert (resolution.instance.A, resolution.instance.B) == (4, 8)
    assert len(resolution.warnings) == 1
    assert str(broken) in resolution.warnings[0]


def test_transient_fields_are_not_overridable(kind, base):
    """Test transient fields are not overridable."""
    resolution = MergeEngine().resolve(base, [CommandLineOverrideSource("-s:Kind.session_token=x")], kind)

    assert resolution.instance is base
    assert len(resolution.warnings) == 1


def test_duplicate_origin_appears_once(tmp_path, kind, base):
    """Test duplicate origin appears once."""
    path = write(tmp_path / "Kind.json", {"A": 4})

    resolution = MergeEngine().resolve(base, [FileOverrideSource(path), FileOverrideSource(path)], kind)

    assert resolution.provenance == [str(path)]


@pytest.mark.parametrize("value, annotation, expected", [
    ("true", bool, True),
    ("off", bool, False),
    ("42", int, 42),
    ("2.5", float, 2.5),
    ("high", Quality, Quality.HIGH),
    ("HIGH", Quality, Quality.HIGH),
    ("none", Optional[int], None),
    ("7", Optional[int], 7),
    ('["a", "b"]', List[str], ["a", "b"]),
    ('{"k": 1}', Dict[str, int], {"k": 1}),
])
def test_coerce_raw_strings(value, annotation, expected):
    """Test coercion of raw command-line strings."""
    assert coerce_value(value, annotation, raw=True) == expected


def test_coerce_json_values_are_type_checked():
    """Test coerce json values are type checked."""
    assert coerce_value(3, float) == 3.0
    with pytest.raises(ValidationError):
        coerce_value("3", int)
    with pytest.raises(ValidationError):
        coerce_value(True, int)
    with pytest.raises(ValidationError):
        coerce_value("maybe", bool, raw=True)


def test_coerce_literal_rejects_unknown_choice():
    """Test that a Literal field only takes one of its choices."""
    assert coerce_value("slow", Literal["fast", "slow"], raw=True) == "slow"
    with pytest.raises(ValidationError):
        coerce_value("bogus", Literal["fast", "slow"], raw=True)
    with pytest.raises(ValidationError):
        coerce_value("bogus", Literal["fast", "slow"])


def test_invalid_literal_argument_is_skipped_with_warning(kind, base):
    """Test that an argument outside a Literal's choices is not applied."""
    resolution = MergeEngine().resolve(base, [CommandLineOverrideSource("-s:Kind.mode=bogus")], kind)

    assert resolution.instance is base
    assert resolution.provenance == []
    assert len(resolution.warnings) == 1
    assert "mode" in resolution.warnings[0]


def test_optional_group_is_built_from_patch(tmp_path, kind, base):
    """Test that a patch creates a nested group that starts out unset."""
    source = FileOverrideSource(write(tmp_path / "Kind.json", {"extra_mixer": {"music": 0.1}}))

    result = MergeEngine().resolve(base, [source], kind).instance

    assert result.extra_mixer == Mixer(master=1.0, music=0.1)
    assert result.extra_mixer._owner is result


def test_bad_field_in_optional_group_is_reported(tmp_path, kind, base):
    """Test that a bad field inside a new nested group is warned about, not dropped silently."""
    source = FileOverrideSource(write(tmp_path / "Kind.json", {"extra_mixer": {"master": "loud"}, "A": 3}))

    resolution = MergeEngine().resolve(base, [source], kind)

    assert resolution.instance.extra_mixer is None
    assert resolution.instance.A == 3
    assert len(resolution.warnings) == 1
    assert "extra_mixer" in resolution.warnings[0]
    assert "master" in resolution.warnings[0]
    assert "Kind" in resolution.warnings[0]
