"""Tests for override source readers."""

import json
from dataclasses import dataclass

import pytest

from settingsforge import OverrideParseError, SettingsObject, runtime_project_settings
from settingsforge.kinds import kind_of
from settingsforge.overrides import (
    CommandLineOverrideSource,
    FileOverrideSource,
    command_line_sources,
    file_sources,
    order_sources,
    parse_argument,
)


@runtime_project_settings(filename="Audio")
@dataclass
class AudioSettings(SettingsObject):
    volume: int = 5


def test_parse_long_and_short_form():
    """Test parse long and short form."""
    long_form = parse_argument("-settings:Audio.mixer.volume=7")
    short_form = parse_argument("-s:Audio.volume=7")

    assert long_form.kind_name == "Audio"
    assert long_form.field_path == ("mixer", "volume")
    assert long_form.value == "7"
    assert short_form.field_path == ("volume",)


def test_parse_keeps_equals_signs_in_value():
    """Test parse keeps equals signs in value."""
    parsed = parse_argument("-s:Audio.title=a=b")
    assert parsed.value == "a=b"


def test_parse_ignores_other_arguments():
    """Test parse ignores other arguments."""
    assert parse_argument("--verbose") is None
    assert parse_argument("-s") is None
    assert parse_argument("input.txt") is None


@pytest.mark.parametrize("token", [
    "-settings",
    "-settingsAudio.volume=1",
    "-s:Audio",
    "-s:Audio.volume",
    "-s:Audio=3",
    "-s:Audio.=3",
    "-s:Audio.mixer..volume=3",
    "-s:.volume=3",
])
def test_parse_rejects_malformed_tokens(token):
    """Test parse rejects malformed tokens."""
    with pytest.raises(OverrideParseError):
        parse_argument(token)


def test_command_line_sources_skip_malformed_tokens_individually():
    """Test command line sources skip malformed tokens individually."""
    kind = kind_of(AudioSettings)
    argv = ["-s:Audio", "-s:Audio.volume=9", "-s:Other.x=1", "-settings:AudioSettings.volume=3"]

    sources, warnings = command_line_sources(argv, kind)

    assert [s.origin for s in sources] == ["-s:Audio.volume=9", "-settings:AudioSettings.volume=3"]
    assert len(warnings) == 1
    assert "-s:Audio" in warnings[0]


def test_command_line_source_builds_nested_raw_patch():
    """Test command line source builds nested raw patch."""
    source = CommandLineOverrideSource("-s:Audio.mixer.volume=7")
    patch = source.read(kind_of(AudioSettings))

    assert patch.raw is True
    assert patch.tree == {"mixer": {"volume": "7"}}
    assert patch.origin == "-s:Audio.mixer.volume=7"


def test_command_line_source_ignores_other_kinds():
    """Test command line source ignores other kinds."""
    source = CommandLineOverrideSource("-s:Video.width=7")
    assert source.read(kind_of(AudioSettings)) is None


def test_file_source_missing_file_has_no_patch(tmp_path):
    """Test file source missing file has no patch."""
    assert FileOverrideSource(tmp_path / "missing.json").read() is None


def test_file_source_reads_tree(tmp_path):
    """Test file source reads tree."""
    path = tmp_path / "Audio.json"
    path.write_text(json.dumps({"volume": 3}))

    patch = FileOverrideSource(path).read()

    assert patch.tree == {"volume": 3}
    assert patch.raw is False
    assert patch.origin == str(path)


def test_file_source_selector_picks_kind_section(tmp_path):
    """Test file source selector picks kind section."""
    path = tmp_path / "Settings.json"
    path.write_text(json.dumps({"Audio": {"volume": 1}, "Video": {"width": 2}}))

    assert FileOverrideSource(path, selector="Audio").read().tree == {"volume": 1}
    assert FileOverrideSource(path, selector="Network").read() is None


def test_file_source_invalid_json_raises(tmp_path):
    """Test file source invalid json raises."""
    path = tmp_path / "Audio.json"
    path.write_text("{ not json")

    with pytest.raises(OverrideParseError):
        FileOverrideSource(path).read()


def test_file_source_non_object_root_raises(tmp_path):
    """Test file source non object root raises."""
    path = tmp_path / "Audio.json"
    path.write_text("[1, 2, 3]")

    with pytest.raises(OverrideParseError):
        FileOverrideSource(path).read()


def test_file_sources_order(tmp_path):
    """Test file sources order."""
    sources = file_sources(kind_of(AudioSettings), tmp_path)

    assert [s.path.name for s in sources] == ["Settings.json", "Audio.json"]
    assert sources[0].selector == "Audio"
    assert sources[1].selector is None


def test_order_sources_puts_files_before_arguments(tmp_path):
    """Test order sources puts files before arguments."""
    argument = CommandLineOverrideSource("-s:Audio.volume=1")
    file_source = FileOverrideSource(tmp_path / "Audio.json")

    assert order_sources([argument, file_source]) == [file_source, argument]
