"""Basic usage example for settingsforge."""

from dataclasses import dataclass, field

from settingsforge import (
    QueueContext,
    SettingsObject,
    SettingsRegistry,
    SubSettings,
    runtime_project_settings,
)
from settingsforge.config import load_config
from settingsforge.discovery import DiscoveryCache


@dataclass
class Audio(SubSettings):
    master: float = 1.0
    music: float = 0.8


@runtime_project_settings("Game/Rules", filename="Game", allow_file_watchers=True)
@dataclass
class GameSettings(SettingsObject):
    difficulty: int = 1
    player_name: str = "player"
    audio: Audio = field(default_factory=Audio)


def main():
    """Basic usage example."""

    # Load configuration
    config = load_config()

    # Overrides come from ./Settings.json, ./Game.json and arguments such as
    #   python basic_usage.py -s:Game.difficulty=3
    registry = SettingsRegistry(config)

    settings = registry.get_active(GameSettings)
    print(f"Difficulty: {settings.difficulty}")
    print(f"Overrides applied from: {registry.provenance(GameSettings) or 'nowhere'}")

    # Edit and persist the base instance
    base = registry.get_base(GameSettings)
    base.set("player_name", "example")
    registry.save_dirty()

    # Reload override files whenever they change; reloads run on this thread
    context = QueueContext()
    registry.enter_live_mode(context)
    try:
        print("Edit Game.json and press enter to apply, or type q to quit")
        while input().strip() != "q":
            context.run_pending()
            print(f"Difficulty: {registry.get_active(GameSettings).difficulty}")
    finally:
        registry.exit_live_mode()

    # List every settings kind declared in the loaded modules
    cache = DiscoveryCache(config.discovery_cache_file)
    for descriptor in sorted(cache.get_descriptors(), key=lambda d: d.display_path):
        print(f"{descriptor.display_path}: {descriptor.kind.type_name}")


if __name__ == "__main__":
    main()
