"""Command-line interface for settingsforge."""

import importlib
import json
from pathlib import Path
from typing import List, Optional

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import ForgeConfig, configure_logging, load_config, save_config
from .discovery import DiscoveryCache
from .errors import SettingsError
from .kinds import Capability
from .lifecycle import SettingsRegistry
from .storage import SettingsStore, to_json_value

app = typer.Typer(
    name="settingsforge",
    help="Resolve, inspect and discover layered settings kinds",
    add_completion=False,
)
console = Console()

OVERRIDE_CONTEXT = {"allow_extra_args": True, "ignore_unknown_options": True}


def import_kind(reference: str) -> type:
    """Import a settings kind from 'package.module:ClassName'."""
    module_name, sep, qualname = reference.partition(":")
    if not sep:
        module_name, _, qualname = reference.rpartition(".")
    if not module_name or not qualname:
        raise typer.BadParameter(f"Expected 'module:ClassName', got '{reference}'")

    try:
        value = importlib.import_module(module_name)
    except ImportError as e:
        raise typer.BadParameter(f"Cannot import {module_name}: {e}")
    for part in qualname.split("."):
        value = getattr(value, part, None)
        if value is None:
            raise typer.BadParameter(f"{qualname} not found in {module_name}")
    return value


def _registry(config_file: Optional[str], argv: Optional[List[str]] = None) -> SettingsRegistry:
    config = load_config(config_file)
    configure_logging(config)
    return SettingsRegistry(config, argv=argv or [])


@app.command(context_settings=OVERRIDE_CONTEXT)
def show(
    ctx: typer.Context,
    kind: str = typer.Argument(..., help="Settings kind as module:ClassName"),
    config_file: Optional[str] = typer.Option(None, "--config", help="Path to configuration file"),
):
    """Show the active instance of a settings kind.

    Extra -settings:Kind.field=value (or -s:...) arguments are applied as
    command-line overrides.
    """
    cls = import_kind(kind)
    registry = _registry(config_file, list(ctx.args))

    instance = registry.get_active(cls)
    if instance is None:
        console.print(f"[red]✗ No settings available for {kind}[/red]")
        raise typer.Exit(1)

    provenance = registry.provenance(cls)
    console.print(Panel.fit(
        json.dumps(to_json_value(instance), indent=2),
        title=instance.label or cls.__name__,
    ))
    if provenance:
        console.print(f"[bold blue]Overrides applied from:[/bold blue] {', '.join(provenance)}")
    else:
        console.print("[green]No overrides applied[/green]")
    for warning in registry.warnings(cls):
        console.print(f"[yellow]⚠ {warning}[/yellow]")


@app.command()
def sources(
    kind: str = typer.Argument(..., help="Settings kind as module:ClassName"),
    config_file: Optional[str] = typer.Option(None, "--config", help="Path to configuration file"),
):
    """List the override sources of a settings kind in application order."""
    cls = import_kind(kind)
    registry = _registry(config_file)

    table = Table(title=f"Override sources of {cls.__name__}")
    table.add_column("Rank", justify="right")
    table.add_column("Origin", style="cyan")
    table.add_column("Present", justify="center")

    for source in registry.override_sources(cls):
        present = Path(source.origin).is_file() if source.is_file else True
        table.add_row(str(source.rank), source.origin, "✓" if present else "✗")

    console.print(table)


@app.command()
def save(
    kind: str = typer.Argument(..., help="Settings kind as module:ClassName"),
    filename: Optional[str] = typer.Argument(None, help="Target .json file (defaults to the kind's filename)"),
    config_file: Optional[str] = typer.Option(None, "--config", help="Path to configuration file"),
):
    """Save the active instance of a settings kind as a .json file."""
    cls = import_kind(kind)
    registry = _registry(config_file)

    try:
        path = registry.save_as_file(cls, filename)
    except SettingsError as e:
        console.print(f"[red]✗ Save failed: {e}[/red]")
        logger.error(f"Save error: {e}")
        raise typer.Exit(1)

    console.print(f"[green]✓ Settings saved to: {path}[/green]")


@app.command()
def load(
    kind: str = typer.Argument(..., help="Settings kind as module:ClassName"),
    filename: Optional[str] = typer.Argument(None, help="Source .json file (defaults to the kind's filename)"),
    persist: bool = typer.Option(True, "--persist/--no-persist", help="Store the loaded values as the base instance"),
    config_file: Optional[str] = typer.Option(None, "--config", help="Path to configuration file"),
):
    """Load a .json file into the settings of a kind."""
    cls = import_kind(kind)
    registry = _registry(config_file)
    # Loading edits the base instance, never a derived runtime copy.
    registry.exit_live_mode()

    try:
        if not registry.load_from_file(cls, filename):
            console.print(f"[red]✗ Settings file not found: {filename or cls.__name__}[/red]")
            raise typer.Exit(1)
        if persist:
            registry.save(cls)
    except SettingsError as e:
        console.print(f"[red]✗ Load failed: {e}[/red]")
        logger.error(f"Load error: {e}")
        raise typer.Exit(1)

    console.print(f"[green]✓ Settings loaded from: {filename or cls.__name__}[/green]")


@app.command()
def discover(
    modules: List[str] = typer.Argument(None, help="Modules to import before discovery"),
    no_cache: bool = typer.Option(False, "--no-cache", help="Ignore the discovery cache and scan everything"),
    config_file: Optional[str] = typer.Option(None, "--config", help="Path to configuration file"),
):
    """List the settings kinds declared in the loaded modules."""
    config = load_config(config_file)
    configure_logging(config)

    for module_name in modules or []:
        try:
            importlib.import_module(module_name)
        except ImportError as e:
            console.print(f"[red]✗ Cannot import {module_name}: {e}[/red]")
            raise typer.Exit(1)

    registry = SettingsRegistry(config, argv=[])
    cache = DiscoveryCache(
        config.discovery_cache_file,
        accessor_factory=lambda cls: (lambda: registry.get_active(cls)),
    )
    if no_cache:
        cache.invalidate()
    descriptors = cache.get_descriptors()

    table = Table(title="Settings Kinds")
    table.add_column("Display Path", style="cyan")
    table.add_column("Type", style="green")
    table.add_column("Usage")
    table.add_column("Overridable", justify="center")

    for descriptor in sorted(descriptors, key=lambda d: d.display_path):
        kind = descriptor.kind
        table.add_row(
            descriptor.display_path,
            kind.type_name,
            kind.usage.value,
            "✓" if kind.has(Capability.OVERRIDABLE) else "✗",
        )
    console.print(table)

    report = cache.last_report
    console.print(f"Scanned {len(report.scanned)} modules, reused {len(report.reused)} cached results")
    for error in report.errors:
        console.print(f"[red]✗ {error}[/red]")
    if report.errors:
        raise typer.Exit(1)


@app.command()
def config(
    show: bool = typer.Option(False, "--show", help="Show current configuration and store layout"),
    save: Optional[str] = typer.Option(None, "--save", help="Save configuration to file"),
    load: Optional[str] = typer.Option(None, "--load", help="Load configuration from file"),
    config_file: Optional[str] = typer.Option(None, "--config", help="Path to configuration file"),
):
    """Manage configuration and show where settings are stored and overridden."""

    if show:
        current = load_config(config_file)
        console.print(Panel.fit(
            json.dumps(current.to_dict(), indent=2),
            title="Current Configuration"
        ))
        _print_layout(current)

    elif save:
        current = load_config(config_file)
        save_config(current, save)
        console.print(f"[green]✓ Configuration saved to: {save}[/green]")

    elif load:
        if not Path(load).exists():
            console.print(f"[red]✗ Configuration file not found: {load}[/red]")
            raise typer.Exit(1)

        loaded = load_config(load)
        console.print(f"[green]✓ Configuration loaded from: {load}[/green]")
        _print_layout(loaded)

    else:
        console.print("[yellow]Please specify --show, --save, or --load[/yellow]")


def _print_layout(current: ForgeConfig):
    """Print the base store directory of each usage and the override locations."""
    store = SettingsStore(current)
    table = Table(title="Settings Layout")
    table.add_column("Usage", style="cyan", no_wrap=True)
    table.add_column("Location", overflow="fold")
    table.add_column("Exists", justify="center")

    for usage, directory in store.scope_directories().items():
        table.add_row(usage.value, str(directory), "✓" if directory.is_dir() else "✗")

    override_directory = Path(current.override_directory)
    table.add_row("Overrides", str(override_directory), "✓" if override_directory.is_dir() else "✗")
    if current.main_override_file:
        main_file = override_directory / current.main_override_file
        table.add_row("Main override file", str(main_file), "✓" if main_file.is_file() else "✗")
    console.print(table)


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
