"""doc-merge CLI entry point."""

import json
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.syntax import Syntax

import yaml

from docmerge import __version__
from docmerge.config import (
    DEFAULT_CONFIG_FILE,
    DEFAULT_SOURCE,
    DocMergeConfig,
    get_default_config,
    get_nested_value,
    load_config,
    save_config,
    set_nested_value,
)
from docmerge.errors import CrateCollisionError, DocMergeError
from docmerge.utils.logging import setup_logging

console = Console()
err_console = Console(stderr=True)


def print_success(message: str) -> None:
    """Print success message."""
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str, detail: str | None = None) -> None:
    """Print error message."""
    err_console.print(f"[red]✗[/red] {message}")
    if detail:
        err_console.print(f"  [dim]{detail}[/dim]")


def print_warning(message: str) -> None:
    """Print warning message."""
    err_console.print(f"[yellow]⚠[/yellow] {message}")


def fail(error: DocMergeError) -> None:
    """Report a fatal merge error and exit with its status."""
    if isinstance(error, CrateCollisionError):
        print_error(
            f"Crate name collision: {error.crate}",
            f"already merged from {error.existing_source}\n  incoming from {error.incoming_source}",
        )
    else:
        print_error(str(error))
    sys.exit(error.exit_code)


def _config_path(ctx: click.Context) -> Path:
    return ctx.obj["config_path"]


def _config(ctx: click.Context) -> DocMergeConfig:
    return ctx.obj["config"]


@click.group()
@click.version_option(version=__version__, prog_name="doc-merge")
@click.option(
    "--config", "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    help=f"Configuration file (default: ./{DEFAULT_CONFIG_FILE})",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.option("--quiet", "-q", is_flag=True, help="Only show warnings and errors")
@click.option("--log-file", type=click.Path(dir_okay=False, path_type=Path), help="Also write the log to a file")
@click.pass_context
def main(ctx: click.Context, config_file: Path | None, verbose: bool, quiet: bool, log_file: Path | None) -> None:
    """doc-merge: combine `cargo doc` output from several crates into one site.

    Merges each crate's generated documentation into a shared destination and
    writes an index page linking every crate.
    """
    level = "DEBUG" if verbose else "WARNING" if quiet else "INFO"
    setup_logging(level=level, log_file=log_file)

    config_path = config_file or DEFAULT_CONFIG_FILE
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["config"] = load_config(config_path)


@main.command()
@click.option(
    "--src", "sources", multiple=True,
    type=click.Path(file_okay=False, path_type=Path),
    help=f"Documentation to merge in (repeatable, in order; default: ./{DEFAULT_SOURCE})",
)
@click.option("--dest", required=True, type=click.Path(file_okay=False, path_type=Path), help="Root of the shared documentation site")
@click.option("--create-dest", is_flag=True, help="Create the destination if it does not exist")
@click.option("--force", is_flag=True, help="Overwrite crates that collide instead of failing")
@click.option("--index-crate", help="Crate whose page the index redirects to")
@click.option("--jobs", "-j", type=click.IntRange(min=1), help="Parallel copy workers per source")
@click.option("--json", "as_json", is_flag=True, help="Output the result as JSON")
@click.pass_context
def merge(
    ctx: click.Context,
    sources: tuple[Path, ...],
    dest: Path,
    create_dest: bool,
    force: bool,
    index_crate: str | None,
    jobs: int | None,
    as_json: bool,
) -> None:
    """Merge documentation trees into DEST and rebuild its index."""
    from docmerge.merger import merge_docs

    config = _config(ctx)
    if create_dest:
        config.create_dest = True
    if force:
        config.force = True
    if index_crate:
        config.index.default_crate = index_crate
    if jobs:
        config.jobs = jobs

    source_list = list(sources) or [DEFAULT_SOURCE]

    try:
        result = merge_docs(source_list, dest, config)
    except DocMergeError as e:
        fail(e)
        return

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    # Divergences and warnings were already logged as they happened
    console.print(Panel.fit(
        f"[bold green]MERGE COMPLETE[/bold green]\n\n"
        f"  Sources: {len(result.sources_merged)}\n"
        f"  Crates merged: {', '.join(result.crates) or '-'}\n"
        f"  Files copied: {result.files_copied:,}\n"
        f"  Files updated: {result.files_updated:,}\n"
        f"  Files unchanged: {result.files_unchanged:,}\n"
        f"  Shared assets written: {result.shared_written:,}\n"
        f"  Shared assets skipped: {result.shared_skipped:,}\n"
        f"  Search index merges: {result.search_index_merged:,}\n"
        f"  Warnings: {len(result.divergences) + len(result.warnings)}\n"
        f"  Index lists: {len(result.index_crates)} crate(s)",
        border_style="green",
    ))


@main.command()
@click.option("--dest", required=True, type=click.Path(exists=True, file_okay=False, path_type=Path), help="Root of the shared documentation site")
@click.option("--index-crate", help="Crate whose page the index redirects to")
@click.pass_context
def index(ctx: click.Context, dest: Path, index_crate: str | None) -> None:
    """Rebuild DEST's index page without merging anything."""
    from docmerge.index import IndexSynthesizer

    config = _config(ctx)
    if index_crate:
        config.index.default_crate = index_crate

    try:
        crates = IndexSynthesizer(dest, config).write()
    except DocMergeError as e:
        fail(e)
        return

    print_success(f"Index written with {len(crates)} crate(s)")


@main.command()
@click.option("--dest", required=True, type=click.Path(exists=True, file_okay=False, path_type=Path), help="Root of the shared documentation site")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def crates(ctx: click.Context, dest: Path, as_json: bool) -> None:
    """List the crates merged into DEST and where they came from."""
    from docmerge.index import IndexSynthesizer
    from docmerge.manifest import Manifest

    config = _config(ctx)
    try:
        manifest = Manifest.load(dest / config.manifest_name)
    except DocMergeError as e:
        fail(e)
        return

    names = IndexSynthesizer(dest, config).classifier.crate_dirs(dest)

    if as_json:
        click.echo(json.dumps({name: manifest.origin_of(name) for name in names}, indent=2))
        return

    if not names:
        print_warning(f"No crates found in {dest}")
        return

    table = Table(title=f"Crates in {dest}")
    table.add_column("Crate", style="cyan")
    table.add_column("Source")
    for name in names:
        table.add_row(name, manifest.origin_of(name) or "[dim]unknown[/dim]")
    console.print(table)


@main.group()
def config() -> None:
    """Manage doc-merge configuration."""
    pass


@config.command("init")
@click.option("--overwrite", is_flag=True, help="Replace an existing configuration file")
@click.pass_context
def config_init(ctx: click.Context, overwrite: bool) -> None:
    """Write a configuration file with the default settings."""
    path = _config_path(ctx)
    if path.exists() and not overwrite:
        print_error(f"Config already exists at {path}", "Use --overwrite to replace it")
        sys.exit(1)

    save_config(get_default_config(), path)
    print_success(f"Configuration initialized at {path}")


@config.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show the effective configuration."""
    text = yaml.dump(_config(ctx).model_dump(mode="json"), default_flow_style=False, sort_keys=False)
    console.print(Syntax(text, "yaml", theme="monokai"))


@config.command("get")
@click.argument("key")
@click.pass_context
def config_get(ctx: click.Context, key: str) -> None:
    """Print a single configuration value (dotted KEY)."""
    value = get_nested_value(_config(ctx), key)
    if value is None:
        print_error(f"Unknown or unset key: {key}")
        sys.exit(1)

    if hasattr(value, "model_dump"):
        value = value.model_dump(mode="json")
    elif isinstance(value, list):
        value = [v.model_dump(mode="json") if hasattr(v, "model_dump") else v for v in value]
    if isinstance(value, (dict, list)):
        click.echo(json.dumps(value, indent=2))
    else:
        click.echo(value)


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx: click.Context, key: str, value: str) -> None:
    """Set a configuration value (dotted KEY) and save the file."""
    config = _config(ctx)
    try:
        set_nested_value(config, key, value)
        config = DocMergeConfig.model_validate(config.model_dump())
    except (KeyError, ValueError) as e:
        print_error(f"Cannot set {key}", str(e))
        sys.exit(1)

    save_config(config, _config_path(ctx))
    print_success(f"{key} = {get_nested_value(config, key)}")


if __name__ == "__main__":
    main()
