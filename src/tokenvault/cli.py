"""Command-line interface for tokenvault."""

import json
import sys
import logging
from pathlib import Path
from typing import Any, Optional

import click

from tokenvault import __version__
from tokenvault.batch import run_batch
from tokenvault.config import load_config, load_config_file
from tokenvault.engine import Engine
from tokenvault.errors import (
    CollisionError,
    LibraryLoadError,
    MappingParseError,
    PersistenceError,
    ValidationError,
)
from tokenvault.guard import classify_file
from tokenvault.models import FileClassification, Operation, RegexDefinition
from tokenvault.registry import DEFAULT_LIBRARY_PATH, RegexLibrary, load_library

EXIT_PARTIAL = 1
EXIT_FATAL = 2


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _fail(message: str, code: int = EXIT_FATAL) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(code)


def _engine(settings: dict[str, Any], library: Optional[Path]) -> Engine:
    library_path = library or settings["library_path"]
    try:
        registry = load_library(library_path)
    except LibraryLoadError as e:
        _fail(str(e))
    return Engine(registry, hash_algorithm=settings["hash_algorithm"])


@click.group()
@click.version_option(version=__version__)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Configuration file",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, config: Optional[Path]) -> None:
    """tokenvault: Replace sensitive values with reversible tokens."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    setup_logging(verbose)
    try:
        ctx.obj["settings"] = load_config_file(config) if config else load_config()
    except ValidationError as e:
        _fail(str(e))


library_option = click.option(
    "--library",
    "-l",
    type=click.Path(exists=True, path_type=Path),
    help="Regex library file (uses the packaged default if not specified)",
)
prefix_option = click.option(
    "--prefix",
    "-p",
    "prefixes",
    multiple=True,
    help="Prefixes to apply, in order (can be used multiple times)",
)
mapping_option = click.option(
    "--mapping",
    "-m",
    type=click.Path(path_type=Path),
    help="Mapping file (format from --format or the file suffix)",
)
format_option = click.option(
    "--format",
    "mapping_format",
    type=click.Choice(["json", "csv"]),
    help="Mapping file format",
)


def _run(
    ctx: click.Context,
    operation: Operation,
    files: tuple[Path, ...],
    library: Optional[Path],
    mapping: Optional[Path],
    mapping_format: Optional[str],
    prefixes: tuple[str, ...],
    in_place: bool,
) -> None:
    settings = ctx.obj["settings"]
    mapping = mapping or settings["mapping_path"]
    if mapping is None:
        _fail("Must provide --mapping or set mapping.path in the config")

    engine = _engine(settings, library)
    try:
        result = run_batch(
            engine,
            files,
            operation=operation,
            mapping_path=mapping,
            mapping_format=mapping_format or settings["mapping_format"],
            prefixes=list(prefixes) if prefixes else None,
            encoding=settings["encoding"],
            sample_size=settings["sample_size"],
            threshold=settings["threshold"],
            in_place=in_place,
        )
    except (
        CollisionError,
        MappingParseError,
        LibraryLoadError,
        PersistenceError,
        ValidationError,
    ) as e:
        _fail(str(e))
    except FileNotFoundError as e:
        _fail(f"Mapping not found: {e}")

    for outcome in result.outcomes:
        if outcome.skipped:
            click.echo(f"  skipped {outcome.path} ({outcome.classification.value})")
        elif operation == Operation.TOKENIZE:
            click.echo(
                f"  {outcome.path} -> {outcome.output_path}: {outcome.match_count} matches, "
                f"{outcome.new_entries} new tokens"
            )
        else:
            click.echo(
                f"  {outcome.path} -> {outcome.output_path}: {outcome.replacement_count} restored, "
                f"{outcome.unresolved_count} unresolved"
            )
    click.echo(
        f"Processed {len(result.processed)} files, skipped {len(result.skipped)}, "
        f"failed {len(result.errors)}"
    )

    if not result.ok:
        for path, error in result.errors:
            click.echo(f"  failed {path}: {error}", err=True)
        sys.exit(EXIT_PARTIAL)


@main.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(path_type=Path))
@library_option
@prefix_option
@mapping_option
@format_option
@click.option("--in-place", is_flag=True, help="Overwrite input files")
@click.pass_context
def tokenize(
    ctx: click.Context,
    files: tuple[Path, ...],
    library: Optional[Path],
    prefixes: tuple[str, ...],
    mapping: Optional[Path],
    mapping_format: Optional[str],
    in_place: bool,
) -> None:
    """Tokenize files, accumulating one mapping file."""
    _run(ctx, Operation.TOKENIZE, files, library, mapping, mapping_format, prefixes, in_place)


@main.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(path_type=Path))
@mapping_option
@format_option
@click.option("--in-place", is_flag=True, help="Overwrite input files")
@click.pass_context
def rehydrate(
    ctx: click.Context,
    files: tuple[Path, ...],
    mapping: Optional[Path],
    mapping_format: Optional[str],
    in_place: bool,
) -> None:
    """Restore original values in tokenized files."""
    _run(ctx, Operation.REHYDRATE, files, None, mapping, mapping_format, (), in_place)


@main.command()
@click.option("--text", "-t", help="Text to preview (use --file for file input)")
@click.option(
    "--file",
    "-f",
    type=click.Path(exists=True, path_type=Path),
    help="File to preview",
)
@library_option
@prefix_option
@click.option(
    "--output",
    "-o",
    type=click.Choice(["json", "text"]),
    default="text",
    help="Output format",
)
@click.pass_context
def preview(
    ctx: click.Context,
    text: Optional[str],
    file: Optional[Path],
    library: Optional[Path],
    prefixes: tuple[str, ...],
    output: str,
) -> None:
    """Show which values would be tokenized, without changing anything."""
    if text is None and file is None:
        _fail("Must provide --text or --file", code=1)

    settings = ctx.obj["settings"]
    if file:
        classification = classify_file(
            file,
            sample_size=settings["sample_size"],
            threshold=settings["threshold"],
            encoding=settings["encoding"],
        )
        if classification != FileClassification.TEXT:
            click.echo(f"  skipped {file} ({classification.value})")
            return
        with open(file, "r", encoding=settings["encoding"], newline="") as f:
            text = f.read()
    assert text is not None

    engine = _engine(settings, library)
    try:
        result = engine.preview(text, prefixes=list(prefixes) if prefixes else None)
    except ValidationError as e:
        _fail(str(e))

    if output == "json":
        click.echo(
            json.dumps(
                {
                    "match_count": result.match_count,
                    "matches": [
                        {
                            "prefix": m.prefix,
                            "original": m.original,
                            "start": m.start,
                            "end": m.end,
                            "token": result.token_for(m.prefix, m.original),
                        }
                        for m in result.matches
                    ],
                },
                indent=2,
                ensure_ascii=False,
            )
        )
    else:
        click.echo(f"Found {result.match_count} matches, {len(result.entries)} distinct values")
        for entry in result.entries:
            click.echo(f"  {entry.prefix:<10} {entry.token}  {entry.original}")


@main.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(path_type=Path))
@click.pass_context
def classify(ctx: click.Context, files: tuple[Path, ...]) -> None:
    """Report whether files are text, binary or unreadable."""
    settings = ctx.obj["settings"]
    missing = False
    for path in files:
        try:
            classification = classify_file(
                path,
                sample_size=settings["sample_size"],
                threshold=settings["threshold"],
                encoding=settings["encoding"],
            )
        except FileNotFoundError as e:
            click.echo(f"Error: {e}", err=True)
            missing = True
            continue
        click.echo(f"{classification.value:<11} {path}")
    if missing:
        sys.exit(EXIT_PARTIAL)


@main.command()
@library_option
@click.pass_context
def list_patterns(ctx: click.Context, library: Optional[Path]) -> None:
    """List patterns in the regex library."""
    registry = _engine(ctx.obj["settings"], library).library

    click.echo(f"Loaded {len(registry)} patterns\n")
    for definition in registry.definitions:
        click.echo(f"  {definition.prefix:<12} {definition.description}")


@main.command()
@click.option("--prefix", required=True, help="Alphanumeric prefix, e.g. EMAIL")
@click.option("--pattern", required=True, help="Regular expression (matched case-insensitively)")
@click.option("--description", default="", help="Human readable description")
@click.option(
    "--library",
    "-l",
    type=click.Path(path_type=Path),
    help="Regex library file to update",
)
@click.pass_context
def add_pattern(
    ctx: click.Context,
    prefix: str,
    pattern: str,
    description: str,
    library: Optional[Path],
) -> None:
    """Add a pattern to a regex library file."""
    settings = ctx.obj["settings"]
    path = library or settings["library_path"]
    if path is None:
        _fail("Must provide --library or set library.path in the config")
    path = Path(path)
    if path.resolve() == DEFAULT_LIBRARY_PATH.resolve():
        _fail("Refusing to modify the packaged default library")

    try:
        registry = load_library(path) if path.exists() else RegexLibrary()
        registry.add(RegexDefinition(prefix, pattern, description), path=path)
    except (ValidationError, LibraryLoadError, PersistenceError) as e:
        _fail(str(e))

    click.echo(f"Added {prefix} to {path}")


@main.command()
@click.option("--port", "-p", type=int, default=None, help="Port to listen on")
@click.option("--host", "-h", default=None, help="Host to bind to")
@library_option
@click.option(
    "--reload",
    is_flag=True,
    help="Enable auto-reload (development only)",
)
@click.pass_context
def serve(
    ctx: click.Context,
    port: Optional[int],
    host: Optional[str],
    library: Optional[Path],
    reload: bool,
) -> None:
    """Start HTTP server."""
    try:
        import uvicorn
        from tokenvault.server import create_app
    except ImportError:
        _fail("Server dependencies not installed. Install with: pip install tokenvault[server]", 1)

    settings = dict(ctx.obj["settings"])
    if library:
        settings["library_path"] = str(library)
    host = host or settings["host"]
    port = port or settings["port"]

    click.echo(f"Starting server on {host}:{port}")

    app = create_app(settings)

    uvicorn.run(
        app,
        host=host,
        port=port,
        reload=reload,
        log_level="info" if ctx.obj.get("verbose") else "warning",
    )


if __name__ == "__main__":
    main()
