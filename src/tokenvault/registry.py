"""Regex library for loading, validating and persisting pattern definitions."""

import json
import re
import logging
from pathlib import Path
from typing import Any, Iterable, Optional, Union

import jsonschema

from tokenvault.errors import LibraryLoadError, ValidationError
from tokenvault.fileio import atomic_write_text
from tokenvault.models import CompiledDefinition, RegexDefinition

logger = logging.getLogger(__name__)

PREFIX_RE = re.compile(r"[A-Za-z0-9]+")

_PACKAGE_DIR = Path(__file__).parent
DEFAULT_LIBRARY_PATH = _PACKAGE_DIR / "patterns" / "default.json"
SCHEMA_PATH = _PACKAGE_DIR / "schemas" / "library-schema.json"


def compile_pattern(definition: RegexDefinition) -> CompiledDefinition:
    """
    Compile a definition's pattern case-insensitively.

    Args:
        definition: Definition to compile

    Returns:
        CompiledDefinition wrapping the compiled regex

    Raises:
        ValidationError: If the pattern does not compile or matches the empty string
    """
    try:
        compiled = re.compile(definition.pattern, re.IGNORECASE)
    except re.error as e:
        raise ValidationError(
            f"Failed to compile pattern {definition.prefix}: {e}", prefix=definition.prefix
        ) from e

    if compiled.fullmatch("") is not None:
        raise ValidationError(
            f"Pattern {definition.prefix} matches the empty string", prefix=definition.prefix
        )

    return CompiledDefinition(definition=definition, compiled=compiled)


def validate_definition(
    definition: RegexDefinition, existing: Iterable[str] = ()
) -> CompiledDefinition:
    """
    Validate a definition against a set of already used prefixes.

    Args:
        definition: Definition to validate
        existing: Prefixes already present in the library

    Returns:
        CompiledDefinition for the definition

    Raises:
        ValidationError: On empty, non-alphanumeric or duplicate prefix, or bad pattern
    """
    prefix = definition.prefix
    if not prefix:
        raise ValidationError("Prefix must not be empty", prefix=prefix)
    if not PREFIX_RE.fullmatch(prefix):
        raise ValidationError(f"Prefix {prefix!r} must be alphanumeric", prefix=prefix)
    if prefix in set(existing):
        raise ValidationError(f"Prefix {prefix} already exists", prefix=prefix)

    return compile_pattern(definition)


class RegexLibrary:
    """Ordered collection of validated regex definitions."""

    def __init__(self, definitions: Optional[Iterable[RegexDefinition]] = None) -> None:
        """
        Initialize library, validating every definition.

        Raises:
            ValidationError: If a definition is invalid or a prefix repeats
        """
        self._compiled: dict[str, CompiledDefinition] = {}  # prefix -> compiled
        for definition in definitions or []:
            self._compiled[definition.prefix] = validate_definition(
                definition, existing=self._compiled.keys()
            )
        self._version: int = 0

    def get(self, prefix: str) -> Optional[CompiledDefinition]:
        """Get compiled definition by prefix."""
        return self._compiled.get(prefix)

    @property
    def prefixes(self) -> list[str]:
        """Return prefixes in library order."""
        return list(self._compiled.keys())

    @property
    def definitions(self) -> list[RegexDefinition]:
        """Return definitions in library order."""
        return [c.definition for c in self._compiled.values()]

    @property
    def version(self) -> int:
        """Get current library version (increments on changes)."""
        return self._version

    def select(self, prefixes: Optional[Iterable[str]] = None) -> list[CompiledDefinition]:
        """
        Return compiled definitions for prefixes, in the requested order.

        Args:
            prefixes: Prefixes to select. If None, selects all in library order.

        Raises:
            ValidationError: If a prefix is not in the library
        """
        if prefixes is None:
            return list(self._compiled.values())

        selected: list[CompiledDefinition] = []
        seen: set[str] = set()
        for prefix in prefixes:
            if prefix in seen:
                continue
            compiled = self._compiled.get(prefix)
            if compiled is None:
                raise ValidationError(f"Unknown prefix: {prefix}", prefix=prefix)
            selected.append(compiled)
            seen.add(prefix)
        return selected

    def add(
        self, definition: RegexDefinition, path: Optional[Union[str, Path]] = None
    ) -> CompiledDefinition:
        """
        Validate and append a definition, persisting the library if path is given.

        The in-memory library only changes once the file was written.

        Raises:
            ValidationError: If the definition is invalid
            PersistenceError: If the library file could not be written
        """
        compiled = validate_definition(definition, existing=self._compiled.keys())
        updated = dict(self._compiled)
        updated[definition.prefix] = compiled
        self._commit(updated, path)
        logger.info(f"Added pattern {definition.prefix}")
        return compiled

    def replace(
        self, definition: RegexDefinition, path: Optional[Union[str, Path]] = None
    ) -> CompiledDefinition:
        """Replace the definition with the same prefix, then persist."""
        if definition.prefix not in self._compiled:
            raise ValidationError(
                f"Unknown prefix: {definition.prefix}", prefix=definition.prefix
            )
        others = [p for p in self._compiled if p != definition.prefix]
        compiled = validate_definition(definition, existing=others)
        updated = dict(self._compiled)
        updated[definition.prefix] = compiled
        self._commit(updated, path)
        logger.info(f"Replaced pattern {definition.prefix}")
        return compiled

    def remove(self, prefix: str, path: Optional[Union[str, Path]] = None) -> None:
        """Remove a definition, then persist."""
        if prefix not in self._compiled:
            raise ValidationError(f"Unknown prefix: {prefix}", prefix=prefix)
        updated = {p: c for p, c in self._compiled.items() if p != prefix}
        self._commit(updated, path)
        logger.info(f"Removed pattern {prefix}")

    def save(self, path: Union[str, Path]) -> None:
        """Atomically rewrite the library file."""
        _write_library(path, self.definitions)

    def _commit(
        self, updated: dict[str, CompiledDefinition], path: Optional[Union[str, Path]]
    ) -> None:
        if path is not None:
            _write_library(path, [c.definition for c in updated.values()])
        self._compiled = updated
        self._version += 1

    def __contains__(self, prefix: object) -> bool:
        return prefix in self._compiled

    def __len__(self) -> int:
        """Return number of definitions."""
        return len(self._compiled)

    def __repr__(self) -> str:
        """String representation."""
        return f"RegexLibrary(prefixes={self.prefixes})"


def load_library(
    path: Optional[Union[str, Path]] = None, validate_schema: bool = True
) -> RegexLibrary:
    """
    Load a regex library from a JSON file.

    Args:
        path: Library file to load. If None, loads the packaged default library.
        validate_schema: Whether to validate against the JSON schema

    Returns:
        RegexLibrary with compiled definitions

    Raises:
        LibraryLoadError: If the file is unreadable, malformed or holds an invalid definition
    """
    path = Path(path) if path is not None else DEFAULT_LIBRARY_PATH

    logger.info(f"Loading regex library from {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise LibraryLoadError(f"Cannot read regex library {path}: {e}", path=str(path)) from e
    except json.JSONDecodeError as e:
        raise LibraryLoadError(f"Malformed regex library {path}: {e}", path=str(path)) from e

    if validate_schema:
        _validate_schema(data, path)

    definitions = _parse_library(data, path)
    try:
        library = RegexLibrary(definitions)
    except ValidationError as e:
        raise LibraryLoadError(f"Invalid definition in {path}: {e}", path=str(path)) from e

    logger.info(f"Loaded {len(library)} patterns from {path}")
    return library


def load_default_library() -> RegexLibrary:
    """Load the library shipped with the package."""
    return load_library(DEFAULT_LIBRARY_PATH)


def _validate_schema(data: Any, path: Path) -> None:
    """Validate library data against JSON schema."""
    with open(SCHEMA_PATH, "r", encoding="utf-8") as f:
        schema = json.load(f)

    try:
        jsonschema.validate(data, schema)
    except jsonschema.ValidationError as e:
        raise LibraryLoadError(
            f"Regex library {path} failed schema validation: {e.message}", path=str(path)
        ) from e


def _parse_library(data: Any, path: Path) -> list[RegexDefinition]:
    """Parse library file data into RegexDefinition objects."""
    records = data.get("patterns", []) if isinstance(data, dict) else data
    if not isinstance(records, list):
        raise LibraryLoadError(f"Regex library {path} must be a list of records", path=str(path))

    definitions = []
    for record in records:
        if not isinstance(record, dict) or "Prefix" not in record or "Pattern" not in record:
            raise LibraryLoadError(
                f"Malformed library record in {path}: {record!r}", path=str(path)
            )
        definitions.append(
            RegexDefinition(
                prefix=str(record["Prefix"]),
                pattern=str(record["Pattern"]),
                description=str(record.get("Description", "")),
            )
        )
    return definitions


def _write_library(path: Union[str, Path], definitions: list[RegexDefinition]) -> None:
    """Serialize definitions and atomically replace the library file."""
    records = [d.to_record() for d in definitions]
    atomic_write_text(path, json.dumps(records, indent=2, ensure_ascii=False) + "\n")
    logger.info(f"Saved {len(records)} patterns to {path}")
