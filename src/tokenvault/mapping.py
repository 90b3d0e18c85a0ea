"""Persistence of token -> original mappings."""

import csv
import io
import json
import logging
from pathlib import Path
from typing import Iterable, Mapping, Optional, Union

from tokenvault.errors import CollisionError, MappingParseError
from tokenvault.fileio import atomic_write_text
from tokenvault.models import MappingFormat, TokenMapEntry

logger = logging.getLogger(__name__)

CSV_HEADER = ["Token", "Original"]


def format_for_path(path: Union[str, Path]) -> MappingFormat:
    """Guess the mapping format from a file suffix."""
    return MappingFormat.CSV if Path(path).suffix.lower() == ".csv" else MappingFormat.JSON


def load_mapping(
    path: Union[str, Path], fmt: Union[MappingFormat, str] = MappingFormat.JSON
) -> dict[str, str]:
    """
    Load a mapping file.

    Args:
        path: Mapping file
        fmt: JSON object of token -> original, or CSV with a Token,Original header

    Returns:
        Ordered token -> original table

    Raises:
        FileNotFoundError: If the file does not exist
        MappingParseError: If the file is malformed or a token has two originals
    """
    path = Path(path)
    fmt = MappingFormat(fmt)
    with open(path, "r", encoding="utf-8", newline="") as f:
        content = f.read()

    if fmt == MappingFormat.JSON:
        table = _parse_json(content, path)
    else:
        table = _parse_csv(content, path)

    logger.info(f"Loaded {len(table)} mapping entries from {path}")
    return table


def _add_row(table: dict[str, str], token: str, original: str, path: Path, row: int) -> None:
    existing = table.get(token)
    if existing is not None and existing != original:
        raise MappingParseError(
            f"Token {token} maps to two different values in {path} (row {row})",
            path=str(path),
            row=row,
        )
    table[token] = original


def _parse_json(content: str, path: Path) -> dict[str, str]:
    # object_pairs_hook sees duplicate keys that a plain dict would drop
    pairs_seen: list[list[tuple[str, object]]] = []

    def hook(pairs: list[tuple[str, object]]) -> dict[str, object]:
        pairs_seen.append(pairs)
        return dict(pairs)

    try:
        data = json.loads(content, object_pairs_hook=hook) if content.strip() else {}
    except json.JSONDecodeError as e:
        raise MappingParseError(f"Malformed mapping {path}: {e}", path=str(path)) from e

    if not isinstance(data, dict):
        raise MappingParseError(f"Mapping {path} must be a JSON object", path=str(path))

    table: dict[str, str] = {}
    top_level = pairs_seen[-1] if pairs_seen else []
    for row, (token, original) in enumerate(top_level, start=1):
        if not isinstance(original, str):
            raise MappingParseError(
                f"Mapping {path}: value for {token} is not a string (entry {row})",
                path=str(path),
                row=row,
            )
        _add_row(table, token, original, path, row)
    return table


def _parse_csv(content: str, path: Path) -> dict[str, str]:
    table: dict[str, str] = {}
    reader = csv.reader(io.StringIO(content))
    try:
        header = next(reader, None)
        if header is None:
            return table
        if [h.strip() for h in header] != CSV_HEADER:
            raise MappingParseError(
                f"Mapping {path}: expected header Token,Original, got {header}",
                path=str(path),
                row=1,
            )
        for row_number, row in enumerate(reader, start=2):
            if not row:
                continue
            if len(row) != 2 or not row[0]:
                raise MappingParseError(
                    f"Mapping {path}: malformed row {row_number}",
                    path=str(path),
                    row=row_number,
                )
            _add_row(table, row[0], row[1], path, row_number)
    except csv.Error as e:
        raise MappingParseError(f"Malformed mapping {path}: {e}", path=str(path)) from e
    return table


def merge(table: Mapping[str, str], entries: Iterable[TokenMapEntry]) -> dict[str, str]:
    """
    Return the union of an existing table and new entries.

    Existing entries are never dropped.

    Raises:
        CollisionError: If a new entry reuses a token for a different value
    """
    merged = dict(table)
    for entry in entries:
        existing = merged.get(entry.token)
        if existing is not None and existing != entry.original:
            raise CollisionError(entry.token, existing, entry.original, prefix=entry.prefix)
        merged[entry.token] = entry.original
    return merged


def dumps_mapping(table: Mapping[str, str], fmt: Union[MappingFormat, str]) -> str:
    """Serialize a table in the given format."""
    fmt = MappingFormat(fmt)
    if fmt == MappingFormat.JSON:
        return json.dumps(dict(table), indent=2, ensure_ascii=False) + "\n"

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for token, original in table.items():
        writer.writerow([token, original])
    return buffer.getvalue()


def save_mapping(
    table: Mapping[str, str],
    path: Union[str, Path],
    fmt: Union[MappingFormat, str] = MappingFormat.JSON,
) -> None:
    """
    Atomically write a mapping file.

    Raises:
        PersistenceError: If the file could not be written
    """
    atomic_write_text(path, dumps_mapping(table, fmt))
    logger.info(f"Saved {len(table)} mapping entries to {path}")


class MappingStore:
    """Owns the authoritative token -> original table of a run."""

    def __init__(
        self,
        path: Optional[Union[str, Path]] = None,
        fmt: Optional[Union[MappingFormat, str]] = None,
    ) -> None:
        """
        Initialize store.

        Args:
            path: Mapping file backing the store. If None, the store is memory only.
            fmt: File format. If None, guessed from the path suffix.
        """
        self.path = Path(path) if path is not None else None
        if fmt is not None:
            self.format = MappingFormat(fmt)
        elif self.path is not None:
            self.format = format_for_path(self.path)
        else:
            self.format = MappingFormat.JSON
        self._table: dict[str, str] = {}

    def load(self, missing_ok: bool = True) -> "MappingStore":
        """Load the backing file; a missing file yields an empty table."""
        if self.path is None:
            return self
        try:
            self._table = load_mapping(self.path, self.format)
        except FileNotFoundError:
            if not missing_ok:
                raise
            logger.info(f"Mapping {self.path} does not exist yet, starting empty")
            self._table = {}
        return self

    def add(self, entries: Iterable[TokenMapEntry]) -> int:
        """Merge entries into the table and return how many were new."""
        before = len(self._table)
        self._table = merge(self._table, entries)
        return len(self._table) - before

    def flush(self) -> None:
        """Write the table to the backing file, if any."""
        if self.path is not None:
            save_mapping(self._table, self.path, self.format)

    def lookup(self, token: str) -> Optional[str]:
        """Look up the original value for a token."""
        return self._table.get(token)

    @property
    def table(self) -> dict[str, str]:
        """Return a copy of the token -> original table."""
        return dict(self._table)

    def __len__(self) -> int:
        return len(self._table)

    def __repr__(self) -> str:
        return f"MappingStore(path={self.path}, format={self.format.value}, entries={len(self)})"
