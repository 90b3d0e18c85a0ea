"""Data models for tokenvault."""

from dataclasses import dataclass, field
from typing import Any, Optional
from enum import Enum

from tokenvault.errors import PartialBatchFailure


class FileClassification(str, Enum):
    """Result of sniffing a file before it enters the pipeline."""

    TEXT = "text"
    BINARY = "binary"
    UNREADABLE = "unreadable"


class MappingFormat(str, Enum):
    """On-disk format of a mapping file."""

    JSON = "json"
    CSV = "csv"


class Operation(str, Enum):
    """Operation applied to each file of a batch."""

    TOKENIZE = "tokenize"
    REHYDRATE = "rehydrate"


@dataclass(frozen=True)
class RegexDefinition:
    """Named pattern definition as stored in the library file."""

    prefix: str
    pattern: str
    description: str = ""

    def to_record(self) -> dict[str, str]:
        """Return the library file representation."""
        return {
            "Prefix": self.prefix,
            "Pattern": self.pattern,
            "Description": self.description,
        }


@dataclass(frozen=True)
class CompiledDefinition:
    """Definition that passed validation, with its compiled regex."""

    definition: RegexDefinition
    compiled: Any  # re.Pattern

    @property
    def prefix(self) -> str:
        """Return the definition prefix."""
        return self.definition.prefix


@dataclass(frozen=True)
class MatchRecord:
    """Single pattern match in the original text."""

    prefix: str
    original: str
    start: int
    end: int

    @property
    def key(self) -> tuple[str, str]:
        """Return the (prefix, original) identity used for deduplication."""
        return (self.prefix, self.original)


@dataclass(frozen=True)
class TokenMapEntry:
    """Association between a token and the value it replaced."""

    token: str
    original: str
    prefix: str


@dataclass
class ScanResult:
    """Result from scan operation."""

    text: str
    matches: list[MatchRecord] = field(default_factory=list)
    prefixes_searched: list[str] = field(default_factory=list)

    @property
    def has_matches(self) -> bool:
        """Return True if any matches found."""
        return len(self.matches) > 0

    @property
    def match_count(self) -> int:
        """Return number of matches."""
        return len(self.matches)


@dataclass
class TokenizationResult:
    """Result from tokenize or preview operation."""

    text: str
    tokenized_text: str
    matches: list[MatchRecord] = field(default_factory=list)
    entries: list[TokenMapEntry] = field(default_factory=list)
    replacement_count: int = 0
    preview: bool = False

    @property
    def match_count(self) -> int:
        """Return number of matches found by the scanner."""
        return len(self.matches)

    @property
    def mapping(self) -> dict[str, str]:
        """Return the new entries as a token -> original table."""
        return {entry.token: entry.original for entry in self.entries}

    def token_for(self, prefix: str, original: str) -> Optional[str]:
        """Return the token assigned to a value, if any."""
        for entry in self.entries:
            if entry.prefix == prefix and entry.original == original:
                return entry.token
        return None


@dataclass
class RehydrationResult:
    """Result from rehydrate operation."""

    text: str
    rehydrated_text: str
    replacement_count: int = 0
    unresolved_tokens: list[str] = field(default_factory=list)

    @property
    def unresolved_count(self) -> int:
        """Return number of token occurrences missing from the mapping."""
        return len(self.unresolved_tokens)


@dataclass
class FileOutcome:
    """What happened to one file of a batch."""

    path: str
    classification: FileClassification
    output_path: Optional[str] = None
    match_count: int = 0
    replacement_count: int = 0
    unresolved_count: int = 0
    new_entries: int = 0

    @property
    def skipped(self) -> bool:
        """Return True if the file never entered the pipeline."""
        return self.classification != FileClassification.TEXT


@dataclass
class BatchResult:
    """Result from a batch run."""

    operation: Operation
    outcomes: list[FileOutcome] = field(default_factory=list)
    errors: list[tuple[str, Exception]] = field(default_factory=list)
    cancelled: bool = False

    @property
    def processed(self) -> list[FileOutcome]:
        """Return outcomes of files that were actually transformed."""
        return [o for o in self.outcomes if not o.skipped]

    @property
    def skipped(self) -> list[FileOutcome]:
        """Return outcomes of binary or unreadable files."""
        return [o for o in self.outcomes if o.skipped]

    @property
    def ok(self) -> bool:
        """Return True if no file failed."""
        return not self.errors

    def raise_for_failures(self) -> None:
        """Raise PartialBatchFailure if any file failed."""
        if self.errors:
            raise PartialBatchFailure(list(self.errors))
