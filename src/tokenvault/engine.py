"""Core tokenization and rehydration engine."""

import logging
import re
from typing import Iterable, Mapping, Optional

from tokenvault.errors import CollisionError, ValidationError
from tokenvault.models import (
    CompiledDefinition,
    MatchRecord,
    RehydrationResult,
    ScanResult,
    TokenMapEntry,
    TokenizationResult,
)
from tokenvault.observer import EngineObserver, LoggingObserver
from tokenvault.registry import RegexLibrary
from tokenvault.scanner import dedupe, scan
from tokenvault.tokens import TokenGenerator, check_hash_algorithm, token_pattern

logger = logging.getLogger(__name__)


class Engine:
    """
    Core engine for tokenization, preview and rehydration.

    The engine uses a RegexLibrary for pattern matching. It never touches the
    filesystem: callers load text and mappings and decide where results go.
    """

    def __init__(
        self,
        library: RegexLibrary,
        hash_algorithm: str = "sha256",
        observer: Optional[EngineObserver] = None,
    ) -> None:
        """
        Initialize engine with regex library.

        Args:
            library: RegexLibrary with validated definitions
            hash_algorithm: Hash algorithm for token derivation
            observer: Receives collision and validation events (logs by default)
        """
        self.library = library
        self.hash_algorithm = check_hash_algorithm(hash_algorithm)
        self.observer = observer or LoggingObserver()

    def scan(self, text: str, prefixes: Optional[Iterable[str]] = None) -> ScanResult:
        """
        Find all matches for the selected prefixes.

        Args:
            text: Text to search
            prefixes: Prefixes to apply, in order. If None, applies the whole library.

        Returns:
            ScanResult with matches in selection order
        """
        patterns = self.select(prefixes)
        return ScanResult(
            text=text,
            matches=scan(text, patterns),
            prefixes_searched=[p.prefix for p in patterns],
        )

    def preview(
        self,
        text: str,
        prefixes: Optional[Iterable[str]] = None,
        mapping: Optional[Mapping[str, str]] = None,
        observer: Optional[EngineObserver] = None,
    ) -> TokenizationResult:
        """
        Compute token assignments without changing the text.

        Uses the same scan, dedup and assignment steps as tokenize.
        """
        _, matches, entries = self._assign(text, prefixes, mapping, observer)
        return TokenizationResult(
            text=text,
            tokenized_text=text,
            matches=matches,
            entries=entries,
            preview=True,
        )

    def tokenize(
        self,
        text: str,
        prefixes: Optional[Iterable[str]] = None,
        mapping: Optional[Mapping[str, str]] = None,
        observer: Optional[EngineObserver] = None,
    ) -> TokenizationResult:
        """
        Replace matched values with deterministic tokens.

        Args:
            text: Text to tokenize
            prefixes: Prefixes to apply, in order. If None, applies the whole library.
            mapping: Token -> original table accumulated so far, used for collision checks
            observer: Overrides the engine observer for this call

        Returns:
            TokenizationResult with the new text and the entries to persist

        Raises:
            ValidationError: If a prefix is not in the library
            CollisionError: If a token would stand for two different values
        """
        patterns, matches, entries = self._assign(text, prefixes, mapping, observer)
        tokenized, replacements = _substitute(text, [p.prefix for p in patterns], entries)

        logger.debug(
            f"Tokenized {len(matches)} matches into {len(entries)} tokens "
            f"({replacements} replacements)"
        )
        return TokenizationResult(
            text=text,
            tokenized_text=tokenized,
            matches=matches,
            entries=entries,
            replacement_count=replacements,
        )

    def rehydrate(self, text: str, mapping: Mapping[str, str]) -> RehydrationResult:
        """Restore original values using a token -> original table."""
        return rehydrate(text, mapping, prefixes=self.library.prefixes)

    def select(
        self, prefixes: Optional[Iterable[str]], observer: Optional[EngineObserver] = None
    ) -> list[CompiledDefinition]:
        """Resolve prefixes against the library, reporting unknown ones."""
        try:
            return self.library.select(prefixes)
        except ValidationError as e:
            (observer or self.observer).validation_error(e)
            raise

    def _assign(
        self,
        text: str,
        prefixes: Optional[Iterable[str]],
        mapping: Optional[Mapping[str, str]],
        observer: Optional[EngineObserver],
    ) -> tuple[list[CompiledDefinition], list[MatchRecord], list[TokenMapEntry]]:
        """Scan, dedupe and assign tokens; shared by preview and tokenize."""
        patterns = self.select(prefixes, observer)
        matches = scan(text, patterns)

        generator = TokenGenerator(mapping, hash_algorithm=self.hash_algorithm)
        try:
            entries = [generator.assign(prefix, original) for prefix, original in dedupe(matches)]
        except CollisionError as e:
            (observer or self.observer).collision(e)
            raise

        return patterns, matches, entries


def _substitute(
    text: str, prefix_order: list[str], entries: list[TokenMapEntry]
) -> tuple[str, int]:
    """
    Replace literal occurrences of each original with its token.

    Prefixes are applied in order. Emitted tokens become opaque segments, so
    later prefixes never match inside them. Within a prefix, longer originals
    win over shorter ones.
    """
    # (content, is_token) segments
    segments: list[tuple[str, bool]] = [(text, False)]
    count = 0

    for prefix in prefix_order:
        tokens = {e.original: e.token for e in entries if e.prefix == prefix}
        if not tokens:
            continue
        originals = sorted(tokens, key=len, reverse=True)
        pattern = re.compile("|".join(re.escape(o) for o in originals))

        updated: list[tuple[str, bool]] = []
        for content, is_token in segments:
            if is_token:
                updated.append((content, True))
                continue
            pos = 0
            for m in pattern.finditer(content):
                if m.start() > pos:
                    updated.append((content[pos : m.start()], False))
                updated.append((tokens[m.group(0)], True))
                count += 1
                pos = m.end()
            if pos < len(content):
                updated.append((content[pos:], False))
        segments = updated

    return "".join(content for content, _ in segments), count


def rehydrate(
    text: str, mapping: Mapping[str, str], prefixes: Optional[Iterable[str]] = None
) -> RehydrationResult:
    """
    Replace every known token in text with its original value.

    Known tokens are matched literally, longest first, in a single pass so
    restored values are never rescanned. Token shaped strings missing from the
    mapping are left as they are and reported as unresolved.

    Args:
        text: Text containing tokens
        mapping: Token -> original table
        prefixes: Known prefixes; unresolved tokens are then reported from the
            prefix on. Without them any alphanumeric run before the digest counts.

    Returns:
        RehydrationResult with the restored text and unresolved tokens
    """
    unresolved: list[str] = []
    shape = token_pattern(prefixes)

    def collect_unresolved(gap: str) -> None:
        unresolved.extend(m.group(0) for m in shape.finditer(gap))

    known = sorted((t for t in mapping if t), key=len, reverse=True)
    if not known:
        collect_unresolved(text)
        return RehydrationResult(text=text, rehydrated_text=text, unresolved_tokens=unresolved)

    pattern = re.compile("|".join(re.escape(t) for t in known))

    parts: list[str] = []
    pos = 0
    count = 0
    for m in pattern.finditer(text):
        gap = text[pos : m.start()]
        collect_unresolved(gap)
        parts.append(gap)
        parts.append(mapping[m.group(0)])
        count += 1
        pos = m.end()
    tail = text[pos:]
    collect_unresolved(tail)
    parts.append(tail)

    if unresolved:
        logger.info(f"{len(unresolved)} unresolved token(s) left in text")

    return RehydrationResult(
        text=text,
        rehydrated_text="".join(parts),
        replacement_count=count,
        unresolved_tokens=unresolved,
    )
