"""Match scanning over the original text."""

import logging
from typing import Iterable

from tokenvault.models import CompiledDefinition, MatchRecord

logger = logging.getLogger(__name__)


def scan(text: str, patterns: Iterable[CompiledDefinition]) -> list[MatchRecord]:
    """
    Apply each pattern independently to text.

    Patterns run in the given order, each over the unmodified text, so matches
    from different prefixes may overlap. Within one pattern matches are
    leftmost and non-overlapping. Empty matches are dropped.

    Args:
        text: Text to search
        patterns: Compiled definitions in selection order

    Returns:
        Matches ordered by pattern, then by position
    """
    matches: list[MatchRecord] = []
    for pattern in patterns:
        for regex_match in pattern.compiled.finditer(text):
            start, end = regex_match.span()
            if start == end:
                continue
            matches.append(
                MatchRecord(
                    prefix=pattern.prefix,
                    original=regex_match.group(0),
                    start=start,
                    end=end,
                )
            )

    logger.debug(f"Scanned {len(text)} chars, {len(matches)} matches")
    return matches


def dedupe(matches: Iterable[MatchRecord]) -> list[tuple[str, str]]:
    """Return each distinct (prefix, original) once, in first-seen order."""
    return list(dict.fromkeys(m.key for m in matches))
