"""Deterministic token derivation."""

import hashlib
import logging
import re
from typing import Iterable, Mapping, Optional

from tokenvault.errors import CollisionError, ValidationError
from tokenvault.models import TokenMapEntry

logger = logging.getLogger(__name__)

DIGEST_LENGTH = 12  # hex chars, 48 bits

TOKEN_RE = re.compile(r"[A-Za-z0-9]+_[0-9a-f]{12}")

# Token shaped substring of free text. Only further hex digits end a match
# early, so tokens glued to surrounding words are still found.
TOKEN_PATTERN = re.compile(r"[A-Za-z0-9]+_[0-9a-f]{12}(?![0-9a-f])")


def token_pattern(prefixes: Optional[Iterable[str]] = None) -> "re.Pattern[str]":
    """
    Return the pattern for token shaped substrings.

    With known prefixes a match starts at the prefix itself, so a token glued
    to a preceding word is reported without that word.
    """
    if not prefixes:
        return TOKEN_PATTERN
    alternatives = "|".join(re.escape(p) for p in sorted(set(prefixes), key=len, reverse=True))
    return re.compile(rf"(?:{alternatives})_[0-9a-f]{{12}}(?![0-9a-f])")


def check_hash_algorithm(name: str) -> str:
    """
    Return name if it is a fixed-size hashlib algorithm wide enough for tokens.

    Raises:
        ValidationError: If the algorithm is unknown, variable-length (SHAKE) or too short
    """
    try:
        hasher = hashlib.new(name)
    except (ValueError, TypeError) as e:
        raise ValidationError(f"Unknown hash algorithm: {name}") from e
    if hasher.digest_size * 2 < DIGEST_LENGTH:
        raise ValidationError(
            f"Hash algorithm {name} does not produce a fixed digest of at least "
            f"{DIGEST_LENGTH} hex chars"
        )
    return name


def token_for(prefix: str, original: str, hash_algorithm: str = "sha256") -> str:
    """
    Derive the token for a value.

    The digest covers the prefix and the UTF-8 bytes of the original, so equal
    values under different prefixes get unrelated tokens.

    Args:
        prefix: Pattern prefix
        original: Matched value
        hash_algorithm: Any hashlib algorithm name

    Returns:
        Token of the form PREFIX_<12 lowercase hex chars>
    """
    hasher = hashlib.new(hash_algorithm)
    hasher.update(prefix.encode("utf-8"))
    hasher.update(b"\x00")
    hasher.update(original.encode("utf-8"))
    return f"{prefix}_{hasher.hexdigest()[:DIGEST_LENGTH]}"


def is_token(text: str) -> bool:
    """Return True if text has the exact token shape."""
    return TOKEN_RE.fullmatch(text) is not None


class TokenGenerator:
    """
    Assigns tokens and checks them against an existing mapping.

    The generator holds no state of its own besides the tokens handed out
    since it was created; the authoritative table belongs to the caller.
    """

    def __init__(
        self,
        mapping: Optional[Mapping[str, str]] = None,
        hash_algorithm: str = "sha256",
    ) -> None:
        """
        Initialize generator.

        Args:
            mapping: Existing token -> original table to check against
            hash_algorithm: Hash algorithm for token derivation
        """
        self.mapping = mapping if mapping is not None else {}
        self.hash_algorithm = hash_algorithm
        self._assigned: dict[str, TokenMapEntry] = {}

    def assign(self, prefix: str, original: str) -> TokenMapEntry:
        """
        Return the mapping entry for a value.

        Raises:
            CollisionError: If the token already stands for a different value
        """
        token = token_for(prefix, original, self.hash_algorithm)

        existing = self.mapping.get(token)
        if existing is None and token in self._assigned:
            existing = self._assigned[token].original
        if existing is not None and existing != original:
            logger.error(f"Token collision on {token} (prefix {prefix})")
            raise CollisionError(token, existing, original, prefix=prefix)

        entry = TokenMapEntry(token=token, original=original, prefix=prefix)
        self._assigned[token] = entry
        return entry

    @property
    def assigned(self) -> list[TokenMapEntry]:
        """Return entries handed out so far, in assignment order."""
        return list(self._assigned.values())
