"""Exception types raised by tokenvault."""

from typing import Any, Optional


class TokenVaultError(Exception):
    """Base class for all tokenvault errors."""


class ValidationError(TokenVaultError, ValueError):
    """A regex definition (or a request referring to one) is invalid."""

    def __init__(self, message: str, prefix: Optional[str] = None) -> None:
        super().__init__(message)
        self.prefix = prefix


class LibraryLoadError(TokenVaultError):
    """The regex library file could not be read or parsed."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class PersistenceError(TokenVaultError):
    """A library or mapping file could not be written."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class MappingParseError(TokenVaultError, ValueError):
    """A mapping file is malformed or ambiguous."""

    def __init__(
        self, message: str, path: Optional[str] = None, row: Optional[int] = None
    ) -> None:
        super().__init__(message)
        self.path = path
        self.row = row


class CollisionError(TokenVaultError):
    """Two distinct originals would share the same token.

    This is run-fatal: the mapping can no longer be inverted.
    """

    def __init__(
        self,
        token: str,
        existing: str,
        new: str,
        prefix: Optional[str] = None,
        path: Optional[str] = None,
    ) -> None:
        self.token = token
        self.existing = existing
        self.new = new
        self.prefix = prefix
        self.path = path
        location = f" in {path}" if path else ""
        super().__init__(
            f"Token collision{location}: {token} already maps to a different value "
            f"(prefix {prefix or '?'})"
        )

    def with_path(self, path: str) -> "CollisionError":
        """Return a copy of this error that names the offending file."""
        return CollisionError(self.token, self.existing, self.new, self.prefix, path)


class PartialBatchFailure(TokenVaultError):
    """Some files of a batch failed; the others were processed."""

    def __init__(self, errors: list[tuple[str, Any]]) -> None:
        self.errors = errors
        lines = [f"  {path}: {error}" for path, error in errors]
        super().__init__(f"{len(errors)} file(s) failed:\n" + "\n".join(lines))
