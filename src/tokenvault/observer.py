"""Event observers passed into engine and batch entry points."""

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol, Union
from pathlib import Path

from tokenvault.errors import CollisionError, ValidationError
from tokenvault.models import FileClassification

logger = logging.getLogger(__name__)


class EngineObserver(Protocol):
    """Receives discrete engine events."""

    def skip_binary(self, path: Union[str, Path], classification: FileClassification) -> None:
        ...

    def collision(self, error: CollisionError) -> None:
        ...

    def validation_error(self, error: ValidationError) -> None:
        ...

    def files_processed(self, processed: int, skipped: int, failed: int) -> None:
        ...


class NullObserver:
    """Observer that ignores every event."""

    def skip_binary(self, path: Union[str, Path], classification: FileClassification) -> None:
        pass

    def collision(self, error: CollisionError) -> None:
        pass

    def validation_error(self, error: ValidationError) -> None:
        pass

    def files_processed(self, processed: int, skipped: int, failed: int) -> None:
        pass


class LoggingObserver:
    """Default observer, forwards events to the logging module."""

    def __init__(self, log: logging.Logger = logger) -> None:
        self.log = log

    def skip_binary(self, path: Union[str, Path], classification: FileClassification) -> None:
        self.log.info(f"Skipping {path}: {classification.value} file")

    def collision(self, error: CollisionError) -> None:
        self.log.error(str(error))

    def validation_error(self, error: ValidationError) -> None:
        self.log.warning(f"Validation error: {error}")

    def files_processed(self, processed: int, skipped: int, failed: int) -> None:
        self.log.info(f"Files processed: {processed}, skipped: {skipped}, failed: {failed}")


@dataclass
class RecordingObserver:
    """Observer that keeps every event as (name, payload) pairs."""

    events: list[tuple[str, Any]] = field(default_factory=list)

    def skip_binary(self, path: Union[str, Path], classification: FileClassification) -> None:
        self.events.append(("skip-binary", (str(path), classification)))

    def collision(self, error: CollisionError) -> None:
        self.events.append(("collision", error))

    def validation_error(self, error: ValidationError) -> None:
        self.events.append(("validation-error", error))

    def files_processed(self, processed: int, skipped: int, failed: int) -> None:
        self.events.append(("files-processed", (processed, skipped, failed)))

    def names(self) -> list[str]:
        """Return event names in order."""
        return [name for name, _ in self.events]
