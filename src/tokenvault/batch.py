"""Sequential multi-file tokenization and rehydration."""

import logging
import threading
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

from tokenvault.engine import Engine
from tokenvault.errors import (
    CollisionError,
    LibraryLoadError,
    MappingParseError,
    PersistenceError,
    ValidationError,
)
from tokenvault.fileio import atomic_write_text
from tokenvault.guard import DEFAULT_SAMPLE_SIZE, DEFAULT_THRESHOLD, classify_file
from tokenvault.mapping import MappingStore
from tokenvault.models import BatchResult, FileClassification, FileOutcome, Operation
from tokenvault.observer import EngineObserver, LoggingObserver

logger = logging.getLogger(__name__)

OutputPathFn = Callable[[Path, Operation], Path]
CancelCheck = Union[threading.Event, Callable[[], bool]]

# Errors that stop the whole run instead of being recorded per file.
FATAL_ERRORS = (CollisionError, MappingParseError, LibraryLoadError)


def default_output_path(path: Path, operation: Operation) -> Path:
    """Return <stem>.tokenized<suffix> or <stem>.rehydrated<suffix> next to path."""
    marker = "tokenized" if operation == Operation.TOKENIZE else "rehydrated"
    return path.with_name(f"{path.stem}.{marker}{path.suffix}")


def _is_cancelled(cancel: Optional[CancelCheck]) -> bool:
    if cancel is None:
        return False
    if isinstance(cancel, threading.Event):
        return cancel.is_set()
    return bool(cancel())


class BatchRunner:
    """
    Applies one operation to many files, strictly one after another.

    A single MappingStore is shared by all files. After each tokenized file the
    new entries are merged and the mapping is flushed, so a crash loses at most
    the file in progress.
    """

    def __init__(
        self,
        engine: Engine,
        store: MappingStore,
        observer: Optional[EngineObserver] = None,
        encoding: str = "utf-8",
        sample_size: int = DEFAULT_SAMPLE_SIZE,
        threshold: float = DEFAULT_THRESHOLD,
        output_path: OutputPathFn = default_output_path,
        in_place: bool = False,
    ) -> None:
        """
        Initialize runner.

        Args:
            engine: Engine used for every file
            store: Mapping store shared across the batch (loaded by the caller)
            observer: Receives skip, collision and summary events
            encoding: Text encoding of input and output files
            sample_size: Bytes sampled by the binary guard
            threshold: Non-text byte ratio above which a file is binary
            output_path: Maps an input path to its output path
            in_place: Overwrite input files instead of using output_path
        """
        self.engine = engine
        self.store = store
        self.observer = observer or LoggingObserver()
        self.encoding = encoding
        self.sample_size = sample_size
        self.threshold = threshold
        self.output_path = output_path
        self.in_place = in_place

    def run(
        self,
        paths: Iterable[Union[str, Path]],
        operation: Union[Operation, str] = Operation.TOKENIZE,
        prefixes: Optional[list[str]] = None,
        cancel: Optional[CancelCheck] = None,
    ) -> BatchResult:
        """
        Process files in order.

        Args:
            paths: Files to process
            operation: tokenize or rehydrate
            prefixes: Prefixes to apply when tokenizing (None = whole library)
            cancel: Event or callable checked between files

        Returns:
            BatchResult with per-file outcomes and errors

        Raises:
            CollisionError: If two values would share a token (run-fatal)
            MappingParseError: If the mapping is unusable (run-fatal)
            ValidationError: If a prefix is not in the library (run-fatal)
        """
        operation = Operation(operation)
        result = BatchResult(operation=operation)
        if operation == Operation.TOKENIZE:
            self.engine.select(prefixes, observer=self.observer)

        for raw_path in paths:
            if _is_cancelled(cancel):
                logger.info("Batch cancelled")
                result.cancelled = True
                break

            path = Path(raw_path)
            try:
                result.outcomes.append(self._process(path, operation, prefixes))
            except CollisionError as e:
                self._summarize(result)
                raise e.with_path(str(path)) from e
            except FATAL_ERRORS:
                self._summarize(result)
                raise
            except (ValidationError, PersistenceError, OSError, UnicodeDecodeError) as e:
                logger.error(f"Failed to process {path}: {e}")
                result.errors.append((str(path), e))

        self._summarize(result)
        return result

    def _process(
        self, path: Path, operation: Operation, prefixes: Optional[list[str]]
    ) -> FileOutcome:
        classification = classify_file(
            path, sample_size=self.sample_size, threshold=self.threshold, encoding=self.encoding
        )
        if classification != FileClassification.TEXT:
            self.observer.skip_binary(path, classification)
            return FileOutcome(path=str(path), classification=classification)

        with open(path, "r", encoding=self.encoding, newline="") as f:
            text = f.read()

        target = path if self.in_place else self.output_path(path, operation)
        outcome = FileOutcome(
            path=str(path), classification=classification, output_path=str(target)
        )

        if operation == Operation.TOKENIZE:
            tokenized = self.engine.tokenize(
                text, prefixes=prefixes, mapping=self.store.table, observer=self.observer
            )
            # The mapping must be on disk before any token reaches an output file.
            outcome.new_entries = self.store.add(tokenized.entries)
            self.store.flush()
            atomic_write_text(target, tokenized.tokenized_text, encoding=self.encoding)
            outcome.match_count = tokenized.match_count
            outcome.replacement_count = tokenized.replacement_count
        else:
            rehydrated = self.engine.rehydrate(text, self.store.table)
            atomic_write_text(target, rehydrated.rehydrated_text, encoding=self.encoding)
            outcome.replacement_count = rehydrated.replacement_count
            outcome.unresolved_count = rehydrated.unresolved_count

        logger.info(
            f"{operation.value.capitalize()}d {path} -> {target} "
            f"({outcome.replacement_count} replacements)"
        )
        return outcome

    def _summarize(self, result: BatchResult) -> None:
        self.observer.files_processed(
            len(result.processed), len(result.skipped), len(result.errors)
        )


def run_batch(
    engine: Engine,
    paths: Iterable[Union[str, Path]],
    operation: Union[Operation, str] = Operation.TOKENIZE,
    mapping_path: Optional[Union[str, Path]] = None,
    mapping_format: Optional[str] = None,
    prefixes: Optional[list[str]] = None,
    cancel: Optional[CancelCheck] = None,
    **runner_options,
) -> BatchResult:
    """
    Load the mapping, process paths and return the batch result.

    Rehydration requires the mapping file to exist.
    """
    operation = Operation(operation)
    store = MappingStore(mapping_path, mapping_format).load(
        missing_ok=operation == Operation.TOKENIZE
    )
    runner = BatchRunner(engine, store, **runner_options)
    return runner.run(paths, operation=operation, prefixes=prefixes, cancel=cancel)
