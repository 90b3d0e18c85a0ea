"""Binary file detection run before any file is scanned."""

import codecs
import logging
from pathlib import Path
from typing import Union

from tokenvault.models import FileClassification

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_SIZE = 8192
DEFAULT_THRESHOLD = 0.10

# Control bytes that still occur in text: \b \t \n \v \f \r and ESC.
_TEXT_CONTROL = {0x08, 0x09, 0x0A, 0x0B, 0x0C, 0x0D, 0x1B}


def _is_text_byte(byte: int) -> bool:
    if 0x20 <= byte < 0x7F:
        return True
    if byte >= 0x80:
        return True
    return byte in _TEXT_CONTROL


def classify_bytes(
    sample: bytes, threshold: float = DEFAULT_THRESHOLD, encoding: str = "utf-8"
) -> FileClassification:
    """
    Classify a byte sample as text, binary or undecodable.

    Args:
        sample: Leading bytes of a file
        threshold: Maximum fraction of non-text bytes still treated as text
        encoding: Encoding the text is expected to use

    Returns:
        FileClassification for the sample
    """
    if not sample:
        return FileClassification.TEXT

    non_text = sum(1 for byte in sample if not _is_text_byte(byte))
    if non_text / len(sample) > threshold:
        return FileClassification.BINARY

    # A multi-byte character cut at the end of the sample is not an error.
    decoder = codecs.getincrementaldecoder(encoding)()
    try:
        decoder.decode(sample, final=False)
    except UnicodeDecodeError:
        return FileClassification.UNREADABLE

    return FileClassification.TEXT


def classify_file(
    path: Union[str, Path],
    sample_size: int = DEFAULT_SAMPLE_SIZE,
    threshold: float = DEFAULT_THRESHOLD,
    encoding: str = "utf-8",
) -> FileClassification:
    """
    Classify a file by reading a bounded sample of its bytes.

    Args:
        path: File to classify
        sample_size: Number of leading bytes to inspect
        threshold: Maximum fraction of non-text bytes still treated as text
        encoding: Encoding the text is expected to use

    Returns:
        FileClassification for the file

    Raises:
        FileNotFoundError: If the file does not exist
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    try:
        with open(path, "rb") as f:
            sample = f.read(sample_size)
    except OSError as e:
        logger.warning(f"Cannot read {path}: {e}")
        return FileClassification.UNREADABLE

    classification = classify_bytes(sample, threshold=threshold, encoding=encoding)
    logger.debug(f"Classified {path} as {classification.value}")
    return classification
