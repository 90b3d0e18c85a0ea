"""Atomic file writes shared by the library and mapping stores."""

import logging
import os
import tempfile
from pathlib import Path
from typing import Union

from tokenvault.errors import PersistenceError

logger = logging.getLogger(__name__)


def atomic_write_text(
    path: Union[str, Path], text: str, encoding: str = "utf-8", newline: str = ""
) -> None:
    """
    Write text to path so readers see either the old or the new content.

    The data goes to a temporary file in the target directory, is fsynced and
    then renamed over the target.

    Raises:
        PersistenceError: If the file could not be written
    """
    path = Path(path)
    directory = path.parent if str(path.parent) else Path(".")
    tmp_name = None
    try:
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=str(directory)
        )
        with os.fdopen(fd, "w", encoding=encoding, newline=newline) as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
        tmp_name = None
    except OSError as e:
        raise PersistenceError(f"Failed to write {path}: {e}", path=str(path)) from e
    finally:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)

    logger.debug(f"Wrote {path}")
