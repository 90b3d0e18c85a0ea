"""YAML/dict configuration for tokenvault.

Example YAML:

    tokenvault:
      library:
        path: patterns.json
      mapping:
        path: mapping.json
        format: json          # "json" or "csv"
      guard:
        sample_size: 8192
        threshold: 0.10
      tokens:
        hash_algorithm: sha256
      io:
        encoding: utf-8
      server:
        host: 127.0.0.1
        port: 8080
"""

from pathlib import Path
from typing import Any, Optional, Union

import yaml

from tokenvault.errors import ValidationError
from tokenvault.guard import DEFAULT_SAMPLE_SIZE, DEFAULT_THRESHOLD
from tokenvault.models import MappingFormat
from tokenvault.tokens import check_hash_algorithm


def load_config(data: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    """Normalize a config dict (from YAML or inline), filling defaults."""
    data = data or {}
    # Support nested under "tokenvault" key or flat
    if "tokenvault" in data:
        data = data["tokenvault"] or {}

    library = data.get("library") or {}
    mapping = data.get("mapping") or {}
    guard = data.get("guard") or {}
    tokens = data.get("tokens") or {}
    io = data.get("io") or {}
    server = data.get("server") or {}

    mapping_format = mapping.get("format")
    if mapping_format is not None:
        try:
            mapping_format = MappingFormat(str(mapping_format).lower()).value
        except ValueError as e:
            raise ValidationError(f"Unknown mapping format: {mapping_format}") from e

    hash_algorithm = check_hash_algorithm(str(tokens.get("hash_algorithm", "sha256")))

    threshold = float(guard.get("threshold", DEFAULT_THRESHOLD))
    if not 0.0 <= threshold <= 1.0:
        raise ValidationError(f"Binary threshold must be between 0 and 1, got {threshold}")

    return {
        "library_path": library.get("path"),
        "mapping_path": mapping.get("path"),
        "mapping_format": mapping_format,
        "sample_size": int(guard.get("sample_size", DEFAULT_SAMPLE_SIZE)),
        "threshold": threshold,
        "hash_algorithm": hash_algorithm,
        "encoding": io.get("encoding", "utf-8"),
        "host": server.get("host", "127.0.0.1"),
        "port": int(server.get("port", 8080)),
    }


def load_config_file(path: Union[str, Path]) -> dict[str, Any]:
    """Load config from a YAML file."""
    with open(path, "r", encoding="utf-8") as f:
        return load_config(yaml.safe_load(f))
