"""
tokenvault: Deterministic, reversible tokenization of sensitive values in text.

This package provides tools to replace regex-matched values with stable
tokens, persist the token mapping, and restore the original text later.
"""

__version__ = "0.1.0"

from tokenvault.engine import Engine, rehydrate
from tokenvault.registry import load_library, load_default_library, RegexLibrary
from tokenvault.guard import classify_file
from tokenvault.mapping import MappingStore, load_mapping, save_mapping
from tokenvault.tokens import token_for, is_token
from tokenvault.batch import BatchRunner, run_batch
from tokenvault.models import (
    FileClassification,
    MappingFormat,
    RegexDefinition,
    TokenizationResult,
    RehydrationResult,
)

__all__ = [
    "Engine",
    "rehydrate",
    "load_library",
    "load_default_library",
    "RegexLibrary",
    "classify_file",
    "MappingStore",
    "load_mapping",
    "save_mapping",
    "token_for",
    "is_token",
    "BatchRunner",
    "run_batch",
    "FileClassification",
    "MappingFormat",
    "RegexDefinition",
    "TokenizationResult",
    "RehydrationResult",
]
