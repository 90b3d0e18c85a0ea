"""Shared fixtures."""

import pytest

from tokenvault import Engine, RegexLibrary, load_default_library
from tokenvault.models import RegexDefinition
from tokenvault.observer import RecordingObserver


EMAIL_PATTERN = r"\b[a-z0-9._%+\-]+@[a-z0-9.\-]+\.[a-z]{2,}\b"


@pytest.fixture
def library():
    """Small in-memory library."""
    return RegexLibrary(
        [
            RegexDefinition("EMAIL", EMAIL_PATTERN, "Email address"),
            RegexDefinition("SSN", r"\b\d{3}-\d{2}-\d{4}\b", "US SSN"),
            RegexDefinition("NUM", r"\d+", "Any digit run"),
        ]
    )


@pytest.fixture
def default_library():
    """Packaged default library."""
    return load_default_library()


@pytest.fixture
def observer():
    """Observer that records events."""
    return RecordingObserver()


@pytest.fixture
def engine(library, observer):
    """Engine over the small library."""
    return Engine(library, observer=observer)
