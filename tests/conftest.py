"""
Shared fixtures: every test gets a registry on its own temporary database.
"""

import pytest

from src.core.registry import CaptureRegistry

OWNER = "deployer"
FP1 = bytes([1]) * 32


@pytest.fixture
def db_path(tmp_path):
    """Temporary database file path."""
    return str(tmp_path / "registry.db")


@pytest.fixture
def registry(db_path):
    """Fresh registry for each test."""
    return CaptureRegistry(db_path=db_path)


@pytest.fixture
def registered(registry):
    """Registry holding one record (id 1) owned by OWNER."""
    registry.register(FP1, 1000, "DAC", "Site A", "Metadata details", caller=OWNER)
    return registry
