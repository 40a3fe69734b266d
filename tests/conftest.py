# tests/conftest.py

"""Shared pytest fixtures for the listing_ai test suite."""

from collections.abc import Generator
from pathlib import Path
from unittest.mock import patch

import pytest

from listing_ai.config.settings import Settings


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path: Path) -> Generator[None, None, None]:
    """Keep results and logs written by tests out of the project tree."""
    with (
        patch.object(Settings, "RESULTS_DIR", tmp_path / "results"),
        patch.object(Settings, "LOGS_DIR", tmp_path / "logs"),
    ):
        yield
