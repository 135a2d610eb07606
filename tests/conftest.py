"""
Pytest configuration and fixtures for workstation-setup tests.
"""

import logging
import tempfile
from pathlib import Path

import pytest
import yaml


@pytest.fixture
def temp_dir():
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def write_config(temp_dir):
    """Write a mapping as config.yaml and return its path."""

    def _write(data, name="config.yaml"):
        path = temp_dir / name
        path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
        return path

    return _write


@pytest.fixture(autouse=True)
def reset_logging():
    """configure_logging() is once-per-process; undo it between tests."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for h in list(root.handlers):
        if h not in handlers:
            root.removeHandler(h)
            h.close()
    root.setLevel(level)
    for attr in ("_workstation_setup_configured", "_workstation_setup_log_path"):
        if hasattr(root, attr):
            delattr(root, attr)
