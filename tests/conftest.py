from __future__ import annotations

import logging

import pytest


@pytest.fixture(autouse=True)
def _drop_installed_log_handlers():
    """Remove handlers ``setup_logging`` attached to the root logger."""
    root = logging.getLogger()
    before, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in before:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
