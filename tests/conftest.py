import logging
import os
import sys
from unittest.mock import patch

import pytest

# Insert project root to sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# This configuration file is automatically loaded by pytest
# It helps setting up the environment for all tests

PHANTOM_ENV_VARS = ("PHANTOM_SEED", "PHANTOM_PLUGIN", "PHANTOM_ATTRIBUTION", "PHANTOM_LOG_LEVEL")


@pytest.fixture(autouse=True)
def _clean_environment():
    """Hide PHANTOM_* variables and undo anything a test (or dotenv) sets."""
    with patch.dict(os.environ):
        for key in PHANTOM_ENV_VARS:
            os.environ.pop(key, None)
        yield


@pytest.fixture(autouse=True)
def _reset_stop_controller():
    """The stop controller is a process-wide singleton."""
    from phantom.stop_controller import stop_controller

    stop_controller.reset()
    yield
    stop_controller.reset()


@pytest.fixture(autouse=True)
def _reset_phantom_logging():
    """Drop handlers installed by setup_logging() so they don't outlive the test."""
    yield
    root = logging.getLogger("phantom")
    root.setLevel(logging.NOTSET)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
