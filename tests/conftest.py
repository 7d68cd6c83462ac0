"""
Pytest configuration file.

Sets up the Python path so test files can import from the python/ directory,
and keeps the caller's krane environment variables out of the tests.
"""
import os
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

# Add python directory to path for all tests
_python_dir = Path(__file__).parent.parent / 'python'
_python_dir_abs = str(_python_dir.absolute())
if _python_dir_abs not in sys.path:
    sys.path.insert(0, _python_dir_abs)

_KRANE_ENV_VARS = (
    "AWS_REGION",
    "AWS_DEFAULT_REGION",
    "CONFIG_FILE",
    "KRANE_PREFIX",
    "KRANE_MAX_CONCURRENT",
    "KRANE_LOG_LEVEL",
    "SKOPEO_BINARY",
    "KUBECONFIG",
)


@pytest.fixture(autouse=True)
def clean_krane_environment():
    """Remove environment overrides so configuration defaults apply"""
    env = {k: v for k, v in os.environ.items() if k not in _KRANE_ENV_VARS}
    with patch.dict(os.environ, env, clear=True):
        yield
