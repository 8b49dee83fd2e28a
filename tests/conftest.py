"""Pytest configuration for flake_provisioner tests."""
import sys
from pathlib import Path

# Add src/ to path for src-layout imports
_PROJECT_ROOT = Path(__file__).parent.parent
_SRC = _PROJECT_ROOT / 'src'
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

import pytest

from flake_provisioner.settings import ProvisionerSettings


@pytest.fixture
def settings(tmp_path):
    """Settings whose config file lives in a temporary directory."""
    return ProvisionerSettings(config_dir=tmp_path / '.fluorite', token_name_prefix='fluorite-flake')
