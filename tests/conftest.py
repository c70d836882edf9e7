"""Shared fixtures."""
from unittest.mock import patch

import pytest


@pytest.fixture
def as_root():
    """Pretend the tests run as root."""
    with patch('ubuntu_bootstrap.utils.is_root', return_value=True):
        yield
