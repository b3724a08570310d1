"""Pytest configuration for docshare tests."""
import sys
from pathlib import Path

# Add src/ to path for src-layout imports
_PROJECT_ROOT = Path(__file__).parent.parent
_SRC = _PROJECT_ROOT / 'src'
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

import pytest

from docshare.app.db.supabase_client import _reset_shared_async_client_for_tests


@pytest.fixture(autouse=True)
def _fresh_shared_http_client():
    """Never reuse a pooled httpx client across event loops."""
    _reset_shared_async_client_for_tests()
    yield
    _reset_shared_async_client_for_tests()
