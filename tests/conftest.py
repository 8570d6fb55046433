import sys
import os

import pytest

# Ensure repo root on sys.path for imports like `classroom...`
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")


@pytest.fixture
def anyio_backend():
    return "asyncio"
