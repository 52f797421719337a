import sys
from pathlib import Path
import os

import pytest


# Ensure project src is on path for imports in tests
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
TESTS = ROOT / "tests"
for p in (ROOT, SRC, TESTS):
    if str(p) not in sys.path:
        sys.path.insert(0, str(p))

# Keep tests offline and independent of a developer's .env
for name in ("REDIS_URL", "GEMINI_API_KEY", "HF_API_KEY", "GNEWS_API_KEY", "NEWSDATA_API_KEY"):
    os.environ[name] = ""

from fakes import FakeClock  # noqa: E402
from newsglobe.storage import StorageManager  # noqa: E402


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return StorageManager()
