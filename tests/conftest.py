import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Tests always run against a throwaway SQLite store.
os.environ["DB_HOST"] = ""
os.environ["DB_USER"] = ""
os.environ["DB_NAME"] = ""
os.environ.setdefault("LOG_LEVEL", "WARNING")


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def sqlite_settings(tmp_path):
    from gps_tracker.core.config import Settings

    return Settings(sqlite_path=tmp_path / "assets.db", log_level="WARNING")
