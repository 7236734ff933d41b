import importlib
import sys
from pathlib import Path

import pytest

# Ensure the package under test is importable without installation
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from letterboxd_taste.config import Settings  # noqa: E402


@pytest.fixture
def settings():
    return Settings(
        tmdb_api_key="tmdb-key",
        embedding_api_key="embed-key",
        proxy_base="https://proxy.test/",
        max_concurrent=4,
        http_timeout=5.0,
    )


@pytest.fixture
def fresh_config(monkeypatch):
    """
    Reload config under a patched environment, and reload it again with the
    original environment afterwards so other tests see the defaults.
    """
    import letterboxd_taste.config as config

    yield lambda: importlib.reload(config)

    monkeypatch.undo()
    importlib.reload(config)
