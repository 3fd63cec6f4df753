import os
import sys

import pytest

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, ROOT)
sys.path.append(os.path.join(ROOT, "www"))


@pytest.fixture(autouse=True)
def no_config_file(monkeypatch, tmp_path):
    """Keeps a config file of the developer running the tests out of the way"""
    monkeypatch.setenv("STACKBARON_CONFIG", str(tmp_path / "missing.yaml"))
    for var in ("STACKBARON_MAX_LINE_LENGTH", "STACKBARON_MAX_UPLOAD_BYTES",
                "STACKBARON_POINTER_FLOOR", "STACKBARON_POINTER_CEILING",
                "STACKBARON_SIMILARITY", "SERVER_HOST", "SERVER_PORT"):
        monkeypatch.delenv(var, raising=False)
