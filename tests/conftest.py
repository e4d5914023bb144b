from __future__ import annotations

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


@pytest.fixture(scope="session")
def app():
    import importlib

    # Ensure clean import so settings are read from the test environment.
    for module_name in ["config.settings", "api.routes", "api.signaling_ws", "main"]:
        sys.modules.pop(module_name, None)

    main = importlib.import_module("main")
    return main.app


@pytest.fixture()
def client(app):
    # Entering the client runs the lifespan, which creates a fresh relay.
    with TestClient(app) as test_client:
        yield test_client
