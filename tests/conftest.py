"""pytest configuration: path management and app fixtures."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure the project root is available on sys.path so tests can import the inkspace package.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from inkspace import create_app  # noqa: E402
from inkspace.config import TestingConfig  # noqa: E402
from inkspace.extensions import db  # noqa: E402


@pytest.fixture
def app(tmp_path):
    app = create_app(TestingConfig)
    app.config.update(STORAGE_ROOT=str(tmp_path / "storage"))
    app.extensions["inkspace"]["storage"].root = tmp_path / "storage"

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
    app.extensions["inkspace"]["stores"].close_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def backend(app):
    return app.extensions["inkspace"]["backend"]
