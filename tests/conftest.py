from __future__ import annotations

import os

# Qt objects are created by the store and watcher.  Offscreen avoids libGL
# dependencies inside the test container.
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest

from utils.app_settings import FormBuilderSettings
from utils.durable_store import SqliteKeyValueStore


@pytest.fixture(autouse=True)
def isolated_data_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("FORMBUILDER_DATA_DIR", str(tmp_path))
    monkeypatch.delenv("FORMBUILDER_PUBLIC_URL", raising=False)
    monkeypatch.delenv("FORMBUILDER_POLL_MS", raising=False)
    monkeypatch.delenv("FORMBUILDER_CHANGE_RETENTION_S", raising=False)
    return tmp_path


@pytest.fixture
def settings(tmp_path) -> FormBuilderSettings:
    return FormBuilderSettings(data_dir=tmp_path, public_url="https://forms.test")


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "shared.db"


@pytest.fixture
def builder_kv(db_path) -> SqliteKeyValueStore:
    return SqliteKeyValueStore(db_path, context_id="builder")


@pytest.fixture
def filler_kv(db_path) -> SqliteKeyValueStore:
    return SqliteKeyValueStore(db_path, context_id="filler")


@pytest.fixture(scope="session")
def qapp():
    from PySide6.QtCore import QCoreApplication

    app = QCoreApplication.instance() or QCoreApplication([])
    yield app
