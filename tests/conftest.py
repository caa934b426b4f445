"""Common test fixtures for Nimbus Tags."""

import logging
import tempfile
from pathlib import Path

import pytest

from nimbus_tags.config import config
from nimbus_tags.services.reconciler import Reconciler
from nimbus_tags.storage.entity_store import EntityStore


@pytest.fixture
def temp_dirs():
    """Create temporary directories for the database and logs."""
    with tempfile.TemporaryDirectory() as db_dir:
        with tempfile.TemporaryDirectory() as log_dir:
            yield Path(db_dir), Path(log_dir)


@pytest.fixture
def test_config(temp_dirs, monkeypatch):
    """Configure with test paths (auto-restored even on crash)."""
    db_dir, log_dir = temp_dirs
    monkeypatch.setattr(config, "database_path", db_dir / "test_nimbus_tags.db")
    monkeypatch.setattr(config, "log_dir", log_dir)
    monkeypatch.setattr(config, "credentials_path", db_dir / "nimbus.cfg")
    yield config


@pytest.fixture(autouse=True)
def restore_logging():
    """Undo configure_logging so caplog keeps seeing nimbus_tags records."""
    yield
    for name in ("nimbus_tags", "py.warnings"):
        named = logging.getLogger(name)
        for handler in list(named.handlers):
            named.removeHandler(handler)
            handler.close()
        named.propagate = True
        named.setLevel(logging.NOTSET)
    logging.captureWarnings(False)


@pytest.fixture
def entity_store(test_config):
    """Create a store on a fresh SQLite file."""
    store = EntityStore(test_config.get_db_url())
    yield store
    store.close()


@pytest.fixture
def reconciler(entity_store):
    """Create a Reconciler writing into the test store."""
    return Reconciler(entity_store)
