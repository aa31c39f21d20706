"""Pytest configuration and shared fixtures."""

import logging
import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest
import yaml

from secretrotator.secrets.rotation import RotationPolicy
from secretrotator.secrets.store import SecretStoreClient, WriteResult

FIXED_NOW = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class RecordingSecretStore(SecretStoreClient):
    """Secret store double that records writes and can be told to fail."""

    def __init__(self, fail: bool = False, error: str = "store unavailable"):
        self.fail = fail
        self.error = error
        self.writes = []

    def write(self, path, secret):
        self.writes.append((path, secret))
        if self.fail:
            return WriteResult.failure(self.error)
        return WriteResult.success()


class FakeClock:
    """Controllable clock returning timezone-aware datetimes."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


@pytest.fixture
def temp_directory():
    """Create a temporary directory for testing."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    # Cleanup
    import shutil
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture(autouse=True)
def isolate_filesystem(temp_directory, monkeypatch):
    """Isolate filesystem operations to temporary directory."""
    monkeypatch.chdir(temp_directory)
    return temp_directory


@pytest.fixture(autouse=True)
def restore_logging():
    """Drop handlers that setup_logging attaches during a test."""
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield
    for handler in list(root_logger.handlers):
        if handler not in handlers:
            root_logger.removeHandler(handler)
    root_logger.setLevel(level)


@pytest.fixture
def now():
    """Fixed current time."""
    return FIXED_NOW


@pytest.fixture
def clock():
    """Controllable clock starting at the fixed current time."""
    return FakeClock()


@pytest.fixture
def memory_store():
    """Secret store double that accepts every write."""
    return RecordingSecretStore()


@pytest.fixture
def failing_store():
    """Secret store double that rejects every write."""
    return RecordingSecretStore(fail=True)


@pytest.fixture
def policy():
    """Hourly rotation policy."""
    return RotationPolicy(
        name="database-password",
        rotation_interval="1h",
        store_path="apps/database",
    )


@pytest.fixture
def sample_config(temp_directory):
    """Sample rotator configuration using the file store."""
    return {
        "rotator": {
            "version": "1.0.0",
            "state_file": os.path.join(temp_directory, "state", "state.json"),
            "workers": 1,
        },
        "store": {
            "type": "file",
            "file": {
                "directory": os.path.join(temp_directory, "secrets"),
                "key_file": os.path.join(temp_directory, "store.key"),
            },
        },
        "rotations": [
            {
                "name": "database-password",
                "rotation_interval": "1h",
                "password_length": 24,
                "include_symbols": True,
                "store_path": "apps/database",
            },
            {
                "name": "cache-password",
                "rotationInterval": "24h",
                "storePath": "apps/cache",
            },
        ],
    }


@pytest.fixture
def config_file(temp_directory, sample_config):
    """Write the sample configuration and return its path."""
    path = os.path.join(temp_directory, "secret-rotator.yml")
    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(sample_config, f, default_flow_style=False, sort_keys=False)
    return path
