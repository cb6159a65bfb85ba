# tests/conftest.py
from unittest.mock import MagicMock

import pytest

from pathbridge.aliyundrive.limiter import LimiterRegistry
from pathbridge.config import AliyunDriveOptions, RefreshOptions, Settings, get_settings
from fakes import NO_WAIT, FakeAliyunDrive, make_jwt


@pytest.fixture
def fake_drive():
    return FakeAliyunDrive()


@pytest.fixture
def drive_options():
    return AliyunDriveOptions(refresh=RefreshOptions(token=make_jwt("user-1")))


@pytest.fixture
def limiters():
    """A registry whose limiters never wait."""
    return LimiterRegistry(intervals=NO_WAIT)


@pytest.fixture
def mock_settings():
    """
    Provides a mock of the application settings for testing.
    This avoids the need for environment variables during tests.
    """
    settings = MagicMock(spec=Settings)
    settings.LOG_LEVEL = "INFO"
    settings.LOG_FILE = None
    settings.TRANSFER_MODE = "buffer"
    settings.STREAM_CHUNK_SIZE = 64 * 1024
    settings.REQUEST_TIMEOUT = 5.0
    settings.ALIYUNDRIVE_REFRESH_TOKEN = None
    settings.WEBDAV_URL = "https://dav.example.com/remote.php/dav"
    settings.WEBDAV_USERNAME = "alice"
    settings.WEBDAV_PASSWORD = "secret"
    return settings


@pytest.fixture(autouse=True)
def patch_settings_class(monkeypatch, mock_settings):
    """
    Replaces the `Settings` constructor so that any code calling `get_settings()`
    during a test receives `mock_settings` instead of reading the environment.
    """
    # get_settings is lru_cached and may already hold a real instance.
    get_settings.cache_clear()
    monkeypatch.setattr("pathbridge.config.Settings", lambda *args, **kwargs: mock_settings)
    yield
    get_settings.cache_clear()
