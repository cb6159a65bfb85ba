# tests/test_config.py
import pytest
from pydantic import ValidationError

from pathbridge.config import AliyunDriveOptions, RefreshOptions, Settings

ENV_VARS = [
    "TRANSFER_MODE",
    "ALIYUNDRIVE_REFRESH_TOKEN",
    "ALIYUNDRIVE_CLIENT_ID",
    "ALIYUNDRIVE_CLIENT_SECRET",
    "ALIYUNDRIVE_REMOVE_METHOD",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keeps the developer's environment out of Settings()."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def make_settings(**kwargs):
    return Settings(_env_file=None, **kwargs)


def test_settings_defaults():
    settings = make_settings()
    assert settings.TRANSFER_MODE == "buffer"
    assert settings.REQUEST_TIMEOUT == 60.0
    assert settings.ALIYUNDRIVE_REMOVE_METHOD == "trash"


def test_settings_invalid_transfer_mode_raises_error():
    with pytest.raises(ValidationError, match="Invalid TRANSFER_MODE"):
        make_settings(TRANSFER_MODE="telepathy")


def test_settings_half_configured_client_raises_error():
    with pytest.raises(ValidationError, match="must be set together"):
        make_settings(ALIYUNDRIVE_REFRESH_TOKEN="token", ALIYUNDRIVE_CLIENT_ID="id")


def test_settings_reads_environment(monkeypatch):
    monkeypatch.setenv("TRANSFER_MODE", "stream")
    monkeypatch.setenv("ALIYUNDRIVE_REFRESH_TOKEN", "env_token")
    settings = make_settings()
    assert settings.TRANSFER_MODE == "stream"
    assert settings.ALIYUNDRIVE_REFRESH_TOKEN == "env_token"


def test_aliyundrive_options_requires_refresh_token():
    with pytest.raises(ValueError, match="ALIYUNDRIVE_REFRESH_TOKEN is required"):
        make_settings().aliyundrive_options()


def test_aliyundrive_options_online_mode():
    options = make_settings(
        ALIYUNDRIVE_REFRESH_TOKEN="token",
        ALIYUNDRIVE_REFRESH_TYPE="alipanTV",
        ALIYUNDRIVE_REMOVE_METHOD="delete",
    ).aliyundrive_options()
    assert isinstance(options, AliyunDriveOptions)
    assert options.refresh.mode == "online"
    assert options.refresh.type == "alipanTV"
    assert options.remove_method == "delete"


def test_aliyundrive_options_local_mode():
    options = make_settings(
        ALIYUNDRIVE_REFRESH_TOKEN="token",
        ALIYUNDRIVE_CLIENT_ID="id",
        ALIYUNDRIVE_CLIENT_SECRET="secret",
    ).aliyundrive_options()
    assert options.refresh.mode == "local"
    assert options.refresh.client_secret == "secret"


def test_aliyundrive_options_rejects_unknown_remove_method():
    with pytest.raises(ValidationError):
        make_settings(
            ALIYUNDRIVE_REFRESH_TOKEN="token", ALIYUNDRIVE_REMOVE_METHOD="shred"
        ).aliyundrive_options()


def test_refresh_options_empty_client_secret_raises_error():
    with pytest.raises(ValidationError, match="empty client_id or client_secret"):
        RefreshOptions(token="token", client_id="id", client_secret="")


def test_refresh_options_requires_token():
    with pytest.raises(ValidationError):
        RefreshOptions(token="")
