from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional
import logging

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .aliyundrive.constants import API_URL_DEFAULT, ONLINE_REFRESH_URL_DEFAULT


class RefreshOptions(BaseModel):
    """
    How the AliyunDrive access token is renewed.
    Supplying client_id/client_secret selects the "local" OAuth refresh,
    otherwise the "online" helper endpoint is used.
    """

    token: str = Field(min_length=1)
    endpoint: str = ONLINE_REFRESH_URL_DEFAULT
    type: Literal["default", "alipanTV"] = "default"
    client_id: Optional[str] = None
    client_secret: Optional[str] = None

    @model_validator(mode="after")
    def check_client_credentials(self):
        if self.client_id is None and self.client_secret is None:
            return self
        if not self.client_id or not self.client_secret:
            raise ValueError("empty client_id or client_secret")
        return self

    @property
    def mode(self) -> Literal["online", "local"]:
        return "local" if self.client_id else "online"


class AliyunDriveOptions(BaseModel):
    refresh: RefreshOptions
    api_url: str = API_URL_DEFAULT
    drive_type: Literal["default", "resource", "backup"] = "default"
    root_id: str = "root"
    order_by: Optional[Literal["name", "size", "updated_at", "created_at"]] = None
    order_direction: Optional[Literal["ASC", "DESC"]] = None
    remove_method: Literal["trash", "delete"] = "trash"
    rapid_upload: bool = False
    internal_upload: bool = False
    livp_download_format: Literal["jpeg", "mov"] = "jpeg"


class Settings(BaseSettings):
    """
    Centralized application configuration with type validation.
    Automatically reads variables from the environment and the .env file.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- General Settings ---
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[Path] = None
    TRANSFER_MODE: str = "buffer"  # "buffer" or "stream"
    STREAM_CHUNK_SIZE: int = 1024 * 1024
    REQUEST_TIMEOUT: float = 60.0

    # --- AliyunDrive Settings (optional) ---
    ALIYUNDRIVE_REFRESH_TOKEN: Optional[str] = None
    ALIYUNDRIVE_CLIENT_ID: Optional[str] = None
    ALIYUNDRIVE_CLIENT_SECRET: Optional[str] = None
    ALIYUNDRIVE_REFRESH_ENDPOINT: str = ONLINE_REFRESH_URL_DEFAULT
    ALIYUNDRIVE_REFRESH_TYPE: str = "default"
    ALIYUNDRIVE_API_URL: str = API_URL_DEFAULT
    ALIYUNDRIVE_DRIVE_TYPE: str = "default"
    ALIYUNDRIVE_ROOT_ID: str = "root"
    ALIYUNDRIVE_ORDER_BY: Optional[str] = None
    ALIYUNDRIVE_ORDER_DIRECTION: Optional[str] = None
    ALIYUNDRIVE_REMOVE_METHOD: str = "trash"
    ALIYUNDRIVE_RAPID_UPLOAD: bool = False
    ALIYUNDRIVE_INTERNAL_UPLOAD: bool = False
    ALIYUNDRIVE_LIVP_FORMAT: str = "jpeg"

    # --- WebDAV Settings (optional) ---
    WEBDAV_URL: Optional[str] = None
    WEBDAV_USERNAME: Optional[str] = None
    WEBDAV_PASSWORD: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def validate_transfer_and_credentials(cls, values):
        mode = values.get("TRANSFER_MODE")
        if mode is not None and mode not in ("buffer", "stream"):
            raise ValueError("Invalid TRANSFER_MODE. Must be 'buffer' or 'stream'.")

        # Local refresh needs both halves of the app credentials.
        client_id = values.get("ALIYUNDRIVE_CLIENT_ID")
        client_secret = values.get("ALIYUNDRIVE_CLIENT_SECRET")
        if bool(client_id) != bool(client_secret):
            raise ValueError(
                "ALIYUNDRIVE_CLIENT_ID and ALIYUNDRIVE_CLIENT_SECRET must be set together"
            )

        if client_id and not values.get("ALIYUNDRIVE_REFRESH_TOKEN"):
            logging.warning(
                "ALIYUNDRIVE_CLIENT_ID is set but ALIYUNDRIVE_REFRESH_TOKEN is missing."
            )
        return values

    def aliyundrive_options(self) -> AliyunDriveOptions:
        """
        Builds validated AliyunDrive provider options from the settings.
        Raises ValueError if no refresh token is configured.
        """
        if not self.ALIYUNDRIVE_REFRESH_TOKEN:
            raise ValueError("ALIYUNDRIVE_REFRESH_TOKEN is required for the AliyunDrive provider")
        refresh = RefreshOptions(
            token=self.ALIYUNDRIVE_REFRESH_TOKEN,
            endpoint=self.ALIYUNDRIVE_REFRESH_ENDPOINT,
            type=self.ALIYUNDRIVE_REFRESH_TYPE,
            client_id=self.ALIYUNDRIVE_CLIENT_ID or None,
            client_secret=self.ALIYUNDRIVE_CLIENT_SECRET or None,
        )
        return AliyunDriveOptions(
            refresh=refresh,
            api_url=self.ALIYUNDRIVE_API_URL,
            drive_type=self.ALIYUNDRIVE_DRIVE_TYPE,
            root_id=self.ALIYUNDRIVE_ROOT_ID,
            order_by=self.ALIYUNDRIVE_ORDER_BY,
            order_direction=self.ALIYUNDRIVE_ORDER_DIRECTION,
            remove_method=self.ALIYUNDRIVE_REMOVE_METHOD,
            rapid_upload=self.ALIYUNDRIVE_RAPID_UPLOAD,
            internal_upload=self.ALIYUNDRIVE_INTERNAL_UPLOAD,
            livp_download_format=self.ALIYUNDRIVE_LIVP_FORMAT,
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Returns a cached instance of the application settings.
    The first call to this function will initialize the settings.
    """
    return Settings()
