# aliyundrive/types.py
from typing import Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ApiModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class DriveInfo(ApiModel):
    default_drive_id: Optional[str] = None
    resource_drive_id: Optional[str] = None
    backup_drive_id: Optional[str] = None
    user_id: Optional[str] = None


class FileItem(ApiModel):
    """File metadata returned by the open API."""

    file_id: str
    drive_id: Optional[str] = None
    parent_file_id: Optional[str] = None
    name: Optional[str] = None
    file_name: Optional[str] = None
    size: Optional[int] = None
    type: Optional[Literal["file", "folder"]] = None
    content_hash: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.file_name or ""

    @property
    def is_folder(self) -> bool:
        return self.type == "folder"


class ListResponse(ApiModel):
    items: List[FileItem] = []
    next_marker: Optional[str] = None


class LinkResponse(ApiModel):
    url: Optional[str] = None
    streams_url: Dict[str, str] = Field(
        default_factory=dict, validation_alias=AliasChoices("streams_url", "streamsUrl")
    )


class PartInfo(ApiModel):
    part_number: int
    upload_url: Optional[str] = Field(
        None, validation_alias=AliasChoices("upload_url", "uploadUrl")
    )


class CreateResponse(ApiModel):
    """An upload session, or the folder created by a ``type=folder`` create call."""

    file_id: str
    upload_id: Optional[str] = None
    rapid_upload: bool = False
    part_info_list: List[PartInfo] = []
    file_name: Optional[str] = None
    type: Optional[str] = None


class MoveCopyResponse(ApiModel):
    file_id: Optional[str] = None
