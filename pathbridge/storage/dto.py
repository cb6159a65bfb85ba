# storage/dto.py
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel


class FileStat(BaseModel):
    """
    A standardized Data Transfer Object for file metadata to abstract away
    provider-specific stat representations. Always freshly fetched.
    """

    path: str
    size: Optional[int] = None
    kind: Literal["file", "directory", "other"] = "file"
    symlink: bool = False
    mtime: Optional[datetime] = None
    birthtime: Optional[datetime] = None

    def is_file(self) -> bool:
        return self.kind == "file"

    def is_directory(self) -> bool:
        return self.kind == "directory"

    def is_symbolic_link(self) -> bool:
        return self.symlink


class Progress(BaseModel):
    """Cumulative transfer progress, in bytes."""

    current: int
    total: Optional[int] = None
    src: Optional[str] = None
