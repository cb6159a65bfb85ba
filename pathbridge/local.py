# local.py
from typing import Optional

from fsspec.implementations.local import LocalFileSystem

from .storage.filesystem import FsspecProvider


class LocalProvider(FsspecProvider):
    """Local disk, through fsspec's LocalFileSystem."""

    name = "local"

    def __init__(self, chunk_size: Optional[int] = None):
        super().__init__(LocalFileSystem(auto_mkdir=False), chunk_size=chunk_size)
