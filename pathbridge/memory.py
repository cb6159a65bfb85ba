# memory.py
import logging
from typing import Dict, Optional

from fsspec.implementations.memory import MemoryFileSystem

from .storage.base import ExtendedCapabilities
from .storage.filesystem import FsspecProvider


class MemoryProvider(FsspecProvider):
    """
    In-memory volume backed by fsspec's MemoryFileSystem.
    Each provider owns a private store, so two providers never see each other's files.
    """

    name = "mem"
    native_list_stat = True

    def __init__(self, files: Optional[Dict[str, bytes]] = None, chunk_size: Optional[int] = None):
        fs = MemoryFileSystem(skip_instance_cache=True)
        # MemoryFileSystem keeps its store on the class; shadow it per instance.
        fs.store = {}
        fs.pseudo_dirs = [""]
        super().__init__(fs, chunk_size=chunk_size)
        for path, content in (files or {}).items():
            fs.pipe_file(path, content)
        if files:
            logging.info(f"Memory volume initialized with {len(files)} files.")

    @property
    def capabilities(self) -> Optional[ExtendedCapabilities]:
        return ExtendedCapabilities(
            list_stat=self.list_stat,
            read_text=self.read_text,
            write_text=self.write_text,
        )

    async def read_text(self, path: str, encoding: str = "utf-8") -> str:
        return (await self.read_file(path)).decode(encoding)

    async def write_text(self, path: str, content: str, encoding: str = "utf-8"):
        await self.write_file(path, content.encode(encoding))
