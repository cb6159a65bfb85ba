# fs.py
import logging
import posixpath
from typing import AsyncIterator, List, Optional

from .config import get_settings
from .exceptions import (
    AlreadyExistsError,
    NotDirectoryError,
    NotFileError,
    UnsupportedTypeError,
)
from .storage.base import ProgressCallback, StorageProvider, WriteStream
from .storage.dto import FileStat, Progress

TRANSFER_MODES = ("buffer", "stream")


class FileSystem:
    """
    Binds a storage provider to the path API.
    ``transfer_mode`` is the default used when a copy or move has to fall back
    to moving bytes between two providers.
    """

    def __init__(self, provider: StorageProvider, transfer_mode: Optional[str] = None):
        mode = transfer_mode or get_settings().TRANSFER_MODE
        if mode not in TRANSFER_MODES:
            raise ValueError(f"Invalid transfer mode '{mode}'. Must be 'buffer' or 'stream'.")
        self._provider = provider
        self.transfer_mode = mode

    @classmethod
    def of(cls, provider: StorageProvider, transfer_mode: Optional[str] = None) -> "FileSystem":
        return cls(provider, transfer_mode=transfer_mode)

    @property
    def provider(self) -> StorageProvider:
        return self._provider

    def path(self, *pieces: str) -> "Path":
        return Path(self, posixpath.join("/", *pieces) if pieces else "/")

    def __repr__(self):
        return f"FileSystem({self._provider.name})"


class Path:
    """An immutable location on one FileSystem."""

    __slots__ = ("_fs", "_path")

    def __init__(self, fs: FileSystem, path: str):
        self._fs = fs
        self._path = path

    @property
    def fs(self) -> FileSystem:
        return self._fs

    @property
    def provider(self) -> StorageProvider:
        return self._fs.provider

    @property
    def path(self) -> str:
        return self._path

    def __str__(self):
        return self._path

    def __repr__(self):
        return f"Path({self._fs.provider.name}:{self._path})"

    def __eq__(self, other):
        if not isinstance(other, Path):
            return NotImplemented
        return self._fs is other._fs and self._path == other._path

    def __hash__(self):
        return hash((id(self._fs), self._path))

    def __truediv__(self, piece: str) -> "Path":
        return self.join(piece)

    @property
    def basename(self) -> str:
        return posixpath.basename(self._path.rstrip("/"))

    @property
    def dirname(self) -> str:
        return posixpath.dirname(self._path.rstrip("/")) or "/"

    @property
    def parent(self) -> "Path":
        return Path(self._fs, self.dirname)

    def join(self, *pieces: str) -> "Path":
        return Path(self._fs, posixpath.normpath(posixpath.join(self._path, *pieces)))

    def resolve(self, *pieces: str) -> "Path":
        """Like join, except that an absolute piece restarts from the root."""
        current = self._path
        for piece in pieces:
            current = piece if piece.startswith("/") else posixpath.join(current, piece)
        return Path(self._fs, posixpath.normpath(current))

    # --- Delegated operations ---

    async def stat(self) -> FileStat:
        return await self.provider.stat(self._path)

    async def exists(self) -> bool:
        return await self.provider.exists(self._path)

    async def is_file(self) -> bool:
        if not await self.exists():
            return False
        return (await self.stat()).is_file()

    async def is_directory(self) -> bool:
        if not await self.exists():
            return False
        return (await self.stat()).is_directory()

    async def mkdir(self, recursive: bool = True, mode: Optional[int] = None):
        await self.provider.mkdir(self._path, recursive=recursive, mode=mode)

    def create_read_stream(self) -> AsyncIterator[bytes]:
        return self.provider.create_read_stream(self._path)

    def create_write_stream(self, content_length: Optional[int] = None) -> WriteStream:
        return self.provider.create_write_stream(self._path, content_length=content_length)

    async def read_file(self, on_progress: Optional[ProgressCallback] = None) -> bytes:
        return await self.provider.read_file(self._path, on_progress=on_progress)

    async def write_file(self, data: bytes, on_progress: Optional[ProgressCallback] = None):
        await self.provider.write_file(self._path, data, on_progress=on_progress)

    async def read_text(self, encoding: str = "utf-8") -> str:
        caps = self.provider.capabilities
        if caps is not None and caps.read_text is not None:
            return await caps.read_text(self._path, encoding=encoding)
        return (await self.read_file()).decode(encoding)

    async def write_text(self, content: str, encoding: str = "utf-8"):
        caps = self.provider.capabilities
        if caps is not None and caps.write_text is not None:
            await caps.write_text(self._path, content, encoding=encoding)
            return
        await self.write_file(content.encode(encoding))

    async def remove(self, recursive: bool = True, force: bool = True):
        await self.provider.remove(self._path, recursive=recursive, force=force)

    async def list(self, recursive: bool = False) -> List["Path"]:
        return [Path(self._fs, p) for p in await self.provider.list(self._path, recursive=recursive)]

    async def list_stat(self, recursive: bool = False) -> List[FileStat]:
        caps = self.provider.capabilities
        if caps is not None and caps.list_stat is not None:
            return await caps.list_stat(self._path, recursive=recursive)
        return [await self.provider.stat(p) for p in await self.provider.list(self._path, recursive=recursive)]

    # --- Copy and move ---

    async def copy_to(
        self,
        dst: "Path",
        overwrite: bool = False,
        on_progress: Optional[ProgressCallback] = None,
        transfer: Optional[str] = None,
    ):
        await _transfer(self, dst, overwrite, on_progress, transfer, move=False)

    async def move_to(
        self,
        dst: "Path",
        overwrite: bool = False,
        on_progress: Optional[ProgressCallback] = None,
        transfer: Optional[str] = None,
    ):
        await _transfer(self, dst, overwrite, on_progress, transfer, move=True)


async def _transfer(
    src: Path,
    dst: Path,
    overwrite: bool,
    on_progress: Optional[ProgressCallback],
    transfer: Optional[str],
    move: bool,
):
    verb = "move" if move else "copy"

    if src.provider is dst.provider:
        caps = src.provider.capabilities
        native = getattr(caps, verb) if caps is not None else None
        if native is not None:
            await native(src.path, dst.path, overwrite=overwrite)
            return

    src_stat = await src.stat()
    dst_stat = await dst.stat() if await dst.exists() else None
    if dst_stat is not None:
        if src_stat.is_file() and dst_stat.is_directory():
            raise NotFileError(f"Can not {verb} file to directory {dst.path}")
        if src_stat.is_directory() and not dst_stat.is_directory():
            raise NotDirectoryError(f"Can not {verb} directory to file {dst.path}")
        if not overwrite:
            raise AlreadyExistsError(f"{dst.path} is existed")

    if src_stat.is_file():
        mode = transfer or src.fs.transfer_mode
        if mode == "stream":
            await _stream_copy(src, dst, src_stat.size, on_progress)
        elif mode == "buffer":
            await _buffer_copy(src, dst, on_progress)
        else:
            raise ValueError(f"Invalid transfer mode '{mode}'. Must be 'buffer' or 'stream'.")
        if move:
            await src.remove(recursive=False, force=True)
        logging.debug(f"{verb}: {src!r} -> {dst!r} ({mode})")
        return

    if src_stat.is_directory():
        if dst_stat is None:
            await dst.mkdir(recursive=True)
        for child in await src.list():
            await _transfer(child, dst.join(child.basename), overwrite, on_progress, transfer, move)
        if move:
            await src.remove(recursive=True, force=True)
        return

    raise UnsupportedTypeError(f"Not support {verb} other file types: {src.path}")


async def _stream_copy(
    src: Path, dst: Path, size: Optional[int], on_progress: Optional[ProgressCallback]
):
    current = 0
    async with dst.create_write_stream(content_length=size) as sink:
        async for chunk in src.create_read_stream():
            await sink.write(chunk)
            current += len(chunk)
            if on_progress:
                on_progress(Progress(src=src.path, current=current, total=size))


async def _buffer_copy(src: Path, dst: Path, on_progress: Optional[ProgressCallback]):
    data = await src.read_file()
    await dst.write_file(data)
    if on_progress:
        on_progress(Progress(src=src.path, current=len(data), total=len(data)))
