# storage/filesystem.py
import asyncio
import logging
import posixpath
from contextlib import contextmanager
from typing import AsyncIterator, List, Optional

from fsspec import AbstractFileSystem

from ..config import get_settings
from ..exceptions import (
    AlreadyExistsError,
    ConsistencyError,
    DirectoryNotEmptyError,
    NotDirectoryError,
    NotFileError,
    NotFoundError,
    StorageError,
)
from .base import ExtendedCapabilities, StorageProvider, WriteStream
from .dto import FileStat, Progress


@contextmanager
def translate_os_errors(path: str):
    """Re-raises the builtin OSErrors fsspec uses as pathbridge errors."""
    try:
        yield
    except StorageError:
        raise
    except FileNotFoundError as e:
        raise NotFoundError(f"{path} not found") from e
    except FileExistsError as e:
        raise AlreadyExistsError(f"{path} already exists") from e
    except NotADirectoryError as e:
        raise NotDirectoryError(f"{path} is not a directory") from e
    except IsADirectoryError as e:
        raise NotFileError(f"{path} is a directory") from e


def to_file_stat(path: str, info: dict) -> FileStat:
    """Converts an fsspec ``info()`` dict into a FileStat."""
    kind = info.get("type")
    if kind not in ("file", "directory"):
        kind = "other"
    return FileStat(
        path=path,
        size=info.get("size") if kind != "directory" else None,
        kind=kind,
        symlink=bool(info.get("islink", False)),
        mtime=info.get("mtime") or info.get("modified"),
        birthtime=info.get("created"),
    )


class FsspecWriteStream(WriteStream):
    """Writes through an fsspec file object opened lazily in ``wb`` mode."""

    def __init__(self, provider: "FsspecProvider", path: str, content_length: Optional[int]):
        self.provider = provider
        self.path = path
        self.content_length = content_length
        self.written = 0
        self._file = None

    async def _ensure_open(self):
        if self._file is None:
            with translate_os_errors(self.path):
                self._file = await asyncio.to_thread(
                    self.provider.fs.open, self.path, "wb"
                )

    async def write(self, data: bytes):
        await self._ensure_open()
        await asyncio.to_thread(self._file.write, data)
        self.written += len(data)

    async def close(self):
        if self.content_length is not None and self.content_length != self.written:
            await self.abort()
            raise ConsistencyError(
                f"contentLength mismatch for {self.path}: expected {self.content_length}, got {self.written}"
            )
        await self._ensure_open()
        await asyncio.to_thread(self._file.close)

    async def abort(self):
        # fsspec commits on open or close, so the partial target has to be removed
        if self._file is None:
            return
        await asyncio.to_thread(self._file.close)
        self._file = None
        await self.provider.remove(self.path, recursive=False, force=True)
        logging.debug(f"Discarded partial write to {self.path}")


class FsspecProvider(StorageProvider):
    """
    A thin provider delegating every operation to an fsspec filesystem.
    Blocking fsspec calls run in a worker thread so the event loop keeps turning.

    Subclasses opt into native copy/move and listing with stats through the
    ``native_transfer`` and ``native_list_stat`` flags.
    """

    name = "fsspec"
    native_transfer = False
    native_list_stat = False

    def __init__(self, fs: AbstractFileSystem, chunk_size: Optional[int] = None):
        self.fs = fs
        self.chunk_size = chunk_size or get_settings().STREAM_CHUNK_SIZE

    @property
    def capabilities(self) -> Optional[ExtendedCapabilities]:
        if not (self.native_transfer or self.native_list_stat):
            return None
        return ExtendedCapabilities(
            copy=self.copy if self.native_transfer else None,
            move=self.move if self.native_transfer else None,
            list_stat=self.list_stat if self.native_list_stat else None,
        )

    async def _run(self, path: str, func, *args, **kwargs):
        with translate_os_errors(path):
            return await asyncio.to_thread(func, *args, **kwargs)

    async def mkdir(self, path: str, recursive: bool = True, mode: Optional[int] = None):
        # makedirs(exist_ok=True) on some fsspec backends accepts an existing file
        if await self.exists(path) and not await self._run(path, self.fs.isdir, path):
            raise NotDirectoryError(f"{path} is not a directory")
        if recursive:
            await self._run(path, self.fs.makedirs, path, exist_ok=True)
        else:
            parent = posixpath.dirname(path.rstrip("/"))
            if parent not in ("", "/") and not await self.exists(parent):
                raise NotFoundError(f"Missing parent directory: {parent}")
            await self._run(path, self.fs.mkdir, path, create_parents=False)

    async def _read_chunks(self, path: str) -> AsyncIterator[bytes]:
        f = await self._run(path, self.fs.open, path, "rb")
        try:
            while True:
                chunk = await asyncio.to_thread(f.read, self.chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            await asyncio.to_thread(f.close)

    def create_read_stream(self, path: str) -> AsyncIterator[bytes]:
        return self._read_chunks(path)

    def create_write_stream(
        self, path: str, content_length: Optional[int] = None
    ) -> WriteStream:
        return FsspecWriteStream(self, path, content_length)

    async def read_file(self, path: str, on_progress=None) -> bytes:
        if await self._run(path, self.fs.isdir, path):
            raise NotFileError(f"{path} is a directory")
        data = await self._run(path, self.fs.cat_file, path)
        if on_progress:
            on_progress(Progress(current=len(data), total=len(data)))
        return data

    async def write_file(self, path: str, data: bytes, on_progress=None):
        await self._run(path, self.fs.pipe_file, path, bytes(data))
        if on_progress:
            on_progress(Progress(current=len(data), total=len(data)))

    async def remove(self, path: str, recursive: bool = True, force: bool = True):
        if not await self.exists(path):
            if force:
                return
            raise NotFoundError(f"{path} not found")
        if await self._run(path, self.fs.isdir, path):
            children = await self._run(path, self.fs.ls, path, detail=False)
            if children and not recursive:
                raise DirectoryNotEmptyError(f"{path} is not empty")
            await self._run(path, self.fs.rm, path, recursive=True)
        else:
            await self._run(path, self.fs.rm_file, path)
        logging.debug(f"Removed {path} from {self.name}")

    async def stat(self, path: str) -> FileStat:
        info = await self._run(path, self.fs.info, path)
        return to_file_stat(path, info)

    async def exists(self, path: str) -> bool:
        try:
            return await asyncio.to_thread(self.fs.exists, path)
        except Exception as e:
            logging.debug(f"exists({path}) on {self.name} failed: {e}")
            return False

    async def _entries(self, path: str) -> List[tuple]:
        stat = await self.stat(path)
        if not stat.is_directory():
            raise NotDirectoryError(f"{path} is not a directory")
        entries = await self._run(path, self.fs.ls, path, detail=True)
        base = path.rstrip("/") or "/"
        named = []
        for entry in entries:
            name = posixpath.basename(entry["name"].rstrip("/"))
            if not name:
                continue
            named.append((posixpath.join(base, name), entry))
        return named

    async def list(self, path: str, recursive: bool = False) -> List[str]:
        results = []
        for full, entry in await self._entries(path):
            results.append(full)
            if recursive and entry.get("type") == "directory":
                results.extend(await self.list(full, recursive=True))
        return results

    async def list_stat(self, path: str, recursive: bool = False) -> List[FileStat]:
        results = []
        for full, entry in await self._entries(path):
            stat = to_file_stat(full, entry)
            results.append(stat)
            if recursive and stat.is_directory():
                results.extend(await self.list_stat(full, recursive=True))
        return results

    async def _check_transfer(self, src: str, dst: str, overwrite: bool, verb: str):
        src_stat = await self.stat(src)
        dst_stat = await self.stat(dst) if await self.exists(dst) else None
        if dst_stat is not None:
            if src_stat.is_file() and dst_stat.is_directory():
                raise NotFileError(f"Can not {verb} file to directory {dst}")
            if src_stat.is_directory() and not dst_stat.is_directory():
                raise NotDirectoryError(f"Can not {verb} directory to file {dst}")
            if not overwrite:
                raise AlreadyExistsError(f"{dst} is existed")
            await self.remove(dst, recursive=True, force=True)

    async def _native_copy(self, src: str, dst: str):
        await self._run(src, self.fs.copy, src, dst, recursive=True)

    async def _native_move(self, src: str, dst: str):
        await self._run(src, self.fs.mv, src, dst, recursive=True)

    async def copy(self, src: str, dst: str, overwrite: bool = False):
        await self._check_transfer(src, dst, overwrite, "copy")
        await self._native_copy(src, dst)

    async def move(self, src: str, dst: str, overwrite: bool = False):
        await self._check_transfer(src, dst, overwrite, "move")
        await self._native_move(src, dst)
