# aliyundrive/provider.py
import logging
import posixpath
from typing import AsyncIterator, List, Optional

import httpx

from ..config import AliyunDriveOptions, get_settings
from ..exceptions import (
    AlreadyExistsError,
    ConsistencyError,
    DirectoryNotEmptyError,
    NotDirectoryError,
    NotFileError,
    NotFoundError,
    RequestFailedError,
    UnsupportedTypeError,
)
from ..storage.base import ExtendedCapabilities, ProgressCallback, StorageProvider, WriteStream
from ..storage.dto import FileStat, Progress
from .client import AliyunDriveClient
from .constants import (
    COPY_URI,
    CREATE_URI,
    DELETE_URI,
    DOWNLOAD_URL_EXPIRE_SEC,
    DOWNLOAD_URL_URI,
    MOVE_URI,
    TRASH_URI,
    UPDATE_URI,
)
from .limiter import LimiterRegistry, LimiterType
from .resolver import TreeResolver
from .types import CreateResponse, FileItem, LinkResponse, MoveCopyResponse
from .upload import Uploader
from .utils import normalize_path, split_path


def to_file_stat(item: FileItem, path: str) -> FileStat:
    folder = item.is_folder
    return FileStat(
        path=path,
        size=None if folder else (item.size or 0),
        kind="directory" if folder else "file",
        mtime=item.updated_at or None,
        birthtime=item.created_at or None,
    )


class AliyunDriveWriteStream(WriteStream):
    """Buffers every chunk in memory and uploads the whole file on close."""

    def __init__(self, provider: "AliyunDriveProvider", path: str, content_length: Optional[int]):
        self.provider = provider
        self.path = path
        self.content_length = content_length
        self._chunks: List[bytes] = []
        self.written = 0

    async def write(self, data: bytes):
        self._chunks.append(bytes(data))
        self.written += len(data)

    async def close(self):
        if self.content_length is not None and self.content_length != self.written:
            raise ConsistencyError(
                f"contentLength mismatch for {self.path}: expected {self.content_length}, got {self.written}"
            )
        data = b"".join(self._chunks)
        self._chunks = []
        await self.provider.write_file(self.path, data)

    async def abort(self):
        self._chunks = []


class AliyunDriveProvider(StorageProvider):
    """
    The AliyunDrive open API as a storage provider.

    Paths are resolved against the remote tree on every call. Providers built
    with the same LimiterRegistry and logged into the same account share one
    set of rate limits.
    """

    name = "aliyundrive"

    def __init__(
        self,
        options: AliyunDriveOptions,
        client: Optional[httpx.AsyncClient] = None,
        limiters: Optional[LimiterRegistry] = None,
    ):
        self.options = options
        self._owns_http = client is None
        if client is None:
            client = httpx.AsyncClient(
                timeout=httpx.Timeout(get_settings().REQUEST_TIMEOUT),
                follow_redirects=True,
            )
        self.http = client
        self.client = AliyunDriveClient(
            options, client, limiters if limiters is not None else LimiterRegistry()
        )
        self.resolver = TreeResolver(self.client)
        self.uploader = Uploader(self.client)
        self._closed = False

    @classmethod
    def from_settings(cls, **kwargs) -> "AliyunDriveProvider":
        return cls(get_settings().aliyundrive_options(), **kwargs)

    @property
    def capabilities(self) -> ExtendedCapabilities:
        return ExtendedCapabilities(copy=self.copy, move=self.move, list_stat=self.list_stat)

    async def aclose(self):
        """Releases the account limiter and closes the HTTP client if this provider created it."""
        if self._closed:
            return
        self._closed = True
        self.client.release()
        if self._owns_http:
            await self.http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    # --- Directories ---

    async def mkdir(self, path: str, recursive: bool = True, mode: Optional[int] = None):
        await self.client.ensure_ready()
        parts = split_path(path)
        parent = self.resolver.root
        current = ""
        for i, part in enumerate(parts):
            current = f"{current}/{part}"
            existing = await self.resolver.find_child(parent.file_id, part)
            if existing is not None:
                if not existing.is_folder:
                    raise NotDirectoryError(f"Can not create directory over file: {current}")
                parent = existing
                continue
            if not recursive and i < len(parts) - 1:
                raise NotFoundError(f"Missing parent directory: {posixpath.dirname(current)}")
            parent = await self._create_folder(parent.file_id, part)
            logging.debug(f"Created AliyunDrive folder {current}")

    async def _create_folder(self, parent_id: str, name: str) -> FileItem:
        resp = CreateResponse.model_validate(
            await self.client.request(
                LimiterType.OTHER,
                CREATE_URI,
                {
                    "drive_id": self.client.drive_id,
                    "parent_file_id": parent_id,
                    "name": name,
                    "type": "folder",
                    "check_name_mode": "refuse",
                },
            )
        )
        return FileItem(file_id=resp.file_id, name=resp.file_name or name, type="folder")

    # --- Reading ---

    async def _resolve_file(self, path: str) -> FileItem:
        item = await self.resolver.resolve(path)
        if item.is_folder:
            raise NotFileError(f"{normalize_path(path)} is a directory")
        return item

    async def _download_url(self, item: FileItem) -> str:
        link = LinkResponse.model_validate(
            await self.client.request(
                LimiterType.LINK,
                DOWNLOAD_URL_URI,
                {
                    "drive_id": self.client.drive_id,
                    "file_id": item.file_id,
                    "expire_sec": DOWNLOAD_URL_EXPIRE_SEC,
                },
            )
        )
        url = link.url or ""
        if not url and item.display_name.lower().endswith(".livp"):
            url = link.streams_url.get(self.options.livp_download_format, "")
        if not url:
            raise ConsistencyError("get download url failed")
        return url

    async def _download(self, path: str) -> AsyncIterator[tuple]:
        """Yields (chunk, content_length) pairs of the file body."""
        item = await self._resolve_file(path)
        url = await self._download_url(item)
        try:
            async with self.http.stream("GET", url) as resp:
                if resp.is_error:
                    raise RequestFailedError(
                        f"Download failed with status {resp.status_code}",
                        status_code=resp.status_code,
                    )
                length = resp.headers.get("content-length")
                total = int(length) if length and length.isdigit() else None
                async for chunk in resp.aiter_bytes():
                    if chunk:
                        yield chunk, total
        except httpx.HTTPError as e:
            raise RequestFailedError(f"Download of {path} failed: {e}") from e

    async def _read_chunks(self, path: str) -> AsyncIterator[bytes]:
        async for chunk, _ in self._download(path):
            yield chunk

    def create_read_stream(self, path: str) -> AsyncIterator[bytes]:
        return self._read_chunks(path)

    async def read_file(self, path: str, on_progress: Optional[ProgressCallback] = None) -> bytes:
        chunks = []
        received = 0
        async for chunk, total in self._download(path):
            chunks.append(chunk)
            received += len(chunk)
            if on_progress:
                on_progress(Progress(current=received, total=total))
        return b"".join(chunks)

    # --- Writing ---

    def create_write_stream(self, path: str, content_length: Optional[int] = None) -> WriteStream:
        return AliyunDriveWriteStream(self, path, content_length)

    async def write_file(
        self, path: str, data: bytes, on_progress: Optional[ProgressCallback] = None
    ):
        await self.client.ensure_ready()
        normalized = normalize_path(path)
        parent_path = posixpath.dirname(normalized)
        name = posixpath.basename(normalized)
        if not name:
            raise NotFileError("Can not write file over root directory")

        parent = await self.resolver.find(parent_path)
        if parent is None or not parent.is_folder:
            raise NotFoundError(f"Parent directory not found: {parent_path}")

        existing = await self.resolver.find_child(parent.file_id, name)
        if existing is not None:
            if existing.is_folder:
                raise NotFileError(f"Can not write file over directory: {normalized}")
            await self._remove_item(existing)

        await self.uploader.upload(parent.file_id, name, bytes(data), on_progress)
        logging.info(f"Uploaded {normalized} to AliyunDrive ({len(data)} bytes).")

    # --- Removal ---

    async def remove(self, path: str, recursive: bool = True, force: bool = True):
        await self.client.ensure_ready()
        item = await self.resolver.find(path)
        if item is None:
            if force:
                return
            raise NotFoundError(f"{normalize_path(path)} not found")
        if item.is_folder and not recursive:
            if await self.resolver.list_children(item.file_id):
                raise DirectoryNotEmptyError(f"{normalize_path(path)} is not empty")
        await self._remove_item(item)

    async def _remove_item(self, item: FileItem):
        uri = DELETE_URI if self.options.remove_method == "delete" else TRASH_URI
        await self.client.request(
            LimiterType.OTHER,
            uri,
            {"drive_id": self.client.drive_id, "file_id": item.file_id},
        )

    # --- Metadata ---

    async def stat(self, path: str) -> FileStat:
        normalized = normalize_path(path)
        return to_file_stat(await self.resolver.resolve(normalized), normalized)

    async def exists(self, path: str) -> bool:
        try:
            return await self.resolver.find(path) is not None
        except Exception as e:
            logging.debug(f"exists({path}) on AliyunDrive failed: {e}")
            return False

    async def list(self, path: str, recursive: bool = False) -> List[str]:
        return [stat.path for stat in await self.list_stat(path, recursive=recursive)]

    async def list_stat(self, path: str, recursive: bool = False) -> List[FileStat]:
        normalized = normalize_path(path)
        folder = await self.resolver.resolve_folder(normalized)
        results: List[FileStat] = []
        await self._collect(normalized, folder.file_id, results, recursive)
        return results

    async def _collect(self, parent_path: str, parent_id: str, output: List[FileStat], recursive: bool):
        for item in await self.resolver.list_children(parent_id):
            name = item.display_name
            if not name:
                continue
            full = posixpath.join(parent_path, name)
            output.append(to_file_stat(item, full))
            if recursive and item.is_folder:
                await self._collect(full, item.file_id, output, recursive)

    # --- Server-side copy and move ---

    async def copy(self, src: str, dst: str, overwrite: bool = False):
        await self._transfer(src, dst, overwrite, "copy")

    async def move(self, src: str, dst: str, overwrite: bool = False):
        await self._transfer(src, dst, overwrite, "move")

    async def _transfer(self, src: str, dst: str, overwrite: bool, verb: str):
        await self.client.ensure_ready()
        src_stat = await self.stat(src)
        dst_item = await self.resolver.find(dst)

        if src_stat.is_file():
            if dst_item is not None and dst_item.is_folder:
                raise NotFileError(f"Can not {verb} file to directory {dst}")
            await self._transfer_file(src, dst, overwrite, verb)
            return

        if src_stat.is_directory():
            if dst_item is not None and not dst_item.is_folder:
                raise NotDirectoryError(f"Can not {verb} directory to file {dst}")
            if dst_item is None:
                await self.mkdir(dst, recursive=True)
            for entry in await self.list_stat(src):
                target = posixpath.join(normalize_path(dst), posixpath.basename(entry.path))
                if entry.is_directory():
                    await self._transfer(entry.path, target, overwrite, verb)
                elif entry.is_file():
                    await self._transfer_file(entry.path, target, overwrite, verb)
                else:
                    raise UnsupportedTypeError(f"Not support {verb} other file types")
            if verb == "move":
                await self.remove(src, recursive=True, force=True)
            return

        raise UnsupportedTypeError(f"Not support {verb} other file types")

    async def _transfer_file(self, src: str, dst: str, overwrite: bool, verb: str):
        src_item = await self.resolver.resolve(src)
        dst_path = normalize_path(dst)
        dst_parent_path = posixpath.dirname(dst_path)
        dst_name = posixpath.basename(dst_path)

        dst_parent = await self.resolver.find(dst_parent_path)
        if dst_parent is None or not dst_parent.is_folder:
            raise NotFoundError(f"Destination parent not found: {dst_parent_path}")

        existing = await self.resolver.find_child(dst_parent.file_id, dst_name)
        if existing is not None:
            if not overwrite:
                raise AlreadyExistsError(f"{dst_path} is existed")
            await self._remove_item(existing)

        if verb == "copy":
            await self._copy_item(src_item, dst_parent.file_id, dst_name)
        else:
            await self._move_item(src_item, dst_parent.file_id, dst_name)
        logging.debug(f"AliyunDrive {verb}: {normalize_path(src)} -> {dst_path}")

    async def _copy_item(self, item: FileItem, parent_id: str, name: str):
        resp = MoveCopyResponse.model_validate(
            await self.client.request(
                LimiterType.OTHER,
                COPY_URI,
                {
                    "drive_id": self.client.drive_id,
                    "file_id": item.file_id,
                    "to_parent_file_id": parent_id,
                    "auto_rename": False,
                },
            )
        )
        # The copy keeps the source name; rename it afterwards.
        if name != item.display_name and resp.file_id:
            await self.client.request(
                LimiterType.OTHER,
                UPDATE_URI,
                {"drive_id": self.client.drive_id, "file_id": resp.file_id, "name": name},
            )

    async def _move_item(self, item: FileItem, parent_id: str, name: str):
        payload = {
            "drive_id": self.client.drive_id,
            "file_id": item.file_id,
            "to_parent_file_id": parent_id,
            "check_name_mode": "ignore",
        }
        if name != item.display_name:
            payload["new_name"] = name
        await self.client.request(LimiterType.OTHER, MOVE_URI, payload)
