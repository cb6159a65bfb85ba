# webdav.py
import logging
from typing import Optional

from webdav4.fsspec import WebdavFileSystem

from .storage.filesystem import FsspecProvider


class WebDAVProvider(FsspecProvider):
    """
    A WebDAV server, through webdav4's fsspec filesystem.
    Copy and move are server-side COPY/MOVE requests.
    """

    name = "webdav"
    native_transfer = True
    native_list_stat = True

    def __init__(
        self,
        base_url: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        chunk_size: Optional[int] = None,
        **client_options,
    ):
        auth = (username, password) if username else None
        fs = WebdavFileSystem(base_url, auth=auth, **client_options)
        super().__init__(fs, chunk_size=chunk_size)
        logging.info(f"WebDAV provider initialized for {base_url}.")

    async def _native_copy(self, src: str, dst: str):
        await self._run(src, self.fs.client.copy, src, dst)

    async def _native_move(self, src: str, dst: str):
        await self._run(src, self.fs.client.move, src, dst)
