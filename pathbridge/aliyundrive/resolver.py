# aliyundrive/resolver.py
from typing import List, Optional

from ..exceptions import NotDirectoryError, NotFoundError
from .client import AliyunDriveClient
from .constants import LIST_PAGE_SIZE, LIST_URI
from .limiter import LimiterType
from .types import FileItem, ListResponse
from .utils import normalize_path, split_path


class TreeResolver:
    """
    Maps slash-separated paths to remote file ids by walking the tree one
    segment at a time. Nothing is cached: every lookup re-lists the backend.
    """

    def __init__(self, client: AliyunDriveClient):
        self.client = client

    @property
    def root(self) -> FileItem:
        return FileItem(file_id=self.client.options.root_id, name="root", type="folder")

    async def list_children(self, parent_id: str) -> List[FileItem]:
        """Fetches every page of a folder listing, in server order."""
        await self.client.ensure_ready()
        options = self.client.options
        items: List[FileItem] = []
        marker = ""
        while True:
            payload = {
                "drive_id": self.client.drive_id,
                "parent_file_id": parent_id,
                "limit": LIST_PAGE_SIZE,
                "marker": marker,
            }
            if options.order_by:
                payload["order_by"] = options.order_by
            if options.order_direction:
                payload["order_direction"] = options.order_direction
            page = ListResponse.model_validate(
                await self.client.request(LimiterType.LIST, LIST_URI, payload)
            )
            items.extend(page.items)
            marker = page.next_marker or ""
            if not marker:
                return items

    async def find_child(self, parent_id: str, name: str) -> Optional[FileItem]:
        for item in await self.list_children(parent_id):
            if item.display_name == name:
                return item
        return None

    async def find(self, path: str) -> Optional[FileItem]:
        """Returns the item at ``path``, or None if any segment is missing."""
        await self.client.ensure_ready()
        current = self.root
        for part in split_path(path):
            if not current.is_folder:
                return None
            current = await self.find_child(current.file_id, part)
            if current is None:
                return None
        return current

    async def resolve(self, path: str) -> FileItem:
        item = await self.find(path)
        if item is None:
            raise NotFoundError(f"{normalize_path(path)} not found")
        return item

    async def resolve_folder(self, path: str) -> FileItem:
        item = await self.resolve(path)
        if not item.is_folder:
            raise NotDirectoryError(f"{normalize_path(path)} is not a directory")
        return item
