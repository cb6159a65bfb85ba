# storage/base.py
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, List, Optional

from .dto import FileStat, Progress

ProgressCallback = Callable[[Progress], None]


class WriteStream(ABC):
    """
    An asynchronous byte sink returned by ``create_write_stream``.

    Used as an async context manager the stream is closed on success and
    aborted when the body raises.
    """

    @abstractmethod
    async def write(self, data: bytes):
        pass

    @abstractmethod
    async def close(self):
        """Flushes everything written so far to the backend."""
        pass

    async def abort(self):
        """Discards the stream without committing it."""
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is None:
            await self.close()
        else:
            await self.abort()


@dataclass(frozen=True)
class ExtendedCapabilities:
    """
    Optional operations a provider may offer on top of the mandatory contract.
    A slot left as None means the orchestrator falls back to a generic
    implementation built from the mandatory operations.
    """

    copy: Optional[Callable[..., Awaitable[None]]] = None
    move: Optional[Callable[..., Awaitable[None]]] = None
    list_stat: Optional[Callable[..., Awaitable[List[FileStat]]]] = None
    read_text: Optional[Callable[..., Awaitable[str]]] = None
    write_text: Optional[Callable[..., Awaitable[None]]] = None


class StorageProvider(ABC):
    """
    Abstract base class for a storage backend.
    Defines the common interface that all specific providers
    (e.g., local disk, memory, WebDAV, AliyunDrive) must implement.
    """

    name: str = "abstract"

    @property
    def capabilities(self) -> Optional[ExtendedCapabilities]:
        """The extended capability descriptor, or None if the provider has none."""
        return None

    @abstractmethod
    async def mkdir(self, path: str, recursive: bool = True, mode: Optional[int] = None):
        """
        Creates a directory.

        :param path: The directory to create.
        :param recursive: Whether missing parent directories are created too.
        :param mode: Permission bits, for backends that support them.
        """
        pass

    @abstractmethod
    def create_read_stream(self, path: str) -> AsyncIterator[bytes]:
        """Returns an async iterator over the file's bytes."""
        pass

    @abstractmethod
    def create_write_stream(
        self, path: str, content_length: Optional[int] = None
    ) -> WriteStream:
        """
        Returns a write stream for the file.

        :param content_length: The expected total size, if known up front.
        """
        pass

    @abstractmethod
    async def read_file(
        self, path: str, on_progress: Optional[ProgressCallback] = None
    ) -> bytes:
        pass

    @abstractmethod
    async def write_file(
        self, path: str, data: bytes, on_progress: Optional[ProgressCallback] = None
    ):
        pass

    @abstractmethod
    async def remove(self, path: str, recursive: bool = True, force: bool = True):
        """
        Removes a file or directory.
        Does not raise if ``force`` is true and the path is absent.
        """
        pass

    @abstractmethod
    async def stat(self, path: str) -> FileStat:
        """
        Returns metadata for the path.
        Raises NotFoundError if the path does not exist.
        """
        pass

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """Never raises; any failure is reported as False."""
        pass

    @abstractmethod
    async def list(self, path: str, recursive: bool = False) -> List[str]:
        """
        Lists the children of a directory.

        :param recursive: Whether to descend into subdirectories.
        :return: Full child paths, parents before their children.
        """
        pass
