# main.py
import argparse
import asyncio
import logging
import os
import sys
from typing import Dict, List, Optional, Tuple

from .aliyundrive.provider import AliyunDriveProvider
from .config import get_settings
from .exceptions import PermanentError, StorageError, TransientError
from .fs import FileSystem, Path
from .local import LocalProvider
from .storage.base import StorageProvider
from .webdav import WebDAVProvider

SCHEMES = ("local", "dav", "aliyun")


def setup_logging():
    """Configures logging to the console and, if LOG_FILE is set, to a file."""
    settings = get_settings()
    log_level_name = settings.LOG_LEVEL.upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level_name)

    # Clear any existing handlers to prevent duplicate logs on re-runs or implicit configs
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # stderr, so `cat` output on stdout stays clean
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    if settings.LOG_FILE:
        try:
            file_handler = logging.FileHandler(settings.LOG_FILE)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
        except IOError as e:
            root_logger.error(f"Failed to set up file logging to {settings.LOG_FILE}: {e}")

    # Reducing "noise" from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("fsspec").setLevel(logging.WARNING)


def parse_location(value: str) -> Tuple[str, str]:
    """
    Splits ``scheme:path`` into its parts. A value without a known scheme is a
    local path; relative local paths are made absolute.
    """
    scheme, sep, rest = value.partition(":")
    if sep and scheme in SCHEMES:
        path = rest or "/"
    else:
        scheme, path = "local", value
    if scheme == "local":
        path = os.path.abspath(path).replace(os.sep, "/")
    elif not path.startswith("/"):
        path = "/" + path
    return scheme, path


class Backends:
    """Creates each provider on first use and closes them all at the end."""

    def __init__(self, settings, transfer_mode: Optional[str] = None):
        self.settings = settings
        self.transfer_mode = transfer_mode
        self._filesystems: Dict[str, FileSystem] = {}

    def _create_provider(self, scheme: str) -> StorageProvider:
        if scheme == "local":
            return LocalProvider()
        if scheme == "dav":
            if not self.settings.WEBDAV_URL:
                raise ValueError("WEBDAV_URL is required for dav: locations")
            return WebDAVProvider(
                self.settings.WEBDAV_URL,
                username=self.settings.WEBDAV_USERNAME,
                password=self.settings.WEBDAV_PASSWORD,
            )
        if scheme == "aliyun":
            return AliyunDriveProvider(self.settings.aliyundrive_options())
        raise ValueError(f"Unknown location scheme '{scheme}'")

    def path(self, location: str) -> Path:
        scheme, path = parse_location(location)
        fs = self._filesystems.get(scheme)
        if fs is None:
            provider = self._create_provider(scheme)
            logging.info(f"Using {provider.name} provider for '{scheme}:' locations.")
            fs = self._filesystems[scheme] = FileSystem.of(provider, transfer_mode=self.transfer_mode)
        return fs.path(path)

    async def aclose(self):
        for fs in self._filesystems.values():
            closer = getattr(fs.provider, "aclose", None)
            if closer is not None:
                await closer()
        self._filesystems.clear()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pathbridge",
        description="Copy, move and inspect files across local disk, WebDAV and AliyunDrive.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    ls = sub.add_parser("ls", help="List a directory")
    ls.add_argument("location")
    ls.add_argument("-r", "--recursive", action="store_true")

    cat = sub.add_parser("cat", help="Print a file to stdout")
    cat.add_argument("location")

    for name, help_text in (("cp", "Copy a file or directory"), ("mv", "Move a file or directory")):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("src")
        cmd.add_argument("dst")
        cmd.add_argument("--overwrite", action="store_true")
        cmd.add_argument("--stream", action="store_true", help="Stream bytes instead of buffering whole files")

    rm = sub.add_parser("rm", help="Remove a file or directory")
    rm.add_argument("location")
    rm.add_argument("-r", "--recursive", action="store_true")

    mkdir = sub.add_parser("mkdir", help="Create a directory and its parents")
    mkdir.add_argument("location")

    return parser


def _log_progress(progress):
    if progress.total:
        logging.info(f"{progress.src}: {progress.current}/{progress.total} bytes")
    else:
        logging.info(f"{progress.src}: {progress.current} bytes")


async def run(args: argparse.Namespace, backends: Backends):
    if args.command == "ls":
        for child in await backends.path(args.location).list(recursive=args.recursive):
            print(child.path)
    elif args.command == "cat":
        data = await backends.path(args.location).read_file()
        sys.stdout.buffer.write(data)
        sys.stdout.flush()
    elif args.command in ("cp", "mv"):
        src = backends.path(args.src)
        dst = backends.path(args.dst)
        transfer = "stream" if args.stream else None
        if args.command == "cp":
            await src.copy_to(dst, overwrite=args.overwrite, on_progress=_log_progress, transfer=transfer)
        else:
            await src.move_to(dst, overwrite=args.overwrite, on_progress=_log_progress, transfer=transfer)
        logging.info(f"{args.command}: {args.src} -> {args.dst} done.")
    elif args.command == "rm":
        await backends.path(args.location).remove(recursive=args.recursive, force=False)
    elif args.command == "mkdir":
        await backends.path(args.location).mkdir(recursive=True)


async def _main(args: argparse.Namespace) -> int:
    backends = Backends(get_settings())
    try:
        await run(args, backends)
    except PermanentError as e:
        logging.error(f"{args.command} failed: {e}")
        return 1
    except TransientError as e:
        logging.error(f"{args.command} failed with a temporary error, try again later: {e}")
        return 1
    except StorageError as e:
        logging.error(f"{args.command} failed: {e}")
        return 1
    finally:
        await backends.aclose()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        setup_logging()
    except ValueError as e:
        # Settings validation failed before logging could be configured
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    try:
        return asyncio.run(_main(args))
    except ValueError as e:
        logging.error(f"Configuration error: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
