# exceptions.py


class StorageError(Exception):
    """Base class for every error raised by pathbridge."""
    pass


class PermanentError(StorageError):
    """An error that will not be fixed by a retry (e.g., a missing path)."""
    pass


class TransientError(StorageError):
    """A temporary error (e.g., a network failure) that might resolve on a retry."""
    pass


class RequestFailedError(TransientError):
    """A non-2xx HTTP response without a parseable error envelope."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ApiError(StorageError):
    """An error envelope ``{code, message}`` returned by the drive API."""

    def __init__(self, code: str | None = None, message: str | None = None):
        if code:
            text = f"{code}:{message or ''}"
        else:
            text = message or "AliyunDrive error"
        super().__init__(text)
        self.code = code
        self.message = message


class ConsistencyError(PermanentError):
    """A structurally bad response, e.g. a rotated refresh token for another account."""
    pass


class NotFoundError(PermanentError, FileNotFoundError):
    pass


class AlreadyExistsError(PermanentError, FileExistsError):
    pass


class NotDirectoryError(PermanentError, NotADirectoryError):
    pass


class NotFileError(PermanentError, IsADirectoryError):
    pass


class DirectoryNotEmptyError(PermanentError, OSError):
    pass


class UnsupportedTypeError(PermanentError):
    """Raised for objects that are neither files nor directories."""
    pass
