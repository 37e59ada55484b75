"""
Upload Errors — Failure kinds raised by spooled, encrypted upload items.

Messages stay generic ("storage unavailable", "corrupted data"); they never
carry key material, IVs or payload bytes.
"""
from typing import Optional


class UploadError(Exception):
    """Base exception for encrypted upload failures."""


class StorageIOError(UploadError, OSError):
    """Temporary storage could not be created, written or read."""


class KeyUnavailableError(UploadError):
    """A random encryption key could not be generated."""


class CipherInitError(UploadError):
    """The cipher rejected the key or IV it was initialised with."""


class InvalidFileNameError(UploadError, ValueError):
    """A client-supplied file name contains a NUL character.

    The raw name is kept in ``name`` for callers that still want to use it.
    """

    def __init__(self, name: str, message: Optional[str] = None):
        self.name = name
        if message is None:
            message = (
                "Invalid file name: " + name.replace("\0", "\\0")
            )
        super().__init__(message)


class ShortReadError(StorageIOError):
    """Fewer bytes were available than the stored size implies."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Corrupted data: expected {expected} bytes, got {actual}"
        )


class FileWriteError(StorageIOError):
    """An item could not be written out to its destination file."""

    def __init__(self, destination, message: Optional[str] = None):
        self.destination = destination
        super().__init__(
            message or f"Cannot write uploaded file to {destination}"
        )
