"""Encrypted Upload — Spooled upload items encrypted with ephemeral keys.

Security Note (Threat Model):
    Item content is encrypted with AES-CTR before it reaches memory buffers
    or temp files. Keys live only in process memory for the item's lifetime;
    a memory dump of the running process could still expose them.
    Ciphertext is not authenticated; it only has to round-trip within the
    process that wrote it.
"""

from .version import __version__
from .config import UploadConfig
from .exceptions import (
    UploadError,
    StorageIOError,
    KeyUnavailableError,
    CipherInitError,
    InvalidFileNameError,
    ShortReadError,
    FileWriteError,
)
from .factory import EncryptedFileItemFactory
from .item import EncryptedFileItem
from .spool import SpooledStore
from .tracker import CleanupTracker

__all__ = [
    "__version__",
    "UploadConfig",
    "EncryptedFileItemFactory",
    "EncryptedFileItem",
    "SpooledStore",
    "CleanupTracker",
    "UploadError",
    "StorageIOError",
    "KeyUnavailableError",
    "CipherInitError",
    "InvalidFileNameError",
    "ShortReadError",
    "FileWriteError",
]
