"""
Spooled Store — Append-only byte sink that spills from memory to a temp file.

Bytes are buffered in memory until the next write would take the total past
``threshold``; at that moment a unique temporary file is created, the buffer
is replayed into it and every later write goes straight to disk. The switch
happens at most once per store.
"""
import io
import os
import logging
import tempfile
from dataclasses import dataclass, field
from typing import BinaryIO, Optional, Union

from .exceptions import StorageIOError

logger = logging.getLogger("encrypted_upload")

TEMP_PREFIX = "upload_"
TEMP_SUFFIX = ".tmp"


@dataclass
class InMemory:
    buffer: bytearray = field(default_factory=bytearray)


@dataclass
class OnDisk:
    handle: Optional[BinaryIO]
    path: str


@dataclass
class Discarded:
    pass


StoreState = Union[InMemory, OnDisk, Discarded]


class SpooledStore:
    """Write sink backed by memory first and a temporary file past ``threshold``.

    Args:
        threshold: Largest number of bytes kept in memory.
        directory: Where to create the temporary file; ``None`` uses the
            platform temp directory.
    """

    def __init__(self, threshold: int, directory: Optional[str] = None):
        if threshold < 0:
            raise ValueError("threshold must not be negative")
        self._threshold = threshold
        self._directory = os.fspath(directory) if directory is not None else None
        self._state: StoreState = InMemory()
        self._size = 0
        self._closed = False
        self._spilled = False
        self._failed = False

    def __repr__(self) -> str:
        return (
            f"<SpooledStore [{type(self._state).__name__}] "
            f"size={self._size} threshold={self._threshold}>"
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def threshold(self) -> int:
        return self._threshold

    @property
    def in_memory(self) -> bool:
        """False once the threshold was crossed, even after discard."""
        return not self._spilled

    @property
    def size(self) -> int:
        """Total bytes stored so far."""
        return self._size

    @property
    def path(self) -> Optional[str]:
        """Backing temp file, or ``None`` while nothing was spilled."""
        if isinstance(self._state, OnDisk):
            return self._state.path
        return None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def discarded(self) -> bool:
        return isinstance(self._state, Discarded)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def _spill(self, state: InMemory) -> OnDisk:
        """Move buffered bytes into a new temporary file."""
        try:
            fd, path = tempfile.mkstemp(
                prefix=TEMP_PREFIX, suffix=TEMP_SUFFIX, dir=self._directory,
            )
        except OSError as err:
            raise StorageIOError("Storage unavailable: cannot create temp file") from err
        handle = os.fdopen(fd, "wb")
        try:
            handle.write(state.buffer)
        except OSError as err:
            handle.close()
            os.unlink(path)
            raise StorageIOError("Storage unavailable: cannot spill to disk") from err
        logger.debug(
            "Spooled store crossed %d bytes, spilled %d bytes to disk",
            self._threshold, len(state.buffer),
        )
        return OnDisk(handle=handle, path=path)

    def write(self, data) -> int:
        """Append ``data``; returns the number of bytes written.

        A failed spill or disk write leaves the store readable but refuses
        any further writes.

        Raises:
            StorageIOError: On spill or disk write failure, or when the
                store is closed, discarded or failed earlier.
        """
        if self._closed or isinstance(self._state, Discarded):
            raise StorageIOError("Storage unavailable: store is closed")
        if self._failed:
            raise StorageIOError("Storage unavailable: earlier write failed")
        length = len(data)
        if isinstance(self._state, InMemory):
            if self._size + length > self._threshold:
                try:
                    self._state = self._spill(self._state)
                except StorageIOError:
                    self._failed = True
                    raise
                self._spilled = True
            else:
                self._state.buffer += data
                self._size += length
                return length
        try:
            self._state.handle.write(data)
        except OSError as err:
            self._failed = True
            raise StorageIOError("Storage unavailable: write failed") from err
        self._size += length
        return length

    def flush(self) -> None:
        if isinstance(self._state, OnDisk) and self._state.handle is not None:
            self._state.handle.flush()

    def close(self) -> None:
        """Finish writing. The stored bytes stay readable."""
        if self._closed:
            return
        self._closed = True
        if isinstance(self._state, OnDisk) and self._state.handle is not None:
            try:
                self._state.handle.close()
            except OSError as err:
                raise StorageIOError("Storage unavailable: close failed") from err
            finally:
                self._state.handle = None

    def __enter__(self) -> "SpooledStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Reading and disposal
    # ------------------------------------------------------------------

    def read_back(self) -> BinaryIO:
        """Open a fresh, independent reader over everything stored.

        Raises:
            StorageIOError: If the store was discarded or the file is gone.
        """
        state = self._state
        if isinstance(state, InMemory):
            return io.BytesIO(bytes(state.buffer))
        if isinstance(state, OnDisk):
            if state.handle is not None:
                state.handle.flush()
            try:
                return open(state.path, "rb")
            except OSError as err:
                raise StorageIOError("Storage unavailable: cannot read temp file") from err
        raise StorageIOError("Storage unavailable: store was discarded")

    def discard(self) -> None:
        """Drop stored bytes and delete the temp file, if any. Idempotent."""
        state = self._state
        if isinstance(state, Discarded):
            return
        self._state = Discarded()
        self._closed = True
        self._size = 0
        if isinstance(state, OnDisk):
            handle, state.handle = state.handle, None
            try:
                if handle is not None:
                    handle.close()
            except OSError as err:
                raise StorageIOError("Storage unavailable: close failed") from err
            finally:
                try:
                    os.unlink(state.path)
                except FileNotFoundError:
                    pass
                except OSError as err:
                    raise StorageIOError(
                        "Storage unavailable: cannot delete temp file"
                    ) from err
            logger.debug("Discarded spooled temp file")
