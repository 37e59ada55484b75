"""
Upload Crypto Core — Ephemeral keys, IVs and streaming AES-CTR wrappers.

Every item owns one random AES key for its lifetime. Each write session
draws a fresh IV which is stored in clear ahead of the ciphertext:

    [iv 16B][AES-CTR ciphertext]

CTR gives keystream semantics, so ciphertext length equals plaintext
length and no padding is needed.

Security Note:
    Never log keys, IVs, plaintext or ciphertext values.
"""
import io
import os
import secrets
import logging
from typing import BinaryIO, Optional

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .exceptions import (
    CipherInitError,
    KeyUnavailableError,
    ShortReadError,
    StorageIOError,
)

logger = logging.getLogger("encrypted_upload")

IV_SIZE = algorithms.AES.block_size // 8  # 16 bytes
DEFAULT_KEY_SIZE = 128  # bits
KEY_SIZES = (256, 192, 128)


# ---------------------------------------------------------------------------
# Keys and IVs
# ---------------------------------------------------------------------------

def probe_key_size() -> int:
    """Return the largest AES key size (bits) usable for CTR on this backend.

    Meant to be called once while building configuration, not per item.
    """
    iv = bytes(IV_SIZE)
    for bits in KEY_SIZES:
        try:
            Cipher(algorithms.AES(bytes(bits // 8)), modes.CTR(iv)).encryptor()
        except (UnsupportedAlgorithm, ValueError):
            logger.debug("AES-%d unavailable, trying a smaller key", bits)
            continue
        return bits
    raise KeyUnavailableError("No usable AES key size on this platform")


def generate_key(bits: int = DEFAULT_KEY_SIZE) -> bytearray:
    """Generate a random AES key.

    The key is returned as a mutable buffer so it can be zeroized with
    :func:`zeroize` once the owning item is destroyed.

    Raises:
        KeyUnavailableError: If the size is invalid or the random source fails.
    """
    if bits not in KEY_SIZES:
        raise KeyUnavailableError(f"Unsupported key size: {bits} bits")
    try:
        return bytearray(secrets.token_bytes(bits // 8))
    except (OSError, NotImplementedError) as err:
        raise KeyUnavailableError("Random source unavailable") from err


def generate_iv() -> bytes:
    """Return a fresh random IV, one per write session."""
    return os.urandom(IV_SIZE)


def zeroize(buffer: bytearray) -> None:
    """Overwrite key material in place."""
    for i in range(len(buffer)):
        buffer[i] = 0


def new_cipher(key, iv: bytes) -> Cipher:
    """Build an AES-CTR cipher for ``key`` and ``iv``.

    Raises:
        CipherInitError: If the key or IV is rejected.
    """
    try:
        return Cipher(algorithms.AES(bytes(key)), modes.CTR(iv))
    except (UnsupportedAlgorithm, ValueError, TypeError) as err:
        raise CipherInitError("Cipher could not be initialised") from err


# ---------------------------------------------------------------------------
# Streams
# ---------------------------------------------------------------------------

class EncryptingWriter(io.RawIOBase):
    """Write sink that encrypts everything before forwarding it.

    The IV is written to ``sink`` in clear as soon as the writer is created.
    Closing the writer closes the sink; so does garbage collection of an
    unclosed writer, as for any ``io`` object. Once forwarding to the sink
    fails the keystream is out of step with the stored bytes, so every
    later write raises ``StorageIOError``.
    """

    def __init__(self, sink: BinaryIO, key, iv: Optional[bytes] = None):
        super().__init__()
        self._sink = sink
        self._encryptor = None
        self._failed = False
        iv = iv if iv is not None else generate_iv()
        self._encryptor = new_cipher(key, iv).encryptor()
        self._sink.write(iv)

    def writable(self) -> bool:
        return True

    def write(self, b) -> int:
        if self.closed:
            raise ValueError("write to closed file")
        if self._failed:
            raise StorageIOError("Storage unavailable: write session failed")
        data = memoryview(b).cast("B")
        try:
            self._sink.write(self._encryptor.update(data))
        except BaseException:
            self._failed = True
            raise
        return data.nbytes

    def close(self) -> None:
        if self.closed:
            return
        try:
            if self._encryptor is not None:
                tail = self._encryptor.finalize()
                if tail:
                    self._sink.write(tail)
            self._sink.close()
        finally:
            super().close()


class DecryptingReader(io.RawIOBase):
    """Readable stream that decrypts ``source`` lazily as it is consumed.

    Reads the leading IV from ``source`` on construction. Closing the reader
    closes the source.

    Raises:
        ShortReadError: If ``source`` holds fewer than ``IV_SIZE`` bytes.
    """

    def __init__(self, source: BinaryIO, key):
        super().__init__()
        self._source = source
        iv = self._read_iv(source)
        self._decryptor = new_cipher(key, iv).decryptor()

    @staticmethod
    def _read_iv(source: BinaryIO) -> bytes:
        iv = b""
        while len(iv) < IV_SIZE:
            chunk = source.read(IV_SIZE - len(iv))
            if not chunk:
                source.close()
                raise ShortReadError(IV_SIZE, len(iv))
            iv += chunk
        return iv

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        if self.closed:
            raise ValueError("read from closed file")
        target = memoryview(b).cast("B")
        chunk = self._source.read(len(target))
        if not chunk:
            return 0
        plain = self._decryptor.update(chunk)
        target[:len(plain)] = plain
        return len(plain)

    def close(self) -> None:
        if self.closed:
            return
        try:
            self._source.close()
        finally:
            super().close()
