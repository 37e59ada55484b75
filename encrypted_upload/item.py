"""
EncryptedFileItem — One uploaded form field, encrypted wherever it is spooled.

Provides the item contract consumed by multipart decoders:
- ``get_output_stream()`` — open a write session (fresh IV, encrypting sink)
- ``get_input_stream()`` / ``get()`` / ``get_string()`` — read back plaintext
- ``write(destination)`` — copy the decrypted content to a file
- ``delete()`` / ``destroy()`` — drop storage, then the key as well

Security Note:
    The backing bytes (memory buffer or temp file) are always ciphertext.
    There is deliberately no accessor for them or for the temp file path;
    reading them directly would only yield scrambled data.
"""
import io
import locale
import shutil
import logging
from typing import BinaryIO, Optional

from aiohttp.helpers import parse_mimetype
from multidict import CIMultiDict

from .crypto import (
    DEFAULT_KEY_SIZE,
    IV_SIZE,
    DecryptingReader,
    EncryptingWriter,
    generate_key,
    zeroize,
)
from .exceptions import (
    FileWriteError,
    InvalidFileNameError,
    KeyUnavailableError,
    ShortReadError,
    UploadError,
)
from .spool import SpooledStore

logger = logging.getLogger("encrypted_upload")

# Media subtypes of "text" default to ISO-8859-1 when received via HTTP.
DEFAULT_CHARSET = "ISO-8859-1"


class EncryptedFileItem:
    """A form item whose content is encrypted with a key owned by the item.

    The key is generated on construction and never leaves the instance.
    ``size_threshold`` is measured against plaintext; the spool threshold
    adds room for the IV that prefixes every stored session.

    Args:
        field_name: Name of the form field.
        content_type: Content type sent by the client, or ``None``.
        is_form_field: Whether this is a plain form field rather than a file.
        file_name: Original file name on the client, or ``None``.
        size_threshold: Plaintext bytes kept in memory before spilling.
        repository: Directory for temp files; ``None`` uses the platform default.
        default_charset: Charset for ``get_string()`` overriding the content type.
        key_size: AES key size in bits.

    Raises:
        ValueError: If ``size_threshold`` is negative.
        KeyUnavailableError: If no key can be generated.
    """

    def __init__(
        self,
        field_name: Optional[str],
        content_type: Optional[str],
        is_form_field: bool,
        file_name: Optional[str],
        size_threshold: int,
        repository=None,
        default_charset: Optional[str] = None,
        key_size: int = DEFAULT_KEY_SIZE,
    ):
        if size_threshold < 0:
            raise ValueError("size_threshold must not be negative")
        self._field_name = field_name
        self._content_type = content_type
        self._is_form_field = is_form_field
        self._file_name = file_name
        self._repository = repository
        self._headers = CIMultiDict()
        self._key = generate_key(key_size)
        self._destroyed = False
        self._store: Optional[SpooledStore] = None
        self._threshold = size_threshold + IV_SIZE
        self._default_charset = (
            default_charset or self.charset or DEFAULT_CHARSET
        )

    def __repr__(self) -> str:
        return (
            f"<EncryptedFileItem name={self._file_name!r}, size={self.size} bytes, "
            f"isFormField={self._is_form_field}, FieldName={self._field_name!r}>"
        )

    def __enter__(self) -> "EncryptedFileItem":
        return self

    def __exit__(self, *exc_info) -> None:
        self.destroy()

    # ------------------------------------------------------------------
    # Field accessors
    # ------------------------------------------------------------------

    @property
    def field_name(self) -> Optional[str]:
        return self._field_name

    @field_name.setter
    def field_name(self, value: Optional[str]) -> None:
        self._field_name = value

    @property
    def content_type(self) -> Optional[str]:
        return self._content_type

    @property
    def is_form_field(self) -> bool:
        return self._is_form_field

    @is_form_field.setter
    def is_form_field(self, value: bool) -> None:
        self._is_form_field = value

    @property
    def name(self) -> Optional[str]:
        """Original file name on the client.

        Raises:
            InvalidFileNameError: If the name contains a NUL character.
        """
        if self._file_name is not None and "\0" in self._file_name:
            raise InvalidFileNameError(self._file_name)
        return self._file_name

    @property
    def headers(self):
        return self._headers

    @headers.setter
    def headers(self, value) -> None:
        self._headers = CIMultiDict(value or {})

    @property
    def charset(self) -> Optional[str]:
        """Charset parameter of the content type, if any."""
        return parse_mimetype(self._content_type).parameters.get("charset")

    @property
    def default_charset(self) -> str:
        return self._default_charset

    @property
    def size(self) -> int:
        """Plaintext bytes stored; zero before the first write."""
        if self._store is None:
            return 0
        return max(self._store.size - IV_SIZE, 0)

    def is_in_memory(self) -> bool:
        if self._store is None:
            return True
        return self._store.in_memory

    # ------------------------------------------------------------------
    # Streams
    # ------------------------------------------------------------------

    def _check_key(self) -> None:
        if self._destroyed:
            raise KeyUnavailableError("Item was destroyed")

    def get_output_stream(self) -> EncryptingWriter:
        """Start a write session and return its encrypting sink.

        A new session replaces whatever a previous session stored.
        """
        self._check_key()
        if self._store is not None:
            self._store.discard()
        self._store = SpooledStore(self._threshold, self._repository)
        logger.debug("Opened write session for field=%s", self._field_name)
        return EncryptingWriter(self._store, self._key)

    def get_input_stream(self) -> BinaryIO:
        """Return a stream yielding the plaintext from the start.

        Raises:
            StorageIOError: If storage was deleted or cannot be read.
            ShortReadError: If the stored IV is truncated.
        """
        self._check_key()
        if self._store is None:
            return io.BytesIO()
        return io.BufferedReader(
            DecryptingReader(self._store.read_back(), self._key)
        )

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def get(self) -> bytes:
        """Return the whole decrypted content.

        Failures propagate rather than being turned into an empty result.

        Raises:
            StorageIOError: If storage was deleted or cannot be read.
            ShortReadError: If fewer bytes decrypt than ``size`` reports.
        """
        expected = self.size
        with self.get_input_stream() as stream:
            data = stream.read(expected)
        if len(data) < expected:
            raise ShortReadError(expected, len(data))
        return data

    def get_string(self, charset: Optional[str] = None) -> str:
        """Return the content decoded with ``charset`` or the default charset.

        Unknown charsets fall back to the platform's preferred encoding.
        """
        data = self.get()
        try:
            return data.decode(charset or self._default_charset, errors="replace")
        except LookupError:
            return data.decode(locale.getpreferredencoding(False), errors="replace")

    def write(self, destination) -> None:
        """Decrypt the content into ``destination``.

        Raises:
            FileWriteError: If the content cannot be read or the file written.
        """
        try:
            with self.get_input_stream() as source, open(destination, "wb") as output:
                shutil.copyfileobj(source, output)
        except (OSError, UploadError) as err:
            raise FileWriteError(destination) from err

    # ------------------------------------------------------------------
    # Disposal
    # ------------------------------------------------------------------

    def delete(self) -> None:
        """Delete stored content and its temp file. Idempotent."""
        if self._store is not None:
            self._store.discard()

    def destroy(self) -> None:
        """Delete stored content and zeroize the key."""
        try:
            self.delete()
        finally:
            if not self._destroyed:
                zeroize(self._key)
                self._destroyed = True
