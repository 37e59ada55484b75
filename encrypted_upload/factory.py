"""
Item Factory — Builds encrypted items with shared threshold and repository.
"""
import logging
from typing import Optional

from .config import DEFAULT_SIZE_THRESHOLD, UploadConfig
from .crypto import probe_key_size
from .item import EncryptedFileItem
from .tracker import CleanupTracker

logger = logging.getLogger("encrypted_upload")


class EncryptedFileItemFactory:
    """Creates :class:`EncryptedFileItem` instances.

    The AES key size is probed once here, unless given, and handed to every
    item so items never consult global state.
    """

    def __init__(
        self,
        size_threshold: int = DEFAULT_SIZE_THRESHOLD,
        repository=None,
        default_charset: Optional[str] = None,
        key_size: Optional[int] = None,
        tracker: Optional[CleanupTracker] = None,
    ):
        self.size_threshold = size_threshold
        self.repository = repository
        self.default_charset = default_charset
        self._key_size = key_size if key_size is not None else probe_key_size()
        self._tracker = tracker

    @classmethod
    def from_config(
        cls,
        config: UploadConfig,
        tracker: Optional[CleanupTracker] = None,
    ) -> "EncryptedFileItemFactory":
        return cls(
            size_threshold=config.size_threshold,
            repository=config.repository,
            default_charset=config.default_charset,
            key_size=config.resolved_key_size(),
            tracker=tracker,
        )

    @property
    def key_size(self) -> int:
        return self._key_size

    @property
    def tracker(self) -> Optional[CleanupTracker]:
        return self._tracker

    def create_item(
        self,
        field_name: Optional[str],
        content_type: Optional[str],
        is_form_field: bool,
        file_name: Optional[str],
    ) -> EncryptedFileItem:
        """Create a new item, registering it with the tracker if one is set."""
        item = EncryptedFileItem(
            field_name,
            content_type,
            is_form_field,
            file_name,
            self.size_threshold,
            repository=self.repository,
            default_charset=self.default_charset,
            key_size=self._key_size,
        )
        if self._tracker is not None:
            self._tracker.track(item)
        logger.debug(
            "Created item field=%s form_field=%s", field_name, is_form_field,
        )
        return item
