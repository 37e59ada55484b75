"""
Cleanup Tracker — Deterministic disposal of items created during a request.

Items are registered as they are created and destroyed together when the
tracker is cleaned up, typically on leaving a ``with`` block.
"""
import logging
from typing import Optional

from .exceptions import StorageIOError

logger = logging.getLogger("encrypted_upload")


class CleanupTracker:
    """Collects items and destroys them all on ``cleanup()``."""

    def __init__(self):
        self._items: list = []

    def __len__(self) -> int:
        return len(self._items)

    def __enter__(self) -> "CleanupTracker":
        return self

    def __exit__(self, *exc_info) -> None:
        self.cleanup()

    def track(self, item) -> None:
        self._items.append(item)

    def cleanup(self) -> None:
        """Destroy every tracked item.

        Continues past items whose storage cannot be removed and re-raises
        the first such failure at the end.

        Raises:
            StorageIOError: If any temp file could not be deleted.
        """
        items, self._items = self._items, []
        first_error: Optional[StorageIOError] = None
        for item in items:
            try:
                item.destroy()
            except StorageIOError as err:
                logger.warning(
                    "Failed to clean up item field=%s: %s", item.field_name, err,
                )
                if first_error is None:
                    first_error = err
        if items:
            logger.debug("Cleaned up %d item(s)", len(items))
        if first_error is not None:
            raise first_error
