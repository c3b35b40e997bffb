"""The user's list of books marked as read.

The whole list is stored as one JSON array under a single key of a
key-value surface (see ``storage.py``). Every mutation reads the array,
changes it and writes it back, so callers must not run two mutations at
once against the same surface.
"""
import enum
import json
import logging
from typing import List

from bookscout.models import ReadListEntry
from bookscout.storage import StorageError

logger = logging.getLogger(__name__)

READLIST_KEY = "readBooks"
SAVE_FAILED = "Could not save. Please try again."
LOAD_FAILED = "Could not load your read list."


class ReadListError(RuntimeError):
    """A read-list change could not be persisted; nothing was applied."""


class AddResult(enum.Enum):
    ADDED = "added"
    ALREADY_PRESENT = "already_present"


class ReadListStore:
    """Deduplicated read list over an injected key-value surface."""

    def __init__(self, storage, key: str = READLIST_KEY):
        """
        Args:
            storage: Surface with ``get_item``/``set_item``/``remove_item``
            key: Logical key holding the serialized list
        """
        self.storage = storage
        self.key = key

    def _load(self) -> List[ReadListEntry]:
        try:
            raw = self.storage.get_item(self.key)
            if not raw:
                return []
            data = json.loads(raw)
            if not isinstance(data, list):
                raise ValueError("read list blob is not an array")
            return [ReadListEntry.from_dict(item) for item in data]
        except (StorageError, ValueError, TypeError, KeyError) as e:
            logger.error(f"Failed to load read list: {e}")
            raise ReadListError(LOAD_FAILED) from e

    def _save(self, entries: List[ReadListEntry]) -> None:
        try:
            blob = json.dumps([entry.to_dict() for entry in entries])
            self.storage.set_item(self.key, blob)
        except (StorageError, TypeError, ValueError) as e:
            logger.error(f"Failed to save read list: {e}")
            raise ReadListError(SAVE_FAILED) from e

    def list(self) -> List[ReadListEntry]:
        """
        Entries, most recently read first.

        Sorted fresh on every call. An unreadable blob is logged and shows
        as an empty list.
        """
        try:
            entries = self._load()
        except ReadListError:
            return []
        return sorted(entries, key=lambda entry: entry.read_at_datetime, reverse=True)

    def contains(self, book_id: str) -> bool:
        return any(entry.id == book_id for entry in self.list())

    def add(self, entry: ReadListEntry) -> AddResult:
        """
        Mark a book as read.

        Returns:
            ALREADY_PRESENT without writing anything if the id is already
            listed (its original ``read_at`` is kept), ADDED otherwise

        Raises:
            ReadListError: The list could not be loaded or saved
        """
        entries = self._load()
        if any(existing.id == entry.id for existing in entries):
            logger.info(f"{entry.id} is already in the read list")
            return AddResult.ALREADY_PRESENT

        self._save(entries + [entry])
        logger.info(f"Added {entry.id} to the read list")
        return AddResult.ADDED

    def remove(self, book_id: str) -> None:
        """Remove one entry; removing an absent id does nothing."""
        entries = self._load()
        remaining = [entry for entry in entries if entry.id != book_id]
        if len(remaining) == len(entries):
            return
        self._save(remaining)
        logger.info(f"Removed {book_id} from the read list")

    def clear(self) -> None:
        """Remove every entry."""
        try:
            self.storage.remove_item(self.key)
        except StorageError as e:
            logger.error(f"Failed to clear read list: {e}")
            raise ReadListError(SAVE_FAILED) from e
        logger.info("Cleared the read list")
