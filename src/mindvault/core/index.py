"""
Loading and saving the vault index with optimistic concurrency.

The whole index is one blob, so the index is the unit of concurrency
control: two admins touching different groups still conflict.
"""

from __future__ import annotations

import json
import logging
from typing import Callable, Optional, Tuple

from .exceptions import ConflictError, TransportError
from .models import VaultIndex
from .storage import INDEX_PATH, BlobStore

logger = logging.getLogger(__name__)

DEFAULT_COMMIT_ATTEMPTS = 3

IndexMutation = Callable[[VaultIndex], Optional[VaultIndex]]


def encode_index(index: VaultIndex) -> bytes:
    return json.dumps(index.to_dict(), indent=2, ensure_ascii=False).encode("utf-8")


def decode_index(raw: bytes) -> VaultIndex:
    try:
        data = json.loads(raw.decode("utf-8"))
        return VaultIndex.from_dict(data)
    except (UnicodeDecodeError, ValueError, KeyError, TypeError, AttributeError) as exc:
        raise TransportError(f"stored index is not a valid vault index: {exc}") from exc


class IndexCoordinator:
    """Read-modify-write access to the index blob of one store."""

    def __init__(
        self,
        store: BlobStore,
        path: str = INDEX_PATH,
        max_attempts: int = DEFAULT_COMMIT_ATTEMPTS,
    ):
        self.store = store
        self.path = path
        self.max_attempts = max(1, max_attempts)
        # True when the last load found no index blob at all
        self.uninitialized = False

    def _fetch(self) -> Tuple[VaultIndex, Optional[str]]:
        record = self.store.get_blob(self.path)
        if record is None:
            # No index blob is taken to mean an empty vault; the rest of the
            # store is not inspected.
            self.uninitialized = True
            return VaultIndex(), None
        self.uninitialized = False
        return decode_index(record.content), record.version_tag

    def load(self) -> VaultIndex:
        """Fetch the index; a missing blob yields an empty ``2.0`` index."""
        index, _ = self._fetch()
        return index

    def initialize(self, message: str = "Initialize vault index") -> bool:
        """
        Write the empty bootstrap index, but only if no index exists yet.

        Returns False when another writer already created one; the existing
        index is never replaced.
        """
        try:
            self.store.put_blob(self.path, encode_index(VaultIndex()), None, message)
        except ConflictError:
            logger.info("vault index already initialized by another writer")
            self.uninitialized = False
            return False
        self.uninitialized = False
        return True

    def commit(self, mutate: IndexMutation, message: str = "Update vault index") -> VaultIndex:
        """
        Apply ``mutate`` to the freshest index and write it back conditionally.

        ``mutate`` receives a private copy and returns the new index (or edits
        the copy in place and returns None). On a conflict the index is
        reloaded and ``mutate`` re-applied, up to ``max_attempts`` times.
        """
        for attempt in range(1, self.max_attempts + 1):
            current, tag = self._fetch()
            working = current.copy()
            updated = mutate(working)
            if updated is None:
                updated = working
            try:
                self.store.put_blob(self.path, encode_index(updated), tag, message)
            except ConflictError:
                logger.warning(
                    "index write conflicted (attempt %d/%d)", attempt, self.max_attempts
                )
                continue
            self.uninitialized = False
            return updated
        raise ConflictError(
            f"index changed concurrently; gave up after {self.max_attempts} attempts"
        )
