"""Explicit session context holding every piece of live vault state.

A ``VaultSession`` is passed into each operation instead of living in module
globals. It owns the only long-lived secrets of the system: the keys of
unlocked groups (inside ``DecryptedGroup``) and the admin credential.

``logout()`` purges decrypted groups, unlock states, the passphrase field and
the admin flag. The store handle and whatever credential it was built with
are left in place; ``forget_credential()`` drops them explicitly.
"""
from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from mindvault.core.index import DEFAULT_COMMIT_ATTEMPTS, IndexCoordinator
from mindvault.core.models import DecryptedGroup, VaultIndex
from mindvault.core.notifications import ErrorChannel
from mindvault.core.storage import BlobStore

if TYPE_CHECKING:
    from mindvault.core.decryption import GroupUnlockMachine

logger = logging.getLogger(__name__)

StoreFactory = Callable[[Optional[str]], BlobStore]


class VaultSession:
    def __init__(
        self,
        store: BlobStore,
        errors: Optional[ErrorChannel] = None,
        commit_attempts: int = DEFAULT_COMMIT_ATTEMPTS,
        revalidate_credential: bool = True,
    ):
        self.store = store
        self.errors = errors or ErrorChannel()
        self.commit_attempts = commit_attempts
        self.revalidate_credential = revalidate_credential

        self.index: Optional[VaultIndex] = None
        self.index_uninitialized = False
        self.passphrase: str = ""
        self.is_admin = False
        self.credential: Optional[str] = None

        self._decrypted: Dict[str, DecryptedGroup] = {}
        self._machines: Dict[str, "GroupUnlockMachine"] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Index access
    # ------------------------------------------------------------------

    def coordinator(self) -> IndexCoordinator:
        return IndexCoordinator(self.store, max_attempts=self.commit_attempts)

    def load_index(self) -> VaultIndex:
        """Fetch the index into the session (empty vault if absent)."""
        coordinator = self.coordinator()
        index = coordinator.load()
        with self._lock:
            self.index = index
            self.index_uninitialized = coordinator.uninitialized
            # groups that disappeared remotely are dropped from the caches
            live = {g.id for g in index.groups}
            for group_id in list(self._decrypted):
                if group_id not in live:
                    del self._decrypted[group_id]
            for group_id in list(self._machines):
                if group_id not in live:
                    del self._machines[group_id]
        logger.info("loaded vault index with %d group(s)", len(index.groups))
        return index

    def require_index(self) -> VaultIndex:
        if self.index is None:
            return self.load_index()
        return self.index

    # ------------------------------------------------------------------
    # Decrypted group cache
    # ------------------------------------------------------------------

    def cache_group(self, group: DecryptedGroup) -> None:
        with self._lock:
            self._decrypted[group.id] = group

    def get_decrypted(self, group_id: str) -> Optional[DecryptedGroup]:
        with self._lock:
            return self._decrypted.get(group_id)

    def drop_group(self, group_id: str) -> None:
        with self._lock:
            self._decrypted.pop(group_id, None)
            self._machines.pop(group_id, None)

    @property
    def decrypted_groups(self) -> List[DecryptedGroup]:
        with self._lock:
            return list(self._decrypted.values())

    # ------------------------------------------------------------------
    # Unlock state machines
    # ------------------------------------------------------------------

    def machine(self, group_id: str) -> "GroupUnlockMachine":
        from mindvault.core.decryption import GroupUnlockMachine

        with self._lock:
            machine = self._machines.get(group_id)
            if machine is None:
                machine = self._machines[group_id] = GroupUnlockMachine(group_id)
            return machine

    def unlock_states(self) -> Dict[str, Any]:
        with self._lock:
            return {gid: m.state for gid, m in self._machines.items()}

    # ------------------------------------------------------------------
    # Credential lifecycle
    # ------------------------------------------------------------------

    def grant_admin(self, store: BlobStore, credential: str) -> None:
        with self._lock:
            self.store = store
            self.credential = credential
            self.is_admin = True

    def revoke_admin(self) -> None:
        with self._lock:
            self.is_admin = False

    def logout(self) -> None:
        """Purge decrypted groups, unlock states, passphrase and admin flag."""
        with self._lock:
            self._decrypted.clear()
            self._machines.clear()
            self.passphrase = ""
            self.is_admin = False
        logger.info("session locked")

    def forget_credential(self, anonymous_store: BlobStore) -> None:
        """Drop the admin credential and fall back to ``anonymous_store``."""
        with self._lock:
            self.credential = None
            self.is_admin = False
            self.store = anonymous_store
