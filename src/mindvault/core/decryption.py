"""
Unlocking groups with a single passphrase.

Every group gets a small state machine::

    pending -> decrypting -> success
                          -> failed -> pending (next batch)

``success`` is terminal: once a group opened in a session, later passphrase
attempts never touch it again. Batches run one at a time on a single worker
so there is never more than one key derivation in flight.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from typing import Callable, Dict, Optional

from mindvault.security.crypto import try_decrypt_group

from .exceptions import InvalidItemError, InvalidTransitionError
from .models import DecryptedGroup, GroupItem

logger = logging.getLogger(__name__)


class UnlockState(Enum):
    PENDING = "pending"
    DECRYPTING = "decrypting"
    SUCCESS = "success"
    FAILED = "failed"


_TRANSITIONS = {
    UnlockState.PENDING: {UnlockState.DECRYPTING},
    UnlockState.DECRYPTING: {UnlockState.SUCCESS, UnlockState.FAILED},
    UnlockState.FAILED: {UnlockState.PENDING},
    UnlockState.SUCCESS: set(),
}


class GroupUnlockMachine:
    """Unlock state of one group."""

    def __init__(self, group_id: str, state: UnlockState = UnlockState.PENDING):
        self.group_id = group_id
        self.state = state

    def transition(self, target: UnlockState) -> None:
        if target is self.state and target is UnlockState.PENDING:
            return
        if target not in _TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"group {self.group_id}: {self.state.value} -> {target.value} not allowed"
            )
        self.state = target

    @property
    def unlocked(self) -> bool:
        return self.state is UnlockState.SUCCESS

    def __repr__(self):
        return f"GroupUnlockMachine({self.group_id!r}, {self.state.value})"


class NoDelay:
    """Pacing policy: attempt the next group immediately."""

    def __call__(self, group_id: str) -> None:
        return None


class FixedDelay:
    """Pacing policy: wait a fixed time before each attempt (UI breathing room)."""

    def __init__(self, seconds: float, sleep: Callable[[float], None] = time.sleep):
        self.seconds = seconds
        self._sleep = sleep

    def __call__(self, group_id: str) -> None:
        if self.seconds > 0:
            self._sleep(self.seconds)


StateListener = Callable[[str, UnlockState], None]


class DecryptionOrchestrator:
    """Runs unlock batches over all not-yet-unlocked groups of a session."""

    def __init__(
        self,
        pacing: Optional[Callable[[str], None]] = None,
        on_change: Optional[StateListener] = None,
    ):
        self.pacing = pacing or NoDelay()
        self.on_change = on_change
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="unlock")
        self._batch_lock = threading.Lock()

    def _set_state(self, machine: GroupUnlockMachine, state: UnlockState) -> None:
        machine.transition(state)
        if self.on_change is not None:
            self.on_change(machine.group_id, state)

    def unlock(self, session, passphrase: Optional[str] = None) -> Dict[str, UnlockState]:
        """
        Try ``passphrase`` (or the session's passphrase field) against every
        group not yet unlocked, strictly one after another in index order.

        Wrong passphrases are not errors: they only leave groups ``failed``.
        The passphrase field is cleared afterwards whatever the outcome.
        """
        with self._batch_lock:
            candidate = session.passphrase if passphrase is None else passphrase
            try:
                index = session.require_index()
                pending = []
                for group in index.groups:
                    machine = session.machine(group.id)
                    if machine.unlocked:
                        continue
                    self._set_state(machine, UnlockState.PENDING)
                    pending.append((group, machine))

                for group, machine in pending:
                    self._set_state(machine, UnlockState.DECRYPTING)
                    try:
                        self.pacing(group.id)
                        result = try_decrypt_group(
                            candidate, group.salt, group.iv, group.ciphertext
                        )
                    except BaseException:
                        machine.transition(UnlockState.FAILED)
                        raise
                    items = _parse_items(group.id, result.items) if result.success else None
                    if items is None:
                        self._set_state(machine, UnlockState.FAILED)
                        continue
                    session.cache_group(
                        DecryptedGroup(id=group.id, name=group.name, items=items, key=result.key)
                    )
                    self._set_state(machine, UnlockState.SUCCESS)
                    logger.info("unlocked group %s", group.id)

                states = {group.id: session.machine(group.id).state for group in index.groups}
            finally:
                session.passphrase = ""
        failed = sum(1 for s in states.values() if s is UnlockState.FAILED)
        logger.info("unlock batch done: %d group(s), %d failed", len(states), failed)
        return states

    def submit(self, session, passphrase: Optional[str] = None) -> "Future[Dict[str, UnlockState]]":
        """Queue an unlock batch on the single worker and return its future."""
        # the field is captured now; later typing must not leak into this batch
        if passphrase is None:
            passphrase = session.passphrase
        return self._executor.submit(self.unlock, session, passphrase)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


def _parse_items(group_id: str, raw_items) -> Optional[list]:
    # An authentic payload that does not parse into items still counts as a
    # failed unlock rather than a crash.
    try:
        items = [GroupItem.from_dict(d) for d in raw_items or []]
    except (InvalidItemError, KeyError, TypeError, AttributeError):
        logger.warning("group %s decrypted to an unreadable item list", group_id)
        return None
    return items
