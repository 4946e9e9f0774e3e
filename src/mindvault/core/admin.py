"""
Admin mutations: groups and items.

Every operation takes the live ``VaultSession`` explicitly. Without an admin
credential or a store handle the operations are silent no-ops returning
``None``; holding the credential is the authorization. Before each mutation
the credential is checked again against the store (unless the session opts
out with ``revalidate_credential=False``).

Failures never escape: they are logged and routed to ``session.errors``,
and the operation returns ``None``.

Each mutation is a read-modify-write of the whole index through
:meth:`IndexCoordinator.commit`. Item mutations re-open the group's current
ciphertext with the cached key on every attempt, so an item added by another
admin in the meantime survives the retry instead of being overwritten.
"""

from __future__ import annotations

import functools
import logging
from typing import Callable, Iterable, List, Optional

from mindvault.security.crypto import (
    b64encode,
    decrypt_item_list,
    encrypt_file,
    encrypt_item_list,
)
from mindvault.security.kdf import derive_key, generate_salt
from mindvault.security.session import StoreFactory, VaultSession

from .exceptions import (
    AuthenticationError,
    GroupLockedError,
    InvalidItemError,
    NotFoundError,
    VaultError,
)
from .models import (
    DecryptedGroup,
    FileUpload,
    Group,
    GroupItem,
    ItemDraft,
    ItemType,
    VaultIndex,
    new_id,
    now_ms,
)
from .storage import FILES_PREFIX, file_blob_path

logger = logging.getLogger(__name__)


def admin_operation(context: str):
    """Gate a mutation on admin rights and route its failures to the error channel."""

    def decorator(func: Callable):
        @functools.wraps(func)
        def wrapper(session: VaultSession, *args, **kwargs):
            if not session.is_admin or session.store is None:
                logger.debug("%s skipped: no admin credential", func.__name__)
                return None
            try:
                if session.revalidate_credential and not session.store.validate_credential():
                    session.revoke_admin()
                    raise AuthenticationError("Admin token is no longer valid")
                return func(session, *args, **kwargs)
            except VaultError as exc:
                session.errors.report(exc, context)
                return None

        return wrapper

    return decorator


def authenticate(session: VaultSession, token: str, store_factory: StoreFactory) -> bool:
    """
    Validate ``token`` with one read against the store and grant admin rights.

    The first successful authentication against an uninitialized vault also
    creates the empty bootstrap index. The write is create-only: an index that
    appeared since this session loaded is kept and reloaded.
    """
    token = (token or "").strip()
    if not token:
        session.errors.report(AuthenticationError("Please enter an admin token"))
        return False
    try:
        store = store_factory(token)
        if not store.validate_credential():
            raise AuthenticationError("Invalid token or insufficient permissions")
        session.grant_admin(store, token)
        logger.info("admin credential accepted")
        if session.index_uninitialized:
            if session.coordinator().initialize("Initialize vault index"):
                session.index_uninitialized = False
            else:
                # someone else bootstrapped meanwhile; pick up their index
                session.load_index()
    except VaultError as exc:
        session.errors.report(exc, "Authentication failed")
        return False
    return True


def _commit(session: VaultSession, mutate: Callable[[VaultIndex], Optional[VaultIndex]], message: str) -> VaultIndex:
    index = session.coordinator().commit(mutate, message)
    session.index = index
    session.index_uninitialized = False
    return index


def _delete_blobs(session: VaultSession, paths: Iterable[str]) -> List[str]:
    # Runs after the index commit; a failure here leaves an orphan for
    # collect_garbage, it never undoes the commit.
    deleted = []
    for path in paths:
        try:
            record = session.store.get_blob(path)
            if record is None:
                continue
            session.store.delete_blob(path, record.version_tag, f"Delete {path}")
            deleted.append(path)
        except VaultError as exc:
            session.errors.report(exc, f"Failed to delete {path}")
    return deleted


def _require_unlocked(session: VaultSession, group_id: str, action: str) -> DecryptedGroup:
    group = session.get_decrypted(group_id)
    if group is None:
        raise GroupLockedError(f"Group must be unlocked to {action}")
    return group


def _rewrite_items(
    session: VaultSession,
    group: DecryptedGroup,
    change: Callable[[List[GroupItem]], List[GroupItem]],
    message: str,
) -> List[GroupItem]:
    """Re-seal ``group`` with ``change`` applied to its current item list."""
    committed: List[GroupItem] = []

    def mutate(index: VaultIndex) -> VaultIndex:
        stored = index.get_group(group.id)
        if stored is None:
            raise NotFoundError(f"Group {group.name!r} no longer exists")
        current = [
            GroupItem.from_dict(d)
            for d in decrypt_item_list(stored.iv, stored.ciphertext, group.key)
        ]
        items = change(current)
        stored.iv, stored.ciphertext = encrypt_item_list([i.to_dict() for i in items], group.key)
        stored.modified = now_ms()
        committed[:] = items
        return index

    _commit(session, mutate, message)
    session.cache_group(DecryptedGroup(id=group.id, name=group.name, items=committed, key=group.key))
    return committed


@admin_operation("Failed to create group")
def create_group(session: VaultSession, name: str, passphrase: str) -> Group:
    """Create an empty group sealed with a key derived from ``passphrase``."""
    name = (name or "").strip()
    if not name:
        raise VaultError("Group name must not be empty")
    if not passphrase:
        raise VaultError("Passphrase must not be empty")

    salt = b64encode(generate_salt())
    key = derive_key(passphrase, salt)
    iv, ciphertext = encrypt_item_list([], key)
    ts = now_ms()
    group = Group(id=new_id(), name=name, salt=salt, iv=iv, ciphertext=ciphertext, created=ts, modified=ts)

    def mutate(index: VaultIndex) -> VaultIndex:
        index.groups.append(group)
        return index

    _commit(session, mutate, f"Create group {name}")
    logger.info("created group %s", group.id)
    return group


@admin_operation("Failed to delete group")
def delete_group(session: VaultSession, group_id: str) -> bool:
    """Drop a group from the index, then remove the file blobs it referenced."""
    cached = session.get_decrypted(group_id)

    def mutate(index: VaultIndex) -> VaultIndex:
        if index.get_group(group_id) is None:
            raise NotFoundError(f"Group {group_id} not found")
        index.groups = [g for g in index.groups if g.id != group_id]
        return index

    _commit(session, mutate, "Delete group")
    session.drop_group(group_id)
    logger.info("deleted group %s", group_id)
    if cached is not None:
        # a locked group's items are unknown; its blobs wait for collect_garbage
        _delete_blobs(session, [i.path for i in cached.items if i.path])
    return True


@admin_operation("Failed to add item")
def add_item(
    session: VaultSession,
    group_id: str,
    draft: ItemDraft,
    upload: Optional[FileUpload] = None,
) -> GroupItem:
    """
    Add an item to an unlocked group.

    File bytes are sealed under the group key and uploaded to
    ``files/<item-id>.enc`` before the index is touched.
    """
    group = _require_unlocked(session, group_id, "add items")
    if (draft.type is ItemType.FILE) != (upload is not None):
        raise InvalidItemError("File data is required for file items and only for them")

    item_id = new_id()
    if upload is not None:
        item = draft.build(
            item_id,
            path=file_blob_path(item_id),
            size=len(upload.data),
            mime_type=upload.mime_type,
        )
        blob = encrypt_file(upload.data, group.key, upload.filename, item.mime_type or upload.mime_type)
        session.store.put_blob(item.path, blob, None, f"Add file {upload.filename}")
    else:
        item = draft.build(item_id)

    try:
        _rewrite_items(session, group, lambda items: items + [item], f"Add item to {group.name}")
    except VaultError:
        if item.path:
            _delete_blobs(session, [item.path])
        raise
    logger.info("added %s item %s to group %s", item.type.value, item.id, group_id)
    return item


@admin_operation("Failed to delete item")
def delete_item(session: VaultSession, group_id: str, item_id: str) -> bool:
    """Remove an item from an unlocked group, then delete its file blob."""
    group = _require_unlocked(session, group_id, "delete items")
    target = group.get_item(item_id)
    if target is None:
        raise NotFoundError(f"Item {item_id} not found")

    _rewrite_items(
        session,
        group,
        lambda items: [i for i in items if i.id != item_id],
        f"Delete item from {group.name}",
    )
    logger.info("deleted item %s from group %s", item_id, group_id)
    if target.path:
        _delete_blobs(session, [target.path])
    return True


@admin_operation("Failed to collect garbage")
def collect_garbage(session: VaultSession) -> List[str]:
    """
    Delete file blobs that no group references any more.

    Item lists are encrypted, so every group must be unlocked for the set of
    referenced blobs to be known.
    """
    index = session.load_index()
    referenced = set()
    locked = []
    for stored in index.groups:
        cached = session.get_decrypted(stored.id)
        if cached is None:
            locked.append(stored.name)
            continue
        for data in decrypt_item_list(stored.iv, stored.ciphertext, cached.key):
            if data.get("path"):
                referenced.add(data["path"])
    if locked:
        raise GroupLockedError(f"Unlock every group first (locked: {', '.join(locked)})")

    orphans = [p for p in session.store.list_blobs(FILES_PREFIX) if p not in referenced]
    deleted = _delete_blobs(session, orphans)
    logger.info("garbage collection removed %d blob(s)", len(deleted))
    return deleted
