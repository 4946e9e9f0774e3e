"""Reading item payloads out of unlocked groups."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from mindvault.security.crypto import decrypt_file
from mindvault.security.session import VaultSession

from .exceptions import GroupLockedError, NotFoundError
from .models import GroupItem, ItemType

logger = logging.getLogger(__name__)


@dataclass
class ItemPayload:
    item: GroupItem
    data: Optional[bytes] = None
    url: Optional[str] = None
    mime_type: str = "application/octet-stream"

    @property
    def filename(self) -> str:
        return self.item.name


def open_item(session: VaultSession, group_id: str, item_id: str) -> ItemPayload:
    """
    Resolve an item to something the user can act on.

    Links come back as their URL, text items as UTF-8 bytes, and file items
    are downloaded and decrypted with the group key.
    """
    group = session.get_decrypted(group_id)
    if group is None:
        raise GroupLockedError("Group must be unlocked to open items")
    item = group.get_item(item_id)
    if item is None:
        raise NotFoundError(f"Item {item_id} not found")

    if item.type is ItemType.LINK:
        return ItemPayload(item=item, url=item.url)
    if item.type is ItemType.TEXT:
        return ItemPayload(item=item, data=(item.content or "").encode("utf-8"), mime_type="text/plain")

    record = session.store.get_blob(item.path)
    if record is None:
        raise NotFoundError("File not found")
    data, metadata = decrypt_file(record.content, group.key)
    logger.debug("decrypted %s (%d bytes)", item.path, len(data))
    mime = item.mime_type or metadata.get("type") or "application/octet-stream"
    return ItemPayload(item=item, data=data, mime_type=mime)
