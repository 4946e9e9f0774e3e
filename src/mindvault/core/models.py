"""
Data models for the vault index, groups and items
"""

from __future__ import annotations

import copy
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .exceptions import InvalidItemError

INDEX_VERSION = "2.0"


def now_ms() -> int:
    # Epoch milliseconds, the timestamp unit of the persisted schema
    return int(time.time() * 1000)


def new_id() -> str:
    return str(uuid.uuid4())


class ItemType(Enum):
    FILE = "file"
    LINK = "link"
    TEXT = "text"


# which optional field carries the payload for each item type
_PAYLOAD_FIELD = {
    ItemType.FILE: "path",
    ItemType.LINK: "url",
    ItemType.TEXT: "content",
}


@dataclass
class GroupItem:
    """A single entry inside a group; lives only inside encrypted payloads."""

    id: str
    type: ItemType
    name: str
    created: int
    content: Optional[str] = None
    url: Optional[str] = None
    path: Optional[str] = None
    size: Optional[int] = None
    mime_type: Optional[str] = None

    def validate(self) -> None:
        """Check that exactly the payload field selected by ``type`` is set."""
        wanted = _PAYLOAD_FIELD[self.type]
        for name in _PAYLOAD_FIELD.values():
            value = getattr(self, name)
            if name == wanted and value is None:
                raise InvalidItemError(f"{self.type.value} item {self.name!r} needs '{name}'")
            if name != wanted and value is not None:
                raise InvalidItemError(f"{self.type.value} item {self.name!r} must not set '{name}'")

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "type": self.type.value, "name": self.name}
        # absent optionals are omitted, never written as null
        for key, value in (
            ("content", self.content),
            ("url", self.url),
            ("path", self.path),
            ("size", self.size),
            ("mimeType", self.mime_type),
        ):
            if value is not None:
                data[key] = value
        data["created"] = self.created
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GroupItem":
        try:
            item_type = ItemType(data["type"])
        except (KeyError, ValueError) as exc:
            raise InvalidItemError(f"unknown item type in {data.get('id')!r}") from exc
        return cls(
            id=data["id"],
            type=item_type,
            name=data.get("name", ""),
            created=data.get("created", 0),
            content=data.get("content"),
            url=data.get("url"),
            path=data.get("path"),
            size=data.get("size"),
            mime_type=data.get("mimeType"),
        )


@dataclass
class ItemDraft:
    """What a caller supplies to add an item; ids and timestamps are assigned later."""

    type: ItemType
    name: str
    content: Optional[str] = None
    url: Optional[str] = None
    mime_type: Optional[str] = None

    def build(
        self,
        item_id: str,
        path: Optional[str] = None,
        size: Optional[int] = None,
        mime_type: Optional[str] = None,
    ) -> GroupItem:
        item = GroupItem(
            id=item_id,
            type=self.type,
            name=self.name,
            created=now_ms(),
            content=self.content if self.type is ItemType.TEXT else None,
            url=self.url if self.type is ItemType.LINK else None,
            path=path if self.type is ItemType.FILE else None,
            size=size,
            mime_type=self.mime_type or mime_type,
        )
        item.validate()
        return item


@dataclass
class FileUpload:
    """Raw file bytes attached to a file item draft."""

    filename: str
    data: bytes
    mime_type: str = "application/octet-stream"


@dataclass
class Group:
    """Persisted, encrypted form of a group."""

    id: str
    name: str
    salt: str
    iv: str
    ciphertext: str
    created: int
    modified: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "salt": self.salt,
            "iv": self.iv,
            "ciphertext": self.ciphertext,
            "created": self.created,
            "modified": self.modified,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Group":
        return cls(
            id=data["id"],
            name=data["name"],
            salt=data["salt"],
            iv=data["iv"],
            ciphertext=data["ciphertext"],
            created=data.get("created", 0),
            modified=data.get("modified", 0),
        )


@dataclass
class VaultIndex:
    """Root persisted object: every group of the vault in encrypted form."""

    version: str = INDEX_VERSION
    groups: List[Group] = field(default_factory=list)

    def get_group(self, group_id: str) -> Optional[Group]:
        for group in self.groups:
            if group.id == group_id:
                return group
        return None

    def copy(self) -> "VaultIndex":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {"version": self.version, "groups": [g.to_dict() for g in self.groups]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VaultIndex":
        return cls(
            version=data.get("version", INDEX_VERSION),
            groups=[Group.from_dict(g) for g in data.get("groups", [])],
        )


@dataclass
class DecryptedGroup:
    """Memory-only view of an unlocked group. Never persisted."""

    id: str
    name: str
    items: List[GroupItem]
    key: bytes = field(repr=False)

    def get_item(self, item_id: str) -> Optional[GroupItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def item_dicts(self) -> List[Dict[str, Any]]:
        return [item.to_dict() for item in self.items]
