"""Unit tests for opening items of unlocked groups."""

import pytest

from mindvault.core import admin
from mindvault.core.decryption import DecryptionOrchestrator
from mindvault.core.exceptions import GroupLockedError, NotFoundError
from mindvault.core.items import open_item
from mindvault.core.models import FileUpload, ItemDraft, ItemType


@pytest.fixture
def unlocked(admin_session):
    group = admin.create_group(admin_session, "Stuff", "pw")
    o = DecryptionOrchestrator()
    o.unlock(admin_session, "pw")
    o.shutdown()
    return admin_session, group


def test_open_link(unlocked):
    session, group = unlocked
    item = admin.add_item(session, group.id, ItemDraft(type=ItemType.LINK, name="l", url="https://a.test"))
    payload = open_item(session, group.id, item.id)
    assert payload.url == "https://a.test"
    assert payload.data is None


def test_open_text(unlocked):
    session, group = unlocked
    item = admin.add_item(session, group.id, ItemDraft(type=ItemType.TEXT, name="t", content="héllo"))
    payload = open_item(session, group.id, item.id)
    assert payload.data == "héllo".encode("utf-8")
    assert payload.mime_type == "text/plain"


def test_open_file(unlocked):
    session, group = unlocked
    item = admin.add_item(
        session,
        group.id,
        ItemDraft(type=ItemType.FILE, name="photo.png"),
        FileUpload("photo.png", b"\x89PNG...", "image/png"),
    )
    payload = open_item(session, group.id, item.id)
    assert payload.data == b"\x89PNG..."
    assert payload.mime_type == "image/png"
    assert payload.filename == "photo.png"


def test_open_file_missing_blob(unlocked, store):
    session, group = unlocked
    item = admin.add_item(
        session, group.id, ItemDraft(type=ItemType.FILE, name="f"), FileUpload("f", b"x")
    )
    store.delete_blob(item.path, store.get_blob(item.path).version_tag)
    with pytest.raises(NotFoundError, match="File not found"):
        open_item(session, group.id, item.id)


def test_open_item_locked_group(admin_session):
    group = admin.create_group(admin_session, "Locked", "pw")
    with pytest.raises(GroupLockedError):
        open_item(admin_session, group.id, "any")


def test_open_unknown_item(unlocked):
    session, group = unlocked
    with pytest.raises(NotFoundError):
        open_item(session, group.id, "nope")
