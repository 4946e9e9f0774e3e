"""Unit tests for admin authentication and vault mutations."""

from unittest.mock import Mock

import pytest

from mindvault.core import admin
from mindvault.core.decryption import DecryptionOrchestrator
from mindvault.core.exceptions import AuthenticationError, GroupLockedError, TransportError
from mindvault.core.index import IndexCoordinator, encode_index
from mindvault.core.models import FileUpload, ItemDraft, ItemType, VaultIndex
from mindvault.core.storage import INDEX_PATH, MemoryBlobStore
from mindvault.security.crypto import decrypt_file, decrypt_item_list
from mindvault.security.session import VaultSession


@pytest.fixture
def orchestrator():
    o = DecryptionOrchestrator()
    yield o
    o.shutdown()


def _text(name="note", content="hello"):
    return ItemDraft(type=ItemType.TEXT, name=name, content=content)


def _unlocked_group(session, orchestrator, name="Personal", passphrase="pw"):
    group = admin.create_group(session, name, passphrase)
    orchestrator.unlock(session, passphrase)
    return group


def _stored_items(store, group_id, key):
    index = IndexCoordinator(store).load()
    group = index.get_group(group_id)
    return decrypt_item_list(group.iv, group.ciphertext, key)


# ==============================================================================
# Authentication
# ==============================================================================

def test_authenticate_bootstraps_uninitialized_vault(session, store):
    """Scenario: first valid token against an empty repository."""
    assert session.index_uninitialized is True
    factory = Mock(return_value=store)

    assert admin.authenticate(session, "ghp_valid", factory) is True

    factory.assert_called_once_with("ghp_valid")
    assert session.is_admin is True
    assert session.credential == "ghp_valid"
    record = store.get_blob(INDEX_PATH)
    assert record.content == encode_index(VaultIndex())
    assert session.index_uninitialized is False


def test_authenticate_existing_vault_does_not_write(store):
    store.put_blob(INDEX_PATH, encode_index(VaultIndex()))
    tag = store.get_blob(INDEX_PATH).version_tag
    session = VaultSession(store=store)
    session.load_index()

    assert admin.authenticate(session, "ghp_valid", lambda token: store) is True
    assert store.get_blob(INDEX_PATH).version_tag == tag


def test_authenticate_keeps_index_created_after_load(store):
    """A session that saw an empty store must not wipe a vault bootstrapped since."""
    late = VaultSession(store=store)
    late.load_index()
    assert late.index_uninitialized is True

    early = VaultSession(store=store)
    early.load_index()
    assert admin.authenticate(early, "tok", lambda token: store) is True
    school = admin.create_group(early, "School", "hunter2")
    assert school is not None

    assert admin.authenticate(late, "tok", lambda token: store) is True

    assert [g.id for g in IndexCoordinator(store).load().groups] == [school.id]
    assert [g.id for g in late.index.groups] == [school.id]
    assert late.index_uninitialized is False
    assert late.errors.current is None


def test_authenticate_invalid_token(session):
    bad_store = MemoryBlobStore(credential_valid=False)
    assert admin.authenticate(session, "ghp_bad", lambda token: bad_store) is False
    assert session.is_admin is False
    assert "Invalid token" in session.errors.current.message


def test_authenticate_empty_token(session):
    factory = Mock()
    assert admin.authenticate(session, "   ", factory) is False
    factory.assert_not_called()
    assert session.errors.current is not None


def test_authenticate_transport_failure(session):
    broken = Mock()
    broken.validate_credential.side_effect = TransportError("offline")
    assert admin.authenticate(session, "ghp_x", lambda token: broken) is False
    assert "offline" in session.errors.current.message


# ==============================================================================
# Authorization gate
# ==============================================================================

def test_mutations_without_credential_are_noops(session, store):
    assert admin.create_group(session, "g", "pw") is None
    assert admin.delete_group(session, "x") is None
    assert admin.add_item(session, "x", _text()) is None
    assert admin.delete_item(session, "x", "y") is None
    assert admin.collect_garbage(session) is None
    assert store.get_blob(INDEX_PATH) is None
    assert session.errors.history == []


def test_revoked_credential_drops_admin(admin_session, store):
    store.credential_valid = False
    assert admin.create_group(admin_session, "g", "pw") is None
    assert admin_session.is_admin is False
    assert isinstance(admin_session.errors.current.error, AuthenticationError)
    assert IndexCoordinator(store).load().groups == []


def test_revalidation_can_be_disabled(admin_session, store):
    store.credential_valid = False
    admin_session.revalidate_credential = False
    assert admin.create_group(admin_session, "g", "pw") is not None


def test_store_refusing_write_is_reported(admin_session, store):
    store.writable = False
    assert admin.create_group(admin_session, "g", "pw") is None
    assert "Failed to create group" in admin_session.errors.current.message


# ==============================================================================
# Groups
# ==============================================================================

def test_create_group(admin_session, store, orchestrator):
    """Scenario: create a group, a reader can open it with the passphrase."""
    group = admin.create_group(admin_session, "Personal", "s3cret")
    assert group.name == "Personal"
    assert group.created == group.modified

    stored = IndexCoordinator(store).load()
    assert [g.id for g in stored.groups] == [group.id]
    assert admin_session.index.get_group(group.id) is not None

    reader = VaultSession(store=store)
    reader.load_index()
    orchestrator.unlock(reader, "s3cret")
    assert reader.get_decrypted(group.id).items == []


def test_create_group_distinct_salts(admin_session):
    a = admin.create_group(admin_session, "a", "same")
    b = admin.create_group(admin_session, "b", "same")
    assert a.salt != b.salt
    assert a.iv != b.iv


@pytest.mark.parametrize("name,passphrase", [("", "pw"), ("  ", "pw"), ("g", "")])
def test_create_group_validates_input(admin_session, store, name, passphrase):
    assert admin.create_group(admin_session, name, passphrase) is None
    assert admin_session.errors.current is not None
    assert store.get_blob(INDEX_PATH) is None


def test_delete_group_removes_index_entry_and_blobs(admin_session, store, orchestrator):
    group = _unlocked_group(admin_session, orchestrator)
    upload = FileUpload("a.txt", b"abc", "text/plain")
    item = admin.add_item(admin_session, group.id, ItemDraft(type=ItemType.FILE, name="a.txt"), upload)
    assert store.get_blob(item.path) is not None

    assert admin.delete_group(admin_session, group.id) is True
    assert IndexCoordinator(store).load().groups == []
    assert admin_session.get_decrypted(group.id) is None
    assert store.get_blob(item.path) is None


def test_delete_locked_group_leaves_blobs_for_gc(admin_session, store, orchestrator):
    group = _unlocked_group(admin_session, orchestrator)
    item = admin.add_item(
        admin_session, group.id, ItemDraft(type=ItemType.FILE, name="f"), FileUpload("f", b"x")
    )
    admin_session.logout()
    admin_session.is_admin = True

    assert admin.delete_group(admin_session, group.id) is True
    assert store.get_blob(item.path) is not None


def test_delete_missing_group(admin_session):
    assert admin.delete_group(admin_session, "nope") is None
    assert "not found" in admin_session.errors.current.message


# ==============================================================================
# Items
# ==============================================================================

def test_add_text_item(admin_session, store, orchestrator):
    group = _unlocked_group(admin_session, orchestrator)
    before = IndexCoordinator(store).load().get_group(group.id)

    item = admin.add_item(admin_session, group.id, _text())

    assert item.type is ItemType.TEXT
    key = admin_session.get_decrypted(group.id).key
    assert _stored_items(store, group.id, key) == [item.to_dict()]
    after = IndexCoordinator(store).load().get_group(group.id)
    assert after.iv != before.iv
    assert after.salt == before.salt
    assert after.modified >= before.modified
    assert admin_session.get_decrypted(group.id).items == [item]


def test_add_link_item(admin_session, orchestrator):
    group = _unlocked_group(admin_session, orchestrator)
    item = admin.add_item(
        admin_session, group.id, ItemDraft(type=ItemType.LINK, name="docs", url="https://docs.test")
    )
    assert item.url == "https://docs.test"
    assert item.content is None


def test_add_file_item_uploads_encrypted_blob(admin_session, store, orchestrator):
    group = _unlocked_group(admin_session, orchestrator)
    upload = FileUpload("report.pdf", b"%PDF-1.7 data", "application/pdf")

    item = admin.add_item(admin_session, group.id, ItemDraft(type=ItemType.FILE, name="report.pdf"), upload)

    assert item.path == f"files/{item.id}.enc"
    assert item.size == len(upload.data)
    assert item.mime_type == "application/pdf"
    blob = store.get_blob(item.path).content
    assert b"%PDF" not in blob
    data, metadata = decrypt_file(blob, admin_session.get_decrypted(group.id).key)
    assert data == upload.data
    assert metadata == {"filename": "report.pdf", "size": 13, "type": "application/pdf"}


def test_add_item_to_locked_group(admin_session, store):
    group = admin.create_group(admin_session, "Locked", "pw")
    assert admin.add_item(admin_session, group.id, _text()) is None
    assert isinstance(admin_session.errors.current.error, GroupLockedError)
    assert "unlocked" in admin_session.errors.current.message


def test_add_item_file_without_upload(admin_session, orchestrator):
    group = _unlocked_group(admin_session, orchestrator)
    assert admin.add_item(admin_session, group.id, ItemDraft(type=ItemType.FILE, name="f")) is None


def test_add_item_upload_for_text_item(admin_session, orchestrator):
    group = _unlocked_group(admin_session, orchestrator)
    assert admin.add_item(admin_session, group.id, _text(), FileUpload("f", b"x")) is None


def test_add_file_rolls_back_blob_when_commit_fails(admin_session, store, orchestrator, monkeypatch):
    group = _unlocked_group(admin_session, orchestrator)

    def failing_commit(self, mutate, message=""):
        raise TransportError("index unavailable")

    monkeypatch.setattr(IndexCoordinator, "commit", failing_commit)
    result = admin.add_item(
        admin_session, group.id, ItemDraft(type=ItemType.FILE, name="f"), FileUpload("f", b"x")
    )
    assert result is None
    assert store.list_blobs("files/") == []


def test_concurrent_item_adds_are_merged(store, orchestrator):
    """Two admins adding to the same group both keep their items."""
    first = VaultSession(store=store)
    first.load_index()
    first.grant_admin(store, "t1")
    group = _unlocked_group(first, orchestrator)

    second = VaultSession(store=store)
    second.load_index()
    second.grant_admin(store, "t2")
    orchestrator.unlock(second, "pw")

    a = admin.add_item(first, group.id, _text("a"))
    # second still has the pre-"a" item list cached
    b = admin.add_item(second, group.id, _text("b"))

    key = first.get_decrypted(group.id).key
    names = [d["name"] for d in _stored_items(store, group.id, key)]
    assert names == ["a", "b"]
    assert [i.id for i in second.get_decrypted(group.id).items] == [a.id, b.id]


def test_delete_item(admin_session, store, orchestrator):
    group = _unlocked_group(admin_session, orchestrator)
    keep = admin.add_item(admin_session, group.id, _text("keep"))
    drop = admin.add_item(admin_session, group.id, _text("drop"))

    assert admin.delete_item(admin_session, group.id, drop.id) is True

    key = admin_session.get_decrypted(group.id).key
    assert [d["id"] for d in _stored_items(store, group.id, key)] == [keep.id]
    assert admin_session.get_decrypted(group.id).get_item(drop.id) is None


def test_deleted_item_stays_gone_for_fresh_session(admin_session, store, orchestrator):
    """Scenario: add three items, delete the middle one, reopen the vault."""
    group = _unlocked_group(admin_session, orchestrator)
    a = admin.add_item(admin_session, group.id, _text("a"))
    b = admin.add_item(admin_session, group.id, _text("b"))
    c = admin.add_item(admin_session, group.id, _text("c"))
    assert admin.delete_item(admin_session, group.id, b.id) is True

    fresh = VaultSession(store=store)
    fresh.load_index()
    orchestrator.unlock(fresh, "pw")

    reopened = fresh.get_decrypted(group.id)
    assert reopened is not None
    assert [i.id for i in reopened.items] == [a.id, c.id]
    assert [i.name for i in reopened.items] == ["a", "c"]


def test_delete_file_item_removes_blob(admin_session, store, orchestrator):
    group = _unlocked_group(admin_session, orchestrator)
    item = admin.add_item(
        admin_session, group.id, ItemDraft(type=ItemType.FILE, name="f"), FileUpload("f", b"x")
    )
    admin.delete_item(admin_session, group.id, item.id)
    assert store.get_blob(item.path) is None


def test_delete_missing_item(admin_session, orchestrator):
    group = _unlocked_group(admin_session, orchestrator)
    assert admin.delete_item(admin_session, group.id, "nope") is None


def test_blob_delete_failure_keeps_commit(admin_session, store, orchestrator, monkeypatch):
    group = _unlocked_group(admin_session, orchestrator)
    item = admin.add_item(
        admin_session, group.id, ItemDraft(type=ItemType.FILE, name="f"), FileUpload("f", b"x")
    )
    monkeypatch.setattr(store, "delete_blob", Mock(side_effect=TransportError("offline")))

    assert admin.delete_item(admin_session, group.id, item.id) is True
    key = admin_session.get_decrypted(group.id).key
    assert _stored_items(store, group.id, key) == []
    assert "Failed to delete" in admin_session.errors.current.message


# ==============================================================================
# Garbage collection
# ==============================================================================

def test_collect_garbage_removes_orphans(admin_session, store, orchestrator):
    group = _unlocked_group(admin_session, orchestrator)
    item = admin.add_item(
        admin_session, group.id, ItemDraft(type=ItemType.FILE, name="f"), FileUpload("f", b"x")
    )
    store.put_blob("files/orphan.enc", b"left behind")

    assert admin.collect_garbage(admin_session) == ["files/orphan.enc"]
    assert store.get_blob("files/orphan.enc") is None
    assert store.get_blob(item.path) is not None


def test_collect_garbage_requires_all_groups_unlocked(admin_session, store, orchestrator):
    _unlocked_group(admin_session, orchestrator, "Open", "pw")
    admin.create_group(admin_session, "Closed", "other")
    store.put_blob("files/orphan.enc", b"x")

    assert admin.collect_garbage(admin_session) is None
    assert isinstance(admin_session.errors.current.error, GroupLockedError)
    assert "Closed" in admin_session.errors.current.message
    assert store.get_blob("files/orphan.enc") is not None
