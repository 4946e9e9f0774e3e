"""Textual front end for MindVault.

Start here with `python -m mindvault.frontend.cli.app`
"""

from __future__ import annotations

import logging
import mimetypes
import os
from pathlib import Path
from typing import Optional

from textual.app import App, ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import (
    Button,
    Checkbox,
    DataTable,
    Footer,
    Header,
    Input,
    Label,
    ListItem,
    ListView,
    Select,
    Static,
)

from mindvault.core import admin
from mindvault.core.decryption import UnlockState
from mindvault.core.exceptions import VaultError
from mindvault.core.items import open_item
from mindvault.core.models import FileUpload, GroupItem, ItemDraft, ItemType
from mindvault.core.notifications import ErrorNotice
from mindvault.frontend.cli.clipboard import CLIPBOARD_CLEAR_SEC, copy_to_clipboard, open_link
from mindvault.frontend.cli.context import AppContext, build_context, open_store
from mindvault.frontend.cli.logging_config import configure_logging
from mindvault.security import keystore

logger = logging.getLogger(__name__)

# the TUI owns the terminal; set this to keep a log file
LOG_FILE_ENV = "MINDVAULT_LOG"


def _human_size(num: Optional[int]) -> str:
    if num is None:
        return "--"
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if num < 1024:
            return f"{num:.1f} {unit}" if unit != "B" else f"{num} B"
        num /= 1024
    return f"{num:.1f} PB"


_STATE_ICONS = {
    UnlockState.PENDING: r"\[ ] ",
    UnlockState.DECRYPTING: r"\[~] ",
    UnlockState.SUCCESS: r"\[+] ",
    UnlockState.FAILED: r"\[x] ",
}


def _status_icon(state: Optional[UnlockState]) -> str:
    if state is None:
        return _STATE_ICONS[UnlockState.PENDING]
    return _STATE_ICONS[state]


def _describe_item(item: GroupItem) -> str:
    if item.type is ItemType.LINK:
        return item.url or ""
    if item.type is ItemType.TEXT:
        text = (item.content or "").replace("\n", " ")
        return text if len(text) <= 40 else text[:37] + "..."
    return item.mime_type or "application/octet-stream"


# === Modal definitions ===


class AdminAuthResult:
    def __init__(self, token: str, remember: bool):
        self.token = token
        self.remember = remember


class AdminAuthModal(ModalScreen[Optional[AdminAuthResult]]):
    def compose(self) -> ComposeResult:  # pragma: no cover - UI only
        with Vertical(classes="dialog"):
            yield Static("Admin Login", classes="title")
            yield Label("Access token with write access to the vault repository")
            self.token_input = Input(placeholder="token", password=True)
            yield self.token_input
            self.remember_box = Checkbox("Remember token in OS keystore")
            yield self.remember_box
            with Horizontal():
                yield Button("Cancel (Esc)", id="cancel")
                yield Button("Login (Enter)", id="ok", variant="primary")

    def on_mount(self) -> None:  # pragma: no cover
        self.set_focus(self.token_input)

    def _result(self) -> AdminAuthResult:
        return AdminAuthResult(self.token_input.value.strip(), self.remember_box.value)

    def on_button_pressed(self, event: Button.Pressed) -> None:  # pragma: no cover
        if event.button.id == "cancel":
            self.dismiss(None)
            return
        self.dismiss(self._result())

    def on_key(self, event) -> None:  # pragma: no cover
        if event.key == "escape":
            self.dismiss(None)
        elif event.key == "enter":
            self.dismiss(self._result())


class NewGroupResult:
    def __init__(self, name: str, passphrase: str, confirm: str):
        self.name = name
        self.passphrase = passphrase
        self.confirm = confirm

    @property
    def matches(self) -> bool:
        return self.passphrase == self.confirm


class NewGroupModal(ModalScreen[Optional[NewGroupResult]]):
    def compose(self) -> ComposeResult:  # pragma: no cover - UI only
        with Vertical(classes="dialog"):
            yield Static("New Group", classes="title")
            self.name_input = Input(placeholder="group name")
            yield self.name_input
            self.pass_input = Input(placeholder="passphrase", password=True)
            yield self.pass_input
            self.confirm_input = Input(placeholder="confirm passphrase", password=True)
            yield self.confirm_input
            with Horizontal():
                yield Button("Cancel (Esc)", id="cancel")
                yield Button("Create (Enter)", id="ok", variant="primary")

    def on_mount(self) -> None:  # pragma: no cover
        self.set_focus(self.name_input)

    def _result(self) -> NewGroupResult:
        return NewGroupResult(
            name=self.name_input.value.strip(),
            passphrase=self.pass_input.value,
            confirm=self.confirm_input.value,
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:  # pragma: no cover
        if event.button.id == "cancel":
            self.dismiss(None)
            return
        self.dismiss(self._result())

    def on_key(self, event) -> None:  # pragma: no cover
        if event.key == "escape":
            self.dismiss(None)
        elif event.key == "enter":
            self.dismiss(self._result())


class AddItemResult:
    def __init__(self, item_type: ItemType, name: str, value: str):
        self.item_type = item_type
        self.name = name
        # text content, URL or local file path depending on item_type
        self.value = value

    def to_request(self) -> tuple[ItemDraft, Optional[FileUpload]]:
        """Turn the form into an item draft plus the file to upload, if any."""
        if self.item_type is ItemType.LINK:
            return ItemDraft(type=ItemType.LINK, name=self.name, url=self.value), None
        if self.item_type is ItemType.TEXT:
            return ItemDraft(type=ItemType.TEXT, name=self.name, content=self.value), None
        path = Path(self.value).expanduser()
        data = path.read_bytes()
        mime = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        draft = ItemDraft(type=ItemType.FILE, name=self.name or path.name)
        return draft, FileUpload(filename=path.name, data=data, mime_type=mime)


class AddItemModal(ModalScreen[Optional[AddItemResult]]):
    def compose(self) -> ComposeResult:  # pragma: no cover - UI only
        with Vertical(classes="dialog"):
            yield Static("Add Item", classes="title")
            self.type_select = Select(
                [("Text", ItemType.TEXT), ("Link", ItemType.LINK), ("File", ItemType.FILE)],
                value=ItemType.TEXT,
                allow_blank=False,
            )
            yield self.type_select
            self.name_input = Input(placeholder="name")
            yield self.name_input
            yield Label("Text, URL, or /path/to/file")
            self.value_input = Input(placeholder="value")
            yield self.value_input
            with Horizontal():
                yield Button("Cancel (Esc)", id="cancel")
                yield Button("Add (Enter)", id="ok", variant="primary")

    def on_mount(self) -> None:  # pragma: no cover
        self.set_focus(self.name_input)

    def _result(self) -> AddItemResult:
        return AddItemResult(
            item_type=self.type_select.value,
            name=self.name_input.value.strip(),
            value=self.value_input.value,
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:  # pragma: no cover
        if event.button.id == "cancel":
            self.dismiss(None)
            return
        self.dismiss(self._result())

    def on_key(self, event) -> None:  # pragma: no cover
        if event.key == "escape":
            self.dismiss(None)
        elif event.key == "enter":
            self.dismiss(self._result())


class SaveItemModal(ModalScreen[Optional[str]]):
    """Ask where a decrypted file should be written."""

    def __init__(self, filename: str):
        super().__init__()
        self.filename = filename

    def compose(self) -> ComposeResult:  # pragma: no cover - UI only
        with Vertical(classes="dialog"):
            yield Static(f"Save {self.filename}", classes="title")
            self.dest_input = Input(value=str(Path.cwd() / self.filename))
            yield self.dest_input
            with Horizontal():
                yield Button("Cancel (Esc)", id="cancel")
                yield Button("Save (Enter)", id="ok", variant="primary")

    def on_mount(self) -> None:  # pragma: no cover
        self.set_focus(self.dest_input)

    def on_button_pressed(self, event: Button.Pressed) -> None:  # pragma: no cover
        if event.button.id == "cancel":
            self.dismiss(None)
        else:
            self.dismiss(self.dest_input.value.strip() or None)

    def on_key(self, event) -> None:  # pragma: no cover
        if event.key == "escape":
            self.dismiss(None)
        elif event.key == "enter":
            self.dismiss(self.dest_input.value.strip() or None)


class DeleteConfirmModal(ModalScreen[Optional[bool]]):
    def __init__(self, prompt: str):
        super().__init__()
        self.prompt = prompt

    def compose(self) -> ComposeResult:  # pragma: no cover
        with Vertical(classes="dialog"):
            yield Static(self.prompt)
            with Horizontal():
                yield Button("Cancel (Esc)", id="cancel")
                yield Button("Delete (Enter)", id="ok", variant="error")

    def on_button_pressed(self, event: Button.Pressed) -> None:  # pragma: no cover
        self.dismiss(event.button.id != "cancel")

    def on_key(self, event) -> None:  # pragma: no cover
        if event.key == "escape":
            self.dismiss(False)
        elif event.key == "enter":
            self.dismiss(True)


class AlertModal(ModalScreen[None]):
    """Simple alert modal with a title, message, and OK button."""

    def __init__(self, title: str, message: str):
        super().__init__()
        self.alert_title = title
        self.alert_message = message

    def compose(self) -> ComposeResult:  # pragma: no cover
        with Vertical(classes="dialog"):
            yield Static(self.alert_title, classes="title")
            yield Static("")
            yield Static(self.alert_message)
            yield Static("")
            with Horizontal():
                yield Button("OK", id="ok", variant="primary")

    def on_button_pressed(self, event: Button.Pressed) -> None:  # pragma: no cover
        self.dismiss(None)

    def on_key(self, event) -> None:  # pragma: no cover
        if event.key in ("escape", "enter"):
            self.dismiss(None)


# === Main app ===


class VaultApp(App):
    """Groups on the left, the items of the selected group on the right."""

    TITLE = "MindVault"

    CSS = """
    #sidebar { width: 30%; min-width: 24; border: heavy $surface; }
    #main { border: heavy $surface; }
    .title { padding: 1 1; text-style: bold; }
    #status { padding: 0 1 1 1; height: 3; color: $text-muted; }
    ModalScreen { align: center middle; background: rgba(0,0,0,0.45); }
    .dialog { width: 75%; height: 75%; padding: 1; border: heavy $surface; background: $boost; }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "refresh", "Reload"),
        ("u", "focus_passphrase", "Unlock"),
        ("a", "admin_login", "Admin"),
        ("n", "new_group", "New Group"),
        ("x", "delete_group", "Delete Group"),
        ("i", "add_item", "Add Item"),
        ("d", "delete_item", "Delete Item"),
        ("o", "open_item", "Open"),
        ("g", "collect_garbage", "Clean Up"),
        ("l", "logout", "Lock"),
        ("f", "forget_token", "Forget Token"),
    ]

    def __init__(self, ctx: AppContext | None = None):
        self.ctx = ctx or build_context()
        super().__init__()

        self.groups: ListView | None = None
        self.table: DataTable | None = None
        self.passphrase_input: Input | None = None
        self.status: Static | None = None
        self.active_group_id: Optional[str] = None
        self.row_keys: list[str] = []
        self.ctx.session.errors.subscribe(self._on_error_notice)
        self.ctx.orchestrator.on_change = self._on_unlock_change

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        with Horizontal():
            with Vertical(id="sidebar"):
                yield Static("Groups", classes="title")
                self.groups = ListView(id="groups")
                yield self.groups
                self.passphrase_input = Input(
                    placeholder="passphrase (Enter to unlock)",
                    password=True,
                    id="passphrase",
                )
                yield self.passphrase_input
            with Vertical(id="main"):
                yield Static("Items", classes="title")
                self.table = DataTable(id="items")
                yield self.table
                self.status = Static("", id="status")
                yield self.status
        yield Footer()

    def on_mount(self) -> None:
        assert self.table is not None
        self.table.add_columns("Name", "Type", "Size", "Details")
        self.refresh_groups()
        self.refresh_items()
        cached = keystore.load_token(self.ctx.config.label)
        if cached:
            self._set_status("Trying cached admin token...")
            self._start_auth(cached, remember=False)

    # === Rendering ===

    def refresh_groups(self) -> None:
        assert self.groups is not None
        self.groups.clear()
        session = self.ctx.session
        index = session.index
        if index is None:
            self._update_status()
            return
        states = session.unlock_states()
        for group in index.groups:
            item = ListItem(Static(f"{_status_icon(states.get(group.id))}{group.name}"))
            item.data = group.id
            self.groups.append(item)
        self.groups.refresh()

        ids = [g.id for g in index.groups]
        if self.active_group_id not in ids:
            self.active_group_id = ids[0] if ids else None
        if self.active_group_id is not None:
            self.groups.index = ids.index(self.active_group_id)

    def refresh_items(self) -> None:
        assert self.table is not None
        self.table.clear(columns=False)
        self.row_keys = []
        if self.active_group_id is not None:
            group = self.ctx.session.get_decrypted(self.active_group_id)
            for item in group.items if group is not None else []:
                self.table.add_row(
                    item.name,
                    item.type.value,
                    _human_size(item.size) if item.type is ItemType.FILE else "--",
                    _describe_item(item),
                    key=item.id,
                )
                self.row_keys.append(item.id)
        self._update_status()

    def _set_status(self, message: str) -> None:
        if self.status:
            self.status.update(message)

    def _update_status(self) -> None:
        session = self.ctx.session
        index = session.index
        total = len(index.groups) if index is not None else 0
        unlocked = len(session.decrypted_groups)
        role = "admin" if session.is_admin else "read-only"
        self._set_status(
            f"Vault: {self.ctx.config.label} [{role}] • Unlocked: {unlocked}/{total} • Items: {len(self.row_keys)}"
        )

    def _on_error_notice(self, notice: ErrorNotice) -> None:
        if not self.is_running:
            return

        # may be called from a worker thread
        def show() -> None:
            self.notify(notice.message, severity="error", timeout=self.ctx.session.errors.ttl)

        try:
            self.call_from_thread(show)
        except RuntimeError:
            show()

    def _on_unlock_change(self, group_id: str, state: UnlockState) -> None:
        # runs on the unlock worker; only the sidebar icons change mid-batch
        if self.is_running:
            self.call_from_thread(self.refresh_groups)

    def _selected_item_id(self) -> Optional[str]:
        if not self.table or not self.row_keys:
            return None
        row = self.table.cursor_row
        if row is None or row >= len(self.row_keys):
            return None
        return self.row_keys[row]

    def on_list_view_selected(self, event: ListView.Selected) -> None:
        group_id = getattr(event.item, "data", None)
        if group_id is None:
            return
        self.active_group_id = group_id
        self.refresh_items()

    def on_list_view_highlighted(self, event: ListView.Highlighted) -> None:
        group_id = getattr(event.item, "data", None) if event.item else None
        if group_id is None or group_id == self.active_group_id:
            return
        self.active_group_id = group_id
        self.refresh_items()

    # === Unlock ===

    def action_focus_passphrase(self) -> None:
        if self.passphrase_input:
            self.set_focus(self.passphrase_input)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input is not self.passphrase_input:
            return
        passphrase = event.value
        # the field is cleared immediately; the batch owns its copy
        event.input.value = ""
        if not passphrase:
            return
        self._set_status("Unlocking...")
        session = self.ctx.session
        orchestrator = self.ctx.orchestrator
        self.run_worker(
            lambda: orchestrator.submit(session, passphrase).result(),
            name="unlock_worker",
            group="unlock_worker",
            exclusive=True,
            thread=True,
        )

    # === Admin ===

    def action_admin_login(self) -> None:
        if self.ctx.session.is_admin:
            self._set_status("Already logged in as admin")
            return
        self.push_screen(AdminAuthModal(), self._handle_admin_login)

    def _handle_admin_login(self, result: Optional[AdminAuthResult]) -> None:
        if not result:
            return
        self._start_auth(result.token, result.remember)

    def _start_auth(self, token: str, remember: bool) -> None:
        self.run_worker(
            lambda: self._auth_worker(token, remember),
            name="auth_worker",
            group="auth_worker",
            exclusive=True,
            thread=True,
        )

    def _auth_worker(self, token: str, remember: bool) -> dict:
        ok = admin.authenticate(self.ctx.session, token, self.ctx.store_factory)
        warning = None
        if ok and remember:
            try:
                keystore.save_token_checked(self.ctx.config.label, token)
            except Exception as exc:  # keyring backends raise assorted errors
                warning = f"Token not cached: {exc}"
        return {"success": ok, "warning": warning}

    def action_new_group(self) -> None:
        if not self._require_admin():
            return
        self.push_screen(NewGroupModal(), self._handle_new_group)

    def _handle_new_group(self, result: Optional[NewGroupResult]) -> None:
        if not result:
            return
        if not result.matches:
            self.push_screen(AlertModal("New Group", "Passphrases do not match."))
            return
        self._set_status(f"Creating group {result.name}...")
        self.run_worker(
            lambda: admin.create_group(self.ctx.session, result.name, result.passphrase),
            name="create_group_worker",
            group="create_group_worker",
            exclusive=True,
            thread=True,
        )

    def action_delete_group(self) -> None:
        if not self._require_admin() or self.active_group_id is None:
            return
        group = self.ctx.session.index.get_group(self.active_group_id)
        if group is None:
            return
        prompt = f"Delete group '{group.name}' and all of its items?"
        self.push_screen(DeleteConfirmModal(prompt), self._handle_delete_group)

    def _handle_delete_group(self, confirmed: Optional[bool]) -> None:
        if not confirmed or self.active_group_id is None:
            return
        group_id = self.active_group_id
        self.run_worker(
            lambda: admin.delete_group(self.ctx.session, group_id),
            name="delete_group_worker",
            group="delete_group_worker",
            exclusive=True,
            thread=True,
        )

    def action_add_item(self) -> None:
        if not self._require_admin() or not self._require_unlocked():
            return
        self.push_screen(AddItemModal(), self._handle_add_item)

    def _handle_add_item(self, result: Optional[AddItemResult]) -> None:
        if not result or self.active_group_id is None:
            return
        try:
            draft, upload = result.to_request()
        except OSError as exc:
            self.push_screen(AlertModal("Add Item", f"Cannot read file: {exc}"))
            return
        group_id = self.active_group_id
        self._set_status(f"Adding {draft.name}...")
        self.run_worker(
            lambda: admin.add_item(self.ctx.session, group_id, draft, upload),
            name="add_item_worker",
            group="add_item_worker",
            exclusive=True,
            thread=True,
        )

    def action_delete_item(self) -> None:
        if not self._require_admin() or not self._require_unlocked():
            return
        item_id = self._selected_item_id()
        if item_id is None:
            return
        item = self.ctx.session.get_decrypted(self.active_group_id).get_item(item_id)
        prompt = f"Delete item '{item.name if item else item_id}'?"
        self.push_screen(DeleteConfirmModal(prompt), lambda ok: self._handle_delete_item(ok, item_id))

    def _handle_delete_item(self, confirmed: Optional[bool], item_id: str) -> None:
        if not confirmed or self.active_group_id is None:
            return
        group_id = self.active_group_id
        self.run_worker(
            lambda: admin.delete_item(self.ctx.session, group_id, item_id),
            name="delete_item_worker",
            group="delete_item_worker",
            exclusive=True,
            thread=True,
        )

    def action_collect_garbage(self) -> None:
        if not self._require_admin():
            return
        self._set_status("Removing unreferenced files...")
        self.run_worker(
            lambda: admin.collect_garbage(self.ctx.session),
            name="gc_worker",
            group="gc_worker",
            exclusive=True,
            thread=True,
        )

    def _require_admin(self) -> bool:
        if not self.ctx.session.is_admin:
            self._set_status("Admin login required (press a)")
            return False
        return True

    def _require_unlocked(self) -> bool:
        if self.active_group_id is None or self.ctx.session.get_decrypted(self.active_group_id) is None:
            self._set_status("Unlock the group first")
            return False
        return True

    # === Items ===

    def action_open_item(self) -> None:
        item_id = self._selected_item_id()
        if item_id is None or self.active_group_id is None:
            return
        group_id = self.active_group_id
        self.run_worker(
            lambda: self._open_item_worker(group_id, item_id),
            name="open_item_worker",
            group="open_item_worker",
            exclusive=True,
            thread=True,
        )

    def _open_item_worker(self, group_id: str, item_id: str) -> dict:
        try:
            return {"success": True, "payload": open_item(self.ctx.session, group_id, item_id)}
        except VaultError as exc:
            self.ctx.session.errors.report(exc, "Failed to open item")
            return {"success": False}

    def _handle_payload(self, payload) -> None:
        if payload.url is not None:
            if open_link(payload.url):
                self._set_status(f"Opened {payload.url}")
            else:
                self._copy(payload.url, "Link copied to clipboard")
        elif payload.item.type is ItemType.TEXT:
            self._copy(
                payload.data.decode("utf-8"),
                f"Text copied; clipboard clears in {CLIPBOARD_CLEAR_SEC:.0f}s",
                clear_after=CLIPBOARD_CLEAR_SEC,
            )
        else:
            self.push_screen(
                SaveItemModal(payload.filename),
                lambda dest: self._save_payload(payload, dest),
            )

    def _copy(self, text: str, message: str, clear_after: Optional[float] = None) -> None:
        try:
            copy_to_clipboard(text, clear_after=clear_after)
        except Exception as exc:  # pyperclip raises when no clipboard is available
            self.push_screen(AlertModal("Clipboard", f"{exc}\n\n{text}"))
            return
        self.notify(message, severity="information")

    def _save_payload(self, payload, dest: Optional[str]) -> None:
        if not dest:
            return
        path = Path(dest).expanduser()
        try:
            path.write_bytes(payload.data)
        except OSError as exc:
            self.push_screen(AlertModal("Save Failed", str(exc)))
            return
        self._set_status(f"Saved {payload.filename} to {path}")

    # === Session ===

    def action_logout(self) -> None:
        self.ctx.session.logout()
        self.refresh_groups()
        self.refresh_items()
        self.notify("Vault locked", severity="information")

    def action_forget_token(self) -> None:
        self.ctx.session.forget_credential(open_store(self.ctx.config))
        keystore.delete_token(self.ctx.config.label)
        self._update_status()

    def action_refresh(self) -> None:
        self.run_worker(
            self._reload_worker, name="reload_worker", group="reload_worker", exclusive=True, thread=True
        )

    def _reload_worker(self) -> bool:
        try:
            self.ctx.session.load_index()
        except VaultError as exc:
            self.ctx.session.errors.report(exc, "Failed to fetch vault")
            return False
        return True

    def on_worker_state_changed(self, event) -> None:
        """Refresh the views once a background operation has finished."""
        if not event.worker.is_finished:
            return

        name = event.worker.name
        result = event.worker.result

        if name == "unlock_worker" and result is not None:
            failed = sum(1 for s in result.values() if s is UnlockState.FAILED)
            if failed and failed == len(result):
                self.notify("Passphrase did not open any group", severity="warning")
        elif name == "auth_worker" and result:
            if result["success"]:
                self.notify("Admin access granted", severity="information")
            if result["warning"]:
                self.notify(result["warning"], severity="warning")
        elif name == "create_group_worker" and result is not None:
            self.active_group_id = result.id
            self.notify(f"Created group {result.name}", severity="information")
        elif name == "delete_group_worker" and result:
            self.active_group_id = None
        elif name == "gc_worker" and result is not None:
            self.notify(f"Removed {len(result)} unreferenced file(s)", severity="information")
        elif name == "open_item_worker" and result and result["success"]:
            self._handle_payload(result["payload"])

        self.refresh_groups()
        self.refresh_items()

    def action_quit(self) -> None:
        self.ctx.orchestrator.shutdown(wait=False)
        self.exit()


def main() -> None:  # pragma: no cover
    configure_logging(log_file=os.getenv(LOG_FILE_ENV))
    VaultApp().run()


if __name__ == "__main__":  # pragma: no cover
    main()
