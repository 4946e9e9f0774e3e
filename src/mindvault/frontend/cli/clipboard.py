"""Handing unlocked item payloads to the desktop.

Text items go to the clipboard through pyperclip and are wiped again after a
while; links open in the default browser.
"""

from __future__ import annotations

import logging
import threading
import webbrowser
from typing import Optional

import pyperclip

logger = logging.getLogger(__name__)

CLIPBOARD_CLEAR_SEC = 30.0


def copy_to_clipboard(text: str, clear_after: Optional[float] = None) -> Optional[threading.Timer]:
    """Copy text to the system clipboard.

    With ``clear_after`` the clipboard is emptied that many seconds later,
    unless something else has been copied in the meantime.

    Raises:
        pyperclip.PyperclipException: If clipboard access fails.
    """
    pyperclip.copy(text)
    if not clear_after:
        return None
    timer = threading.Timer(clear_after, _clear_if_unchanged, args=(text,))
    timer.daemon = True
    timer.start()
    return timer


def _clear_if_unchanged(text: str) -> None:
    try:
        if pyperclip.paste() == text:
            pyperclip.copy("")
            logger.debug("clipboard cleared")
    except pyperclip.PyperclipException as exc:
        logger.warning("could not clear clipboard: %s", exc)


def open_link(url: str) -> bool:
    """Open ``url`` in the default browser; False if no browser is available."""
    return webbrowser.open(url, new=2)
