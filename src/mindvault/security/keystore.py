"""OS keystore integration using keyring for optional admin token caching.

This module provides a tiny wrapper around `keyring` to store and retrieve
the admin token under a service/account pair, where the account is the vault
label (``owner/repo``). Use this only for opt-in convenience storage; do not
assume keyring provides hardware-backed security on all platforms.

Logging out of a session does not touch the keystore; call
:func:`delete_token` to forget a cached token.
"""
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

SERVICE = "mindvault"


def save_token(account: str, token: str, service: str = SERVICE) -> None:
    """Persist the admin token in the OS keystore under (service, account)."""
    keyring.set_password(service, account, token)


def assess_keyring_backend() -> tuple[bool, str]:
    """Return (is_secure, message) describing the current keyring backend.

    Heuristics are used because the `keyring` package exposes different backends
    across platforms.
    """
    try:
        backend = keyring.get_keyring()
    except Exception as e:
        return False, f"failed to get keyring backend: {e}"

    name = backend.__class__.__name__
    priority = getattr(backend, "priority", None)

    insecure_indicators = ("Plaintext", "Uncrypted", "Simple", "File", "fail")
    if any(tok in name for tok in insecure_indicators):
        return False, f"insecure backend detected: {name}"

    if priority is not None and priority <= 0:
        return False, f"no suitable secure keyring backend available (priority={priority}, backend={name})"

    # treat known platform backends as acceptable
    if "Win" in name or "Keychain" in name or "SecretService" in name or "KWallet" in name:
        return True, f"backend looks acceptable: {name} (priority={priority})"

    return True, f"unknown backend '{name}', treat with caution (priority={priority})"


def save_token_checked(account: str, token: str, service: str = SERVICE) -> None:
    """Persist the token only if the keyring backend looks secure."""
    secure, msg = assess_keyring_backend()
    if not secure:
        raise RuntimeError(f"refusing to cache admin token in OS keystore: {msg}")
    save_token(account, token, service)


def load_token(account: str, service: str = SERVICE) -> Optional[str]:
    """Load a cached admin token; returns None if absent or unreadable."""
    try:
        return keyring.get_password(service, account)
    except KeyringError:
        return None


def delete_token(account: str, service: str = SERVICE) -> None:
    """Remove the cached token from the OS keystore."""
    try:
        keyring.delete_password(service, account)
    except PasswordDeleteError:
        # nothing cached
        pass
