"""Security package: key derivation, AEAD sealing and the session context.

This package provides:
- PBKDF2-SHA256 group key derivation from a passphrase and per-group salt
- AES-256-GCM sealing of item lists and file payloads
- the explicit session object that holds unlocked group keys
- optional admin token caching in the OS keystore
"""

from .kdf import generate_salt, derive_key
from .crypto import (
    encrypt_data,
    decrypt_data,
    encrypt_item_list,
    decrypt_item_list,
    try_decrypt_group,
    encrypt_file,
    decrypt_file,
)
from .session import VaultSession
from .keystore import save_token, load_token, delete_token

__all__ = [
    "generate_salt",
    "derive_key",
    "encrypt_data",
    "decrypt_data",
    "encrypt_item_list",
    "decrypt_item_list",
    "try_decrypt_group",
    "encrypt_file",
    "decrypt_file",
    "VaultSession",
    "save_token",
    "load_token",
    "delete_token",
]
