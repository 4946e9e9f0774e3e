"""Passphrase key derivation for MindVault groups."""
import base64
import os
from typing import Optional

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

# Changing any of these makes every existing group ciphertext undecryptable;
# groups do not record the parameters they were sealed with.
KDF_ITERATIONS = 100_000
KEY_LENGTH = 32
SALT_LENGTH = 16


def generate_salt(length: int = SALT_LENGTH) -> bytes:
    """Return a cryptographically secure random salt."""
    return os.urandom(length)


def derive_key(
    passphrase: bytes | str,
    salt: bytes | str,
    iterations: Optional[int] = None,
    key_len: int = KEY_LENGTH,
) -> bytes:
    """
    Derive a group key from a passphrase using PBKDF2-HMAC-SHA256.

    ``salt`` may be the raw bytes or the base64 text stored on a group.
    Returns raw derived key bytes.
    """
    if isinstance(passphrase, str):
        passphrase = passphrase.encode("utf-8")
    if isinstance(salt, str):
        salt = base64.b64decode(salt)

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=key_len,
        salt=salt,
        iterations=iterations or KDF_ITERATIONS,
    )
    return kdf.derive(passphrase)
