"""AES-256-GCM sealing of group item lists and uploaded files.

Wire format (all values standard base64 inside JSON):

- group payload: ``iv`` (12 bytes) and ``ciphertext`` (GCM output, 16-byte
  tag appended) of the canonical JSON encoding of the item list
- file payload: ``{"iv", "ciphertext", "metadata": {"filename", "size", "type"}}``
  stored as UTF-8 JSON at ``files/<item-id>.enc``

A tag mismatch is the only failure signal; a wrong key and a corrupted
ciphertext are reported identically as :class:`DecryptionFailure`.
"""
from __future__ import annotations

import base64
import binascii
import json
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from mindvault.core.exceptions import DecryptionFailure

from .kdf import derive_key

IV_LENGTH = 12


def b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def b64decode(text: str) -> bytes:
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecryptionFailure("malformed base64 payload") from exc


def encrypt_data(data: bytes, key: bytes) -> Tuple[str, str]:
    """
    Encrypt ``data`` under ``key`` with a fresh random 96-bit nonce.

    Returns ``(iv, ciphertext)`` as base64 text. Never call this with a
    caller-chosen nonce: each call draws its own.
    """
    iv = os.urandom(IV_LENGTH)
    ct = AESGCM(key).encrypt(iv, data, None)
    return b64encode(iv), b64encode(ct)


def decrypt_data(iv: str, ciphertext: str, key: bytes) -> bytes:
    """
    Decrypt a payload produced by :func:`encrypt_data`.

    Raises :class:`DecryptionFailure` if the tag does not verify.
    """
    nonce = b64decode(iv)
    ct = b64decode(ciphertext)
    if len(nonce) != IV_LENGTH:
        raise DecryptionFailure("invalid nonce length")
    try:
        return AESGCM(key).decrypt(nonce, ct, None)
    except InvalidTag as exc:
        raise DecryptionFailure("authentication tag mismatch") from exc


def encode_item_list(items: List[Dict[str, Any]]) -> bytes:
    # Compact separators and insertion order keep the encoding canonical.
    return json.dumps(items, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def encrypt_item_list(items: List[Dict[str, Any]], key: bytes) -> Tuple[str, str]:
    """Serialize and seal an item list; returns ``(iv, ciphertext)``."""
    return encrypt_data(encode_item_list(items), key)


def decrypt_item_list(iv: str, ciphertext: str, key: bytes) -> List[Dict[str, Any]]:
    """Open a sealed item list back into plain dicts."""
    raw = decrypt_data(iv, ciphertext, key)
    try:
        items = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise DecryptionFailure("decrypted payload is not an item list") from exc
    if not isinstance(items, list):
        raise DecryptionFailure("decrypted payload is not an item list")
    return items


@dataclass
class UnlockResult:
    success: bool
    key: Optional[bytes] = None
    items: Optional[List[Dict[str, Any]]] = None


def try_decrypt_group(passphrase: str, salt: str, iv: str, ciphertext: str) -> UnlockResult:
    """
    Derive a candidate key from ``passphrase`` and the group's salt and try
    to open its item list. A wrong passphrase yields ``success=False``.
    """
    try:
        key = derive_key(passphrase, salt)
        items = decrypt_item_list(iv, ciphertext, key)
    except (DecryptionFailure, ValueError):
        # ValueError: a salt that is not valid base64
        return UnlockResult(success=False)
    return UnlockResult(success=True, key=key, items=items)


def encrypt_file(data: bytes, key: bytes, filename: str, mime_type: str) -> bytes:
    """Seal file bytes and return the encoded EncryptedFileBlob."""
    iv, ct = encrypt_data(data, key)
    blob = {
        "iv": iv,
        "ciphertext": ct,
        "metadata": {"filename": filename, "size": len(data), "type": mime_type},
    }
    return json.dumps(blob).encode("utf-8")


def decrypt_file(blob: bytes, key: bytes) -> Tuple[bytes, Dict[str, Any]]:
    """Open an encoded EncryptedFileBlob; returns ``(data, metadata)``."""
    try:
        payload = json.loads(blob.decode("utf-8"))
        iv, ct = payload["iv"], payload["ciphertext"]
    except (UnicodeDecodeError, ValueError, KeyError, TypeError) as exc:
        raise DecryptionFailure("malformed encrypted file blob") from exc
    return decrypt_data(iv, ct, key), payload.get("metadata") or {}
