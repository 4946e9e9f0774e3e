"""
Blob store contract and the local backends

Layout for reference:
==============================
 - <root>/
      - vault-index.json      (VaultIndex, JSON)
      - files/
          - {item_id}.enc     (EncryptedFileBlob, JSON)
==============================
For reference:
> A store only moves opaque bytes; it never sees plaintext or keys
> Every blob carries a version tag; writes may be conditioned on it
> Writing an existing path without its current tag is a conflict, the same
  way the GitHub contents API refuses an update without ``sha``

The remote backend lives in network/github.py.
"""

from __future__ import annotations

import logging
import os
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .exceptions import ConflictError, NotFoundError, PermissionDeniedError, TransportError
from .hashing import calculate_git_blob_sha, calculate_sha256

logger = logging.getLogger(__name__)

INDEX_PATH = "vault-index.json"
FILES_PREFIX = "files/"


def file_blob_path(item_id: str) -> str:
    return f"{FILES_PREFIX}{item_id}.enc"


@dataclass(frozen=True)
class BlobRecord:
    content: bytes
    version_tag: str


class BlobStore(ABC):
    """Versioned blob store the vault is persisted into."""

    @abstractmethod
    def get_blob(self, path: str) -> Optional[BlobRecord]:
        """Return the blob and its version tag, or ``None`` if absent."""

    @abstractmethod
    def put_blob(
        self,
        path: str,
        content: bytes,
        version_tag: Optional[str] = None,
        message: str = "",
    ) -> str:
        """
        Write ``content`` at ``path`` and return the new version tag.

        With ``version_tag`` the write only succeeds if it is still current;
        without one it only succeeds if ``path`` does not exist yet.

        Raises:
            ConflictError: the tag is stale (or missing for an existing blob).
            PermissionDeniedError: the credential may not write.
        """

    @abstractmethod
    def delete_blob(self, path: str, version_tag: str, message: str = "") -> None:
        """Delete ``path`` if ``version_tag`` is still current."""

    @abstractmethod
    def list_blobs(self, prefix: str = "") -> List[str]:
        """Return the paths of all blobs starting with ``prefix``."""

    @abstractmethod
    def validate_credential(self) -> bool:
        """Return True if the store accepts the configured credential."""


class MemoryBlobStore(BlobStore):
    """Process-local store; useful for tests and throwaway vaults."""

    def __init__(self, writable: bool = True, credential_valid: bool = True):
        self._blobs: Dict[str, Tuple[bytes, str]] = {}
        self._lock = threading.Lock()
        self.writable = writable
        self.credential_valid = credential_valid

    def get_blob(self, path: str) -> Optional[BlobRecord]:
        with self._lock:
            entry = self._blobs.get(path)
        if entry is None:
            return None
        return BlobRecord(content=entry[0], version_tag=entry[1])

    def put_blob(self, path, content, version_tag=None, message=""):
        if not self.writable:
            raise PermissionDeniedError(f"write to {path} denied")
        tag = calculate_git_blob_sha(content)
        with self._lock:
            current = self._blobs.get(path)
            _check_tag(path, current[1] if current else None, version_tag)
            self._blobs[path] = (bytes(content), tag)
        return tag

    def delete_blob(self, path, version_tag, message=""):
        if not self.writable:
            raise PermissionDeniedError(f"delete of {path} denied")
        with self._lock:
            current = self._blobs.get(path)
            if current is None:
                raise NotFoundError(path)
            _check_tag(path, current[1], version_tag)
            del self._blobs[path]

    def list_blobs(self, prefix=""):
        with self._lock:
            return sorted(p for p in self._blobs if p.startswith(prefix))

    def validate_credential(self):
        return self.credential_valid


class LocalBlobStore(BlobStore):
    """
    Store blobs as files under a root directory.

    Version tags are SHA-256 digests of the content. Conditional writes are
    atomic within one process only.
    """

    def __init__(self, root_path: Optional[str] = None):
        self.root = (
            Path(root_path).expanduser() if root_path else Path.home() / ".mindvault"
        )
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def blob_path(self, path: str) -> Path:
        resolved = (self.root / path).resolve()
        if self.root.resolve() not in resolved.parents:
            raise TransportError(f"path escapes store root: {path}")
        return resolved

    def _current_tag(self, target: Path) -> Optional[str]:
        if not target.exists():
            return None
        return calculate_sha256(target)

    def get_blob(self, path):
        target = self.blob_path(path)
        with self._lock:
            if not target.exists():
                return None
            try:
                content = target.read_bytes()
            except OSError as exc:
                raise TransportError(f"could not read {path}: {exc}") from exc
            return BlobRecord(content=content, version_tag=calculate_sha256(target))

    def put_blob(self, path, content, version_tag=None, message=""):
        target = self.blob_path(path)
        with self._lock:
            _check_tag(path, self._current_tag(target), version_tag)
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp = target.with_name(target.name + ".tmp")
            try:
                tmp.write_bytes(content)
                os.replace(tmp, target)
            except OSError as exc:
                raise TransportError(f"could not write {path}: {exc}") from exc
            if message:
                logger.debug("%s: %s", path, message)
            return calculate_sha256(target)

    def delete_blob(self, path, version_tag, message=""):
        target = self.blob_path(path)
        with self._lock:
            current = self._current_tag(target)
            if current is None:
                raise NotFoundError(path)
            _check_tag(path, current, version_tag)
            try:
                target.unlink()
            except OSError as exc:
                raise TransportError(f"could not delete {path}: {exc}") from exc

    def list_blobs(self, prefix=""):
        root = self.root.resolve()
        found = []
        for p in root.rglob("*"):
            if not p.is_file() or p.name.endswith(".tmp"):
                continue
            rel = p.relative_to(root).as_posix()
            if rel.startswith(prefix):
                found.append(rel)
        return sorted(found)

    def validate_credential(self):
        # A directory has no credential; being able to reach it is enough.
        return os.access(self.root, os.R_OK | os.W_OK)


def _check_tag(path: str, current: Optional[str], expected: Optional[str]) -> None:
    if current != expected:
        raise ConflictError(
            f"version tag for {path} is stale (expected {expected}, found {current})"
        )
