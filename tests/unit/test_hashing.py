"""Unit tests for hashing functionality."""

import hashlib
from pathlib import Path

from mindvault.core import hashing


def test_calculate_sha256_file(tmp_path: Path) -> None:
    """Hashing a file should match manual hashlib computation."""
    file_path = tmp_path / "sample.enc"
    content = b"mindvault test data"
    file_path.write_bytes(content)
    assert hashing.calculate_sha256(file_path) == hashlib.sha256(content).hexdigest()


def test_calculate_sha256_large_file(tmp_path: Path) -> None:
    """Files larger than one chunk hash the same as the whole buffer."""
    file_path = tmp_path / "big.bin"
    content = b"x" * (hashing.CHUNK_SIZE * 2 + 7)
    file_path.write_bytes(content)
    assert hashing.calculate_sha256(file_path) == hashlib.sha256(content).hexdigest()


def test_git_blob_sha_known_values() -> None:
    # `git hash-object` of an empty file and of "hello\n"
    assert hashing.calculate_git_blob_sha(b"") == "e69de29bb2d1d6434b8b29ae775ad8c2e48c5391"
    assert hashing.calculate_git_blob_sha(b"hello\n") == "ce013625030ba8dba906f756967f9e9ca394464a"


def test_git_blob_sha_changes_with_content() -> None:
    assert hashing.calculate_git_blob_sha(b"a") != hashing.calculate_git_blob_sha(b"b")
