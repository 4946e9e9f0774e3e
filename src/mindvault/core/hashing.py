""" Utility for content hashing; hashes double as blob version tags. """

import hashlib
from pathlib import Path


CHUNK_SIZE = 65536  # 64KB

def calculate_sha256(file_path: Path) -> str:

    # Calculates the SHA-256 hash of a file.

    sha256 = hashlib.sha256()
    with open(file_path, 'rb') as f:
        while True:
            data = f.read(CHUNK_SIZE)
            if not data:
                break
            sha256.update(data)
    return sha256.hexdigest()


def calculate_git_blob_sha(data: bytes) -> str:

    # Same digest git (and the GitHub contents API) reports for a blob.

    sha1 = hashlib.sha1()
    sha1.update(b"blob %d\0" % len(data))
    sha1.update(data)
    return sha1.hexdigest()
