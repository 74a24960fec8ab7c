"""Hashing and comparison utilities for doc-merge."""

import hashlib
from pathlib import Path


def hash_file(file_path: Path, algorithm: str = "sha256") -> str:
    """Calculate hash of a file.

    Args:
        file_path: Path to the file
        algorithm: Hash algorithm (sha256, md5, sha1)

    Returns:
        Hex digest of the hash
    """
    hasher = hashlib.new(algorithm)

    with open(file_path, "rb") as f:
        # Read in chunks for large files
        for chunk in iter(lambda: f.read(8192), b""):
            hasher.update(chunk)

    return hasher.hexdigest()


def files_identical(a: Path, b: Path) -> bool:
    """Check whether two files have byte-identical content."""
    try:
        if a.stat().st_size != b.stat().st_size:
            return False
    except FileNotFoundError:
        return False
    return hash_file(a) == hash_file(b)
