"""Digest calculation and validation utilities."""

import hashlib
import re
from pathlib import Path
from typing import Union

import aiofiles

# Digests a registry may report for content we pushed
DIGEST_PATTERN = re.compile(r"^(sha256:[a-f0-9]{64}|sha512:[a-f0-9]{128})$")

HASH_READ_SIZE = 1024 * 1024


def format_digest(hexdigest: str, algorithm: str = "sha256") -> str:
    """Render a hex digest in the ``algorithm:hex`` wire form."""
    return f"{algorithm}:{hexdigest.lower()}"


def calculate_digest(data: Union[bytes, bytearray], algorithm: str = "sha256") -> str:
    """Calculate digest of data.

    Args:
        data: Data to hash
        algorithm: Hash algorithm (default: sha256)

    Returns:
        Digest string in format "algorithm:hex"

    Raises:
        ValueError: If algorithm is not supported
        ValueError: If data is not bytes-like
    """
    if not isinstance(data, (bytes, bytearray)):
        raise ValueError("Data must be bytes or bytearray")

    if algorithm not in hashlib.algorithms_available:
        raise ValueError(f"Unsupported algorithm: {algorithm}")

    hasher = hashlib.new(algorithm)
    hasher.update(data)
    return format_digest(hasher.hexdigest(), algorithm)


async def hash_file(
    path: Union[str, Path], read_size: int = HASH_READ_SIZE
) -> tuple[str, int]:
    """Stream a file through SHA-256.

    Args:
        path: File to hash
        read_size: Bytes read per iteration

    Returns:
        Tuple of the ``sha256:<hex>`` digest and the file size in bytes
    """
    hasher = hashlib.sha256()
    size = 0
    async with aiofiles.open(path, "rb") as f:
        while True:
            chunk = await f.read(read_size)
            if not chunk:
                break
            hasher.update(chunk)
            size += len(chunk)
    return format_digest(hasher.hexdigest()), size


def validate_digest(digest: str) -> bool:
    """Check that a digest is a complete sha256 or sha512 digest in wire form."""
    return isinstance(digest, str) and DIGEST_PATTERN.match(digest) is not None
