"""File content fingerprinting for duplicate detection."""

import zlib
from pathlib import Path

CHECKSUM_SIZE = 4
DEFAULT_CHUNK_SIZE = 64 * 1024


def compute_checksum(file_path: Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> bytes:
    """Return the CRC-32 of the file's bytes as 4 big-endian bytes. Blocking I/O.

    Not collision resistant; only used to compare tracks for equality.

    Raises:
        OSError: If the file cannot be opened or read.
    """
    crc = 0
    with open(file_path, "rb") as f:
        # Read in chunks to handle large files
        for chunk in iter(lambda: f.read(chunk_size), b""):
            crc = zlib.crc32(chunk, crc)
    return crc.to_bytes(CHECKSUM_SIZE, "big")
