from __future__ import annotations
import hashlib
from loudscan.utils.canonical_json import canonical_dumps


def sha256_hex_bytes(b: bytes) -> str:
    """Compute SHA256 hash of bytes and return hex string."""
    return hashlib.sha256(b).hexdigest()


def sha256_hex_canonical_json(obj) -> str:
    """Compute SHA256 hash of canonical JSON representation."""
    return sha256_hex_bytes(canonical_dumps(obj).encode("utf-8"))
